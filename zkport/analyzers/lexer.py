"""Lexical helpers for Rust source text.

The analyzer never parses Rust. It only needs comments and literals blanked
out, balanced delimiters found, argument lists split and `use` trees
expanded. All helpers work on a masked copy of the source that has exactly
the same length and line breaks as the original, so every offset found in
the mask is valid in the original text.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import MalformedSourceError

_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_OPENERS = {v: k for k, v in _CLOSERS.items()}

# a loop may also open after `=` or a match arm `=>`
_LOOP_HEAD_RE = re.compile(
    r"^(?:.*?(?:=>|[^=<>!.]=(?![=>])))?\s*(?:'[A-Za-z_]\w*\s*:\s*)?(?:for|while|loop)\b", re.S
)
_USE_RE = re.compile(r"\b(?:pub(?:\s*\([^)]*\))?\s+)?use\s+([^;]+);")
_ITER_CALL_RE = re.compile(
    r"(?:\.\s*(?:map|for_each|try_for_each|fold|try_fold|filter|filter_map|flat_map|map_while|"
    r"take_while|skip_while|scan|inspect|any|all|find|find_map|position|reduce|partition)"
    r"|\b(?:repeat_with|from_fn|successors))"
    r"\s*(?:::\s*<[^(){};]*>\s*)?\("
)
_CLOSURE_HEAD_RE = re.compile(r"(?:move\s+)?\|")


def _blank(chars: List[str], start: int, end: int) -> None:
    for i in range(start, end):
        if chars[i] != "\n":
            chars[i] = " "


def mask_source(text: str, side: Optional[str] = None) -> str:
    """Return a copy of text with comments and literal contents blanked.

    String delimiters are kept so the literal still reads as one token.

    Raises:
        MalformedSourceError: On an unterminated block comment, string or
            raw string.
    """
    chars = list(text)
    i = 0
    n = len(text)

    while i < n:
        c = text[i]

        if text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            _blank(chars, i, end)
            i = end
            continue

        if text.startswith("/*", i):
            depth = 0
            j = i
            while j < n:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                    if depth == 0:
                        break
                else:
                    j += 1
            if depth != 0:
                raise MalformedSourceError.at("Unterminated block comment", text, i, side)
            _blank(chars, i, j)
            i = j
            continue

        raw = re.match(r"b?r(#*)\"", text[i:i + 260])
        if raw and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            hashes = raw.group(1)
            body_start = i + raw.end()
            terminator = '"' + hashes
            end = text.find(terminator, body_start)
            if end == -1:
                raise MalformedSourceError.at("Unterminated raw string literal", text, i, side)
            _blank(chars, body_start, end)
            i = end + len(terminator)
            continue

        if c == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            if j >= n:
                raise MalformedSourceError.at("Unterminated string literal", text, i, side)
            _blank(chars, i + 1, j)
            i = j + 1
            continue

        if c == "'":
            char_lit = re.match(r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]{1,6}\}|.)|[^\\'\n])'", text[i:i + 12])
            if char_lit:
                _blank(chars, i + 1, i + char_lit.end() - 1)
                i += char_lit.end()
                continue
            # lifetime or label

        i += 1

    return "".join(chars)


def find_closing(masked: str, open_pos: int, original: Optional[str] = None, side: Optional[str] = None) -> int:
    """Index of the delimiter closing the one at open_pos.

    Raises:
        MalformedSourceError: If the delimiters are unbalanced.
    """
    stack = [masked[open_pos]]
    i = open_pos + 1
    n = len(masked)

    while i < n:
        c = masked[i]
        if c in _CLOSERS:
            stack.append(c)
        elif c in _OPENERS:
            if not stack or stack[-1] != _OPENERS[c]:
                raise MalformedSourceError.at(
                    f"Mismatched '{c}'", original or masked, i, side
                )
            stack.pop()
            if not stack:
                return i
        i += 1

    raise MalformedSourceError.at(
        f"Unclosed '{masked[open_pos]}'", original or masked, open_pos, side
    )


def find_angle_close(masked: str, open_pos: int) -> int:
    """Index of the '>' closing a turbofish '<', or -1."""
    depth = 0
    nesting = 0
    for i in range(open_pos, len(masked)):
        c = masked[i]
        if c == "<":
            depth += 1
        elif c == ">":
            if i > 0 and masked[i - 1] == "-":
                continue
            depth -= 1
            if depth == 0:
                return i
        elif c in "([":
            nesting += 1
        elif c in ")]":
            nesting -= 1
        elif c in "{}" or (c == ";" and nesting == 0):
            return -1
    return -1


def split_top_level(masked: str, start: int, end: int) -> List[Tuple[int, int]]:
    """Split masked[start:end] on commas outside any nesting.

    Returns (start, end) offsets of each non-empty, whitespace-trimmed piece.
    """
    pieces = []
    depth = 0
    angle = 0
    piece_start = start

    for i in range(start, end):
        c = masked[i]
        if c in "([{":
            depth += 1
        elif c in ")]}":
            depth -= 1
        elif c == "<" and depth == 0:
            angle += 1
        elif c == ">" and depth == 0 and angle > 0 and masked[i - 1] != "-":
            angle -= 1
        elif c == "," and depth == 0 and angle == 0:
            pieces.append((piece_start, i))
            piece_start = i + 1
    pieces.append((piece_start, end))

    trimmed = []
    for s, e in pieces:
        while s < e and masked[s].isspace():
            s += 1
        while e > s and masked[e - 1].isspace():
            e -= 1
        if e > s:
            trimmed.append((s, e))
    return trimmed


def split_text(text: str) -> List[str]:
    """Split an argument string on top-level commas."""
    masked = mask_source(text)
    return [text[s:e] for s, e in split_top_level(masked, 0, len(masked))]


def loop_ranges(masked: str, original: Optional[str] = None, side: Optional[str] = None) -> List[Tuple[int, int]]:
    """(open, close) offsets of every `for`, `while` and `loop` body.

    Raises:
        MalformedSourceError: If braces are unbalanced.
    """
    ranges = []
    stack: List[Tuple[int, bool]] = []
    boundary = 0

    for i, c in enumerate(masked):
        if c == "{":
            head = masked[boundary:i]
            stack.append((i, bool(_LOOP_HEAD_RE.match(head))))
            boundary = i + 1
        elif c == "}":
            if not stack:
                raise MalformedSourceError.at("Unmatched '}'", original or masked, i, side)
            open_pos, is_loop = stack.pop()
            if is_loop:
                ranges.append((open_pos, i))
            boundary = i + 1
        elif c == ";":
            boundary = i + 1

    if stack:
        raise MalformedSourceError.at("Unclosed '{'", original or masked, stack[-1][0], side)
    return ranges


def closure_ranges(masked: str, original: Optional[str] = None, side: Optional[str] = None) -> List[Tuple[int, int]]:
    """(open, close) offsets of the argument lists of iterator adapters taking a closure.

    A closure handed to `map`, `for_each`, `fold` and the like runs once per
    element, so code inside it repeats like a loop body.

    Raises:
        MalformedSourceError: If the argument list is unbalanced.
    """
    ranges = []
    for match in _ITER_CALL_RE.finditer(masked):
        open_pos = match.end() - 1
        close = find_closing(masked, open_pos, original, side)
        pieces = split_top_level(masked, open_pos + 1, close)
        if any(_CLOSURE_HEAD_RE.match(masked, start) for start, _ in pieces):
            ranges.append((open_pos, close))
    return ranges


def normalize_path(path: str) -> str:
    return re.sub(r"\s+", "", path)


def expand_use_tree(tree: str, prefix: str = "") -> Tuple[Dict[str, str], List[str]]:
    """Expand one `use` tree into local-name aliases and glob prefixes.

    >>> expand_use_tree("risc0_zkvm::guest::{env, entry as main_entry}")
    ({'env': 'risc0_zkvm::guest::env', 'main_entry': 'risc0_zkvm::guest::entry'}, [])
    """
    aliases: Dict[str, str] = {}
    globs: List[str] = []
    tree = tree.strip()

    brace = tree.find("{")
    if brace != -1 and tree.endswith("}"):
        head = normalize_path(tree[:brace]).rstrip(":")
        base = f"{prefix}::{head}" if prefix and head else (head or prefix)
        for item in split_text(tree[brace + 1:-1]):
            sub_aliases, sub_globs = expand_use_tree(item, base)
            aliases.update(sub_aliases)
            globs.extend(sub_globs)
        return aliases, globs

    alias = None
    match = re.match(r"(.+?)\s+as\s+([A-Za-z_]\w*)$", tree, re.S)
    if match:
        tree, alias = match.group(1), match.group(2)

    path = normalize_path(tree)
    full = f"{prefix}::{path}" if prefix else path

    if path == "*":
        globs.append(prefix)
        return aliases, globs
    if full.endswith("::*"):
        globs.append(full[:-3])
        return aliases, globs

    if path == "self":
        full = prefix
    name = alias or full.rsplit("::", 1)[-1]
    if name != "_":
        aliases[name] = full
    return aliases, globs


def collect_imports(masked: str) -> Tuple[Dict[str, str], List[str], List[Tuple[int, int, str]]]:
    """All `use` declarations of a unit.

    Returns the alias table, the glob prefixes and (start, end, root crate)
    for every declaration.
    """
    aliases: Dict[str, str] = {}
    globs: List[str] = []
    declarations = []

    for match in _USE_RE.finditer(masked):
        tree = match.group(1)
        tree_aliases, tree_globs = expand_use_tree(tree)
        aliases.update(tree_aliases)
        globs.extend(tree_globs)
        root = normalize_path(tree).lstrip(":").split("::", 1)[0].strip("{")
        declarations.append((match.start(), match.end(), root))

    return aliases, globs, declarations


def line_and_column(text: str, position: int) -> Tuple[int, int]:
    line = text.count("\n", 0, position) + 1
    column = position - (text.rfind("\n", 0, position) + 1) + 1
    return line, column
