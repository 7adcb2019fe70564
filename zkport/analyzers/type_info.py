"""Shallow inspection of Rust type strings.

Only the handful of facts the resolver needs: the byte size of fixed
arrays, whether a type has a statically bounded size, and the declared
type of a local buffer.
"""

import re
from typing import List, Optional

from . import lexer

SCALAR_SIZES = {
    "u8": 1, "i8": 1, "bool": 1,
    "u16": 2, "i16": 2,
    "u32": 4, "i32": 4, "f32": 4, "char": 4,
    "u64": 8, "i64": 8, "f64": 8,
    "u128": 16, "i128": 16,
    "usize": 4, "isize": 4,
}

DYNAMIC_HEADS = {
    "Vec", "String", "Box", "HashMap", "BTreeMap", "HashSet", "BTreeSet",
    "VecDeque", "Rc", "Arc", "Cow", "str",
}

_ARRAY_RE = re.compile(r"^\[\s*(.+)\s*;\s*(\d+)(?:_?usize)?\s*\]$", re.S)
_GENERIC_RE = re.compile(r"^((?:[A-Za-z_]\w*::)*)([A-Za-z_]\w*)\s*(?:<(.*)>)?$", re.S)
_REPEAT_RE = re.compile(r"^\[\s*[-+\w.]*?(u8|u16|u32|u64|u128|i8|i16|i32|i64|i128)?\s*;\s*(\d+)\s*\]$")


def array_size(ty: Optional[str]) -> Optional[int]:
    """Byte size of a fixed array of scalars, or None.

    >>> array_size("[u8; 32]")
    32
    >>> array_size("[u32; 4]")
    16
    """
    if not ty:
        return None
    match = _ARRAY_RE.match(ty.strip())
    if not match:
        return None
    element = match.group(1).strip()
    count = int(match.group(2))
    if element in SCALAR_SIZES:
        return SCALAR_SIZES[element] * count
    inner = array_size(element)
    return inner * count if inner is not None else None


def _generic_args(text: str) -> List[str]:
    return [piece.strip() for piece in lexer.split_text(text)]


def fixed_size(ty: Optional[str]) -> Optional[bool]:
    """Whether a type has a statically bounded size.

    Returns True for scalars, literal-length arrays and tuples of those,
    False for dynamic containers, references and unknown types, and None
    for nominal user types whose layout cannot be seen from the source.
    """
    if not ty:
        return False
    ty = ty.strip()

    if ty in SCALAR_SIZES or ty == "()":
        return True
    if ty.startswith("&") or ty.startswith("*"):
        return False

    if ty.startswith("["):
        match = _ARRAY_RE.match(ty)
        if not match:
            return False
        return fixed_size(match.group(1))

    if ty.startswith("("):
        if not ty.endswith(")"):
            return False
        elements = [fixed_size(e) for e in _generic_args(ty[1:-1])]
        if any(e is False for e in elements):
            return False
        return None if any(e is None for e in elements) else True

    match = _GENERIC_RE.match(ty)
    if not match:
        return False
    name, params = match.group(2), match.group(3)

    if name in DYNAMIC_HEADS:
        return False
    if name == "Option" and params:
        return fixed_size(params)
    if params:
        elements = [fixed_size(p) for p in _generic_args(params)]
        if any(e is False for e in elements):
            return False
    return None


def lookup_binding_type(masked: str, text: str, name: str, before: int) -> Optional[str]:
    """Declared type of a local named `name`, from the closest declaration before an offset.

    Understands `let name: T = ...`, `let mut name = [0u8; N];`,
    `let mut name = vec![...]` and `name: T` function parameters.
    """
    escaped = re.escape(name)
    candidates = []

    annotated = re.compile(rf"\blet\s+(?:mut\s+)?{escaped}\s*:(?!:)\s*")
    for match in annotated.finditer(masked, 0, before):
        stop = _type_end(masked, match.end(), before, "=;")
        candidates.append((match.start(), text[match.end():stop].strip()))

    inferred = re.compile(rf"\blet\s+(?:mut\s+)?{escaped}\s*=\s*")
    for match in inferred.finditer(masked, 0, before):
        rest = masked[match.end():before]
        if rest.startswith("vec!"):
            candidates.append((match.start(), "Vec<u8>"))
            continue
        if rest.startswith("["):
            close = rest.find("]")
            if close == -1:
                continue
            repeat = _REPEAT_RE.match(text[match.end():match.end() + close + 1])
            if repeat:
                element = repeat.group(1) or "u8"
                candidates.append((match.start(), f"[{element}; {repeat.group(2)}]"))

    param = re.compile(rf"[(,]\s*(?:mut\s+)?{escaped}\s*:(?!:)\s*")
    for match in param.finditer(masked, 0, before):
        stop = _type_end(masked, match.end(), before, ",")
        candidates.append((match.start(), text[match.end():stop].strip()))

    if not candidates:
        return None
    return max(candidates, key=lambda c: c[0])[1] or None


def _type_end(masked: str, start: int, limit: int, stops: str) -> int:
    """Offset where a type starting at `start` ends, at depth zero."""
    depth = 0
    pos = start
    while pos < limit:
        c = masked[pos]
        if c in "(<[":
            depth += 1
        elif c in ")>]":
            if depth == 0:
                break
            depth -= 1
        elif c in stops and depth == 0:
            break
        pos += 1
    return pos
