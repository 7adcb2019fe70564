"""Source analyzer: finds platform constructs in guest and host source.

The analyzer turns one unit of Rust source into an ordered, lossless list of
Constructs and PureSpans. Recognition is driven entirely by the source
platform's signature table in the capability catalog; anything that does
not resolve to a known signature stays opaque.
"""

import fnmatch
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.config import settings
from ..core.exceptions import MalformedSourceError
from ..core.logger import LoggerMixin, log_execution_time
from ..core.models import (
    Construct,
    ConstructKind,
    Direction,
    EntryStyle,
    PortWarning,
    PureSpan,
    Side,
    SourceSpan,
    Unit,
    WarningCode,
    direction_of,
    precedence_of,
)
from ..platforms import CapabilityModel, Platform
from ..platforms.capability_model import HostMethod, Signature
from . import lexer
from .type_info import array_size, lookup_binding_type

_CANDIDATE_RE = re.compile(
    r"(?P<attr>#\s*\[)"
    r"|(?<![\w.:$])(?P<path>(?:::)?[A-Za-z_]\w*(?:\s*::\s*[A-Za-z_]\w*)*)"
)
_LET_RE = re.compile(r"let\s+(?:mut\s+)?([A-Za-z_]\w*)\s*(?::\s*(.+?))?\s*=\s*$", re.S)
_FN_SIGNATURE_RE = re.compile(
    r"\s*(?:pub(?:\s*\([^)]*\))?\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?fn\s+([A-Za-z_]\w*)\s*(?:<[^>]*>\s*)?\("
)
_FN_NAME_RE = re.compile(r"\s*(?:#\s*\[[^\]]*\]\s*)*(?:pub(?:\s*\([^)]*\))?\s+)?fn\s+([A-Za-z_]\w*)")
_METHOD_RE = re.compile(r"\s*\.\s*([A-Za-z_]\w*)\s*(?:::\s*<)?")
_FN_KEYWORD_RE = re.compile(r"\bfn\s+$")
_UNWRAP_RE = re.compile(r"\s*(?:\?|\.\s*unwrap\s*\(\s*\))")
_RELATIVE_PREFIXES = ("crate::", "self::", "super::")
_HINT_PARAM_RE = re.compile(r"^(?:jolt::)?UntrustedAdvice\s*<(.+)>$", re.S)


@dataclass
class AnalysisResult:
    """Output of analyzing one source unit."""
    side: Side
    units: Tuple[Unit, ...]
    warnings: Tuple[PortWarning, ...] = ()

    @property
    def constructs(self) -> Tuple[Construct, ...]:
        return flatten_constructs(self.units)

    def reconstruct(self) -> str:
        return "".join(unit.text for unit in self.units)


@dataclass
class _PatternTable:
    exact: Dict[str, List[Signature]]
    globs: List[Signature]
    constructors: Dict[str, Signature]
    methods: Dict[str, HostMethod]
    crate_roots: Tuple[str, ...]
    entry_style: EntryStyle


def _pattern_table(profile, side: Side) -> _PatternTable:
    side_table = profile.side_table(side)
    exact: Dict[str, List[Signature]] = {}
    globs = []
    for signature in side_table.signatures:
        if "*" in signature.path:
            globs.append(signature)
        else:
            exact.setdefault(signature.path, []).append(signature)

    roots = set()
    for sig in list(side_table.signatures) + list(side_table.constructors):
        root = sig.path.split("::", 1)[0]
        if root != "*":
            roots.add(root)

    return _PatternTable(
        exact=exact,
        globs=globs,
        constructors={sig.path: sig for sig in side_table.constructors},
        methods={m.method: m for m in side_table.methods},
        crate_roots=tuple(sorted(roots)),
        entry_style=profile.entry_style,
    )


@dataclass
class _Found:
    """A recognized construct before it is frozen into a Construct."""
    kind: ConstructKind
    start: int
    end: int
    path: str
    shape: str
    declared_type: Optional[str] = None
    args: Tuple[str, ...] = ()
    args_span: Optional[Tuple[int, int]] = None
    binding: Optional[str] = None
    dest: Optional[str] = None
    size: Optional[int] = None
    operation: Optional[str] = None
    entry_name: Optional[str] = None
    params: Tuple[Tuple[str, str], ...] = ()
    return_type: Optional[str] = None
    signature: Optional[str] = None
    receiver: Optional[str] = None
    nested: List["_Found"] = field(default_factory=list)


class _Limit(Exception):
    """Raised internally when the construct cap is reached."""

    def __init__(self, position: int):
        super().__init__(position)
        self.position = position


def flatten_constructs(units) -> Tuple[Construct, ...]:
    """Constructs of a unit list in source order, nested ones after their parent."""
    return tuple(
        construct
        for unit in units if isinstance(unit, Construct)
        for construct in unit.walk()
    )


class SourceAnalyzer(LoggerMixin):
    """Recognizes platform constructs in one guest or host source unit."""

    def __init__(self, model: CapabilityModel, max_constructs: Optional[int] = None):
        self.model = model
        self.max_constructs = max_constructs or settings.max_constructs
        self._tables: Dict[Tuple[Platform, Side], _PatternTable] = {
            (platform, side): _pattern_table(profile, side)
            for platform, profile in model.profiles()
            for side in Side
        }

    @log_execution_time
    def analyze(self, text: str, side: Side, platform) -> AnalysisResult:
        """Analyze one source unit.

        Args:
            text: Complete source text of the unit.
            side: Whether the unit is the guest program or its host.
            platform: Platform the source is written against.

        Returns:
            Lossless, ordered list of constructs and pure spans.

        Raises:
            MalformedSourceError: If the unit cannot be tokenized, or recognized
                constructs do not cover it exactly.
        """
        platform = Platform.parse(platform)
        table = self._tables[(platform, side)]
        masked = lexer.mask_source(text, side.value)
        scan = _Scan(self, text, masked, side, table)

        found = scan.run()
        constructs = scan.freeze(found)
        units = self._build_units(text, side, constructs)

        self.logger.info(
            f"Analyzed {side.value} source for {platform.value}: "
            f"{len(flatten_constructs(units))} constructs, {len(units)} units"
        )
        result = AnalysisResult(side=side, units=tuple(units), warnings=tuple(scan.warnings))
        rebuilt = result.reconstruct()
        if rebuilt != text:
            position = next(
                (i for i, (a, b) in enumerate(zip(rebuilt, text)) if a != b),
                min(len(rebuilt), len(text)),
            )
            raise MalformedSourceError.at("Recognized constructs overlap or leave gaps", text, position, side.value)
        return result

    def _build_units(self, text: str, side: Side, constructs: List[Construct]) -> List[Unit]:
        units: List[Unit] = []
        cursor = 0

        for construct in constructs:
            start = construct.source_span.start
            if start > cursor:
                units.append(_pure(text, side, cursor, start))
            units.append(construct)
            cursor = construct.source_span.end

        if cursor < len(text) or not units:
            units.append(_pure(text, side, cursor, len(text)))
        return units


def _pure(text: str, side: Side, start: int, end: int) -> PureSpan:
    line, column = lexer.line_and_column(text, start)
    return PureSpan(side=side, source_span=SourceSpan(start, end, line, column), text=text[start:end])


class _Scan:
    """One pass over a masked unit."""

    def __init__(self, analyzer: SourceAnalyzer, text: str, masked: str, side: Side, table: _PatternTable):
        self.analyzer = analyzer
        self.text = text
        self.masked = masked
        self.side = side
        self.table = table
        self.warnings: List[PortWarning] = []
        self.count = 0
        self.receivers: Dict[str, str] = {}
        self.aliases, self.globs, declarations = lexer.collect_imports(masked)
        self.loops = lexer.loop_ranges(masked, text, side.value) + lexer.closure_ranges(masked, text, side.value)

        for start, _, root in declarations:
            if root in table.crate_roots:
                line, _ = lexer.line_and_column(text, start)
                self.warnings.append(PortWarning(
                    WarningCode.SOURCE_IMPORT,
                    f"{side.value}:{line}: `use` of source platform crate {root} is left in place",
                ))

    # -- scanning -----------------------------------------------------

    def run(self) -> List[_Found]:
        try:
            return self._scan(0, len(self.masked))
        except _Limit as limit:
            line, column = lexer.line_and_column(self.text, limit.position)
            self.warnings.append(PortWarning(
                WarningCode.CONSTRUCT_LIMIT,
                f"{self.side.value}: construct limit of {self.analyzer.max_constructs} reached at "
                f"line {line}, column {column}; remaining source kept verbatim",
            ))
            self.analyzer.logger.warning(self.warnings[-1].message)
            return self._kept

    def _scan(self, start: int, end: int, top: bool = True) -> List[_Found]:
        found: List[_Found] = []
        if top:
            self._kept = found
        pos = start

        while pos < end:
            match = _CANDIDATE_RE.search(self.masked, pos, end)
            if not match:
                break

            if match.group("attr"):
                item, pos = self._attribute(match.start(), match.end(), end)
            else:
                item, pos = self._path(match.start(), match.end(), end)

            if item is not None:
                found.extend(item)

        return found

    def _admit(self, position: int) -> None:
        if self.count >= self.analyzer.max_constructs:
            raise _Limit(position)
        self.count += 1

    def _attribute(self, start: int, bracket_end: int, limit: int) -> Tuple[Optional[List[_Found]], int]:
        close = lexer.find_closing(self.masked, bracket_end - 1, self.text, self.side.value)
        inner = self.masked[bracket_end:close]
        path_match = re.match(r"\s*((?:::)?[A-Za-z_]\w*(?:\s*::\s*[A-Za-z_]\w*)*)", inner)
        if not path_match:
            return None, close + 1

        signature = self._lookup(path_match.group(1), "attribute", start)
        if signature is None:
            return None, close + 1

        self._admit(start)
        item = _Found(
            kind=signature.kind,
            start=start,
            end=close + 1,
            path=signature.path,
            shape="attribute",
        )

        if signature.kind is ConstructKind.ENTRY_POINT:
            if self.table.entry_style is EntryStyle.FUNCTION:
                self._capture_function_signature(item)
            else:
                name = _FN_NAME_RE.match(self.masked, close + 1)
                item.entry_name = name.group(1) if name else "main"
        return [item], item.end

    def _capture_function_signature(self, item: _Found) -> None:
        sig = _FN_SIGNATURE_RE.match(self.masked, item.end)
        if not sig:
            item.entry_name = "main"
            return

        open_paren = sig.end() - 1
        close_paren = lexer.find_closing(self.masked, open_paren, self.text, self.side.value)
        params = []
        for s, e in lexer.split_top_level(self.masked, open_paren + 1, close_paren):
            name, _, ty = self.text[s:e].partition(":")
            name = re.sub(r"^\s*mut\s+", "", name).strip()
            params.append((name, ty.strip()))

        end = close_paren + 1
        return_type = None
        ret = re.match(r"\s*->\s*", self.masked[end:])
        if ret:
            body = self.masked.find("{", end)
            if body == -1:
                body = len(self.masked)
            where = re.search(r"\bwhere\b", self.masked[end:body])
            stop = end + where.start() if where else body
            return_type = self.text[end + ret.end():stop].strip()
            end = end + ret.end() + len(self.text[end + ret.end():stop].rstrip())

        item.entry_name = sig.group(1)
        item.params = tuple(params)
        item.return_type = return_type or None
        item.signature = self.text[item.end:end].strip()
        item.end = end

    def _path(self, start: int, path_end: int, limit: int) -> Tuple[Optional[List[_Found]], int]:
        raw_path = self.masked[start:path_end]
        if _FN_KEYWORD_RE.search(self.masked, max(0, start - 16), start):
            return None, path_end
        after = path_end
        ws = re.match(r"\s*", self.masked[after:limit])
        nxt = after + ws.end()

        # tracked host receiver: `stdin.write(&x)`
        if self.side is Side.HOST and raw_path in self.receivers and nxt < limit and self.masked[nxt] == ".":
            items, pos = self._method_chain(start, nxt, limit, receiver=raw_path)
            if items:
                return items, pos
            return None, path_end

        if nxt < limit and self.masked[nxt] == "!":
            paren = re.match(r"!\s*([(\[{])", self.masked[nxt:limit])
            if not paren:
                return None, path_end
            open_pos = nxt + paren.start(1)
            return self._call(start, raw_path, "macro", None, open_pos, limit)

        turbofish = None
        open_pos = nxt
        if self.masked.startswith("::", nxt):
            angle = re.match(r"::\s*<", self.masked[nxt:limit])
            if not angle:
                return None, path_end
            angle_open = nxt + angle.end() - 1
            angle_close = lexer.find_angle_close(self.masked, angle_open)
            if angle_close == -1:
                return None, path_end
            turbofish = self.text[angle_open + 1:angle_close].strip()
            ws = re.match(r"\s*", self.masked[angle_close + 1:limit])
            open_pos = angle_close + 1 + ws.end()

        if open_pos < limit and self.masked[open_pos] == "(":
            return self._call(start, raw_path, "call", turbofish, open_pos, limit)
        return None, path_end

    def _call(
        self,
        start: int,
        raw_path: str,
        shape: str,
        turbofish: Optional[str],
        open_pos: int,
        limit: int
    ) -> Tuple[Optional[List[_Found]], int]:
        close = lexer.find_closing(self.masked, open_pos, self.text, self.side.value)
        end = close + 1

        constructor = self._constructor(raw_path) if shape == "call" else None
        signature = constructor or self._lookup(raw_path, shape, start)

        if signature is None:
            nested = self._scan(open_pos + 1, close, top=False)
            return nested or None, end

        self._admit(start)
        args_spans = lexer.split_top_level(self.masked, open_pos + 1, close)
        item = _Found(
            kind=signature.kind,
            start=start,
            end=end,
            path=signature.path,
            shape="invocation" if signature.shape == "invocation" else shape,
            declared_type=turbofish,
            args=tuple(self.text[s:e] for s, e in args_spans),
            args_span=(open_pos + 1, close),
            operation=signature.operation,
        )
        item.nested = self._scan(open_pos + 1, close, top=False)

        if shape == "macro" and signature.kind is ConstructKind.ENTRY_POINT:
            item.entry_name = item.args[0].strip() if item.args else "main"
            semi = re.match(r"\s*;", self.masked[end:limit])
            if semi:
                item.end = end + semi.end()

        self._capture_binding(item)
        self._capture_types(item)

        items = [item]
        if constructor is not None:
            self._track_receiver(item)
            chained, pos = self._method_chain(None, item.end, limit, receiver="")
            items.extend(chained)
            return items, max(pos, item.end)
        return items, item.end

    def _method_chain(
        self,
        receiver_start: Optional[int],
        pos: int,
        limit: int,
        receiver: str
    ) -> Tuple[List[_Found], int]:
        """Recognize `.method(args)` calls chained on a host receiver."""
        items: List[_Found] = []
        first = True

        while pos < limit:
            unwrap = _UNWRAP_RE.match(self.masked, pos, limit)
            if unwrap and not first:
                pos = unwrap.end()
                continue

            method = _METHOD_RE.match(self.masked, pos, limit)
            if not method:
                break
            name = method.group(1)
            open_pos = method.end()
            if self.masked[open_pos - 1] == "<":
                angle_close = lexer.find_angle_close(self.masked, open_pos - 1)
                if angle_close == -1:
                    break
                ws = re.match(r"\s*", self.masked[angle_close + 1:limit])
                open_pos = angle_close + 1 + ws.end()
            else:
                ws = re.match(r"\s*", self.masked[open_pos:limit])
                open_pos += ws.end()
            if open_pos >= limit or self.masked[open_pos] != "(":
                break

            close = lexer.find_closing(self.masked, open_pos, self.text, self.side.value)
            signature = self.table.methods.get(name)
            if signature is None:
                if first and receiver:
                    return [], pos
                nested = self._scan(open_pos + 1, close, top=False)
                items.extend(nested)
                pos = close + 1
                first = False
                continue

            if first and receiver_start is not None:
                start = receiver_start
            else:
                start = self.masked.index(".", pos)
            self._admit(start)
            args_spans = lexer.split_top_level(self.masked, open_pos + 1, close)
            item = _Found(
                kind=signature.kind,
                start=start,
                end=close + 1,
                path=name,
                shape="method",
                args=tuple(self.text[s:e] for s, e in args_spans),
                args_span=(open_pos + 1, close),
                receiver=receiver if first else "",
            )
            item.nested = self._scan(open_pos + 1, close, top=False)
            if signature.fallible:
                absorbed = _UNWRAP_RE.match(self.masked, item.end, limit)
                if absorbed:
                    item.end = absorbed.end()
            self._capture_types(item)
            items.append(item)
            pos = item.end
            first = False

        return items, pos

    # -- resolution ---------------------------------------------------

    def _canonical(self, raw_path: str) -> str:
        path = lexer.normalize_path(raw_path).lstrip(":")
        for prefix in _RELATIVE_PREFIXES:
            while path.startswith(prefix):
                path = path[len(prefix):]

        for _ in range(8):
            head, sep, rest = path.partition("::")
            target = self.aliases.get(head)
            if target is None:
                break
            target = target.lstrip(":")
            expanded = f"{target}::{rest}" if sep else target
            if expanded == path:
                break
            path = expanded
        return path

    def _candidates(self, path: str, shape: str) -> List[Signature]:
        matches = list(self.table.exact.get(path, []))
        matches += [s for s in self.table.globs if fnmatch.fnmatchcase(path, s.path)]
        return [s for s in matches if _shape_matches(s, shape)]

    def _lookup(self, raw_path: str, shape: str, position: int) -> Optional[Signature]:
        path = self._canonical(raw_path)
        candidates = self._candidates(path, shape)

        if not candidates and "::" not in path and self.globs:
            resolved = [g.lstrip(":") + "::" + path for g in self.globs]
            hits = [(p, self._candidates(p, shape)) for p in resolved]
            hits = [(p, c) for p, c in hits if c]
            if len(hits) == 1:
                candidates = hits[0][1]
            elif len(hits) > 1:
                line, _ = lexer.line_and_column(self.text, position)
                self.analyzer.logger.debug(
                    f"{self.side.value}:{line}: '{path}' resolves through several glob imports; left untouched"
                )
                return None

        if not candidates:
            return None

        kinds = {c.kind for c in candidates}
        chosen = min(candidates, key=lambda s: precedence_of(s.kind))
        if len(kinds) > 1:
            line, column = lexer.line_and_column(self.text, position)
            self.warnings.append(PortWarning(
                WarningCode.RECOGNITION_AMBIGUITY,
                f"{self.side.value}:{line}:{column}: '{path}' matches "
                f"{', '.join(sorted(k.value for k in kinds))}; classified as {chosen.kind.value}",
            ))
        return chosen

    def _constructor(self, raw_path: str) -> Optional[Signature]:
        if self.side is not Side.HOST or not self.table.constructors:
            return None
        return self.table.constructors.get(self._canonical(raw_path))

    def _track_receiver(self, item: _Found) -> None:
        if item.binding:
            self.receivers[item.binding] = item.path

    # -- captures -----------------------------------------------------

    def _capture_binding(self, item: _Found) -> None:
        head = self.masked[:item.start]
        boundary = max(head.rfind(";"), head.rfind("{"), head.rfind("}"))
        statement = head[boundary + 1:]
        let = _LET_RE.search(statement)
        if let:
            item.binding = let.group(1)
            annotated = let.group(2)
            if annotated and not item.declared_type:
                offset = boundary + 1 + let.start(2)
                item.declared_type = self.text[offset:offset + len(annotated)].strip()

    def _capture_types(self, item: _Found) -> None:
        if item.kind is ConstructKind.RAW_READ and item.args:
            dest = re.sub(r"^&\s*mut\s+", "", item.args[0].strip())
            item.dest = dest
            dest_type = lookup_binding_type(self.masked, self.text, dest, item.start)
            if dest_type:
                item.declared_type = dest_type
                item.size = array_size(dest_type)
            return

        if item.kind in (ConstructKind.STRUCTURED_COMMIT, ConstructKind.RAW_COMMIT, ConstructKind.HINT) and item.args:
            if item.declared_type:
                return
            value = re.sub(r"^&\s*(?:mut\s+)?", "", item.args[0].strip())
            if re.fullmatch(r"[A-Za-z_]\w*", value):
                value_type = lookup_binding_type(self.masked, self.text, value, item.start)
                if value_type:
                    item.declared_type = value_type
                    if item.kind is ConstructKind.RAW_COMMIT:
                        item.size = array_size(value_type)

    # -- freezing -----------------------------------------------------

    def _in_loop(self, position: int) -> bool:
        return any(open_pos < position < close for open_pos, close in self.loops)

    def freeze(self, found: List[_Found]) -> List[Construct]:
        """Turn recognized items into immutable Constructs with sequence indices."""
        counters = {Direction.READ: 0, Direction.WRITE: 0}
        ordered: List[_Found] = []

        def walk(items: List[_Found]) -> None:
            for item in sorted(items, key=lambda f: f.start):
                ordered.append(item)
                walk(item.nested)

        walk(found)
        indices: Dict[int, Optional[int]] = {}
        for item in sorted(ordered, key=lambda f: f.start):
            direction = _direction(item, self.side)
            if direction is Direction.NONE:
                indices[id(item)] = None
                continue
            indices[id(item)] = counters[direction]
            counters[direction] += 1

        def build(item: _Found) -> Construct:
            line, column = lexer.line_and_column(self.text, item.start)
            children = tuple(build(child) for child in sorted(item.nested, key=lambda f: f.start))
            params = item.params
            construct = Construct(
                kind=item.kind,
                side=self.side,
                source_span=SourceSpan(item.start, item.end, line, column),
                text=self.text[item.start:item.end],
                path=item.path,
                shape=item.shape,
                declared_type=item.declared_type,
                sequence_index=indices[id(item)],
                args=item.args,
                args_span=(
                    SourceSpan(item.args_span[0], item.args_span[1], *lexer.line_and_column(self.text, item.args_span[0]))
                    if item.args_span else None
                ),
                binding=item.binding,
                dest=item.dest,
                size=item.size,
                operation=item.operation,
                in_loop=self._in_loop(item.start),
                entry_name=item.entry_name,
                params=params,
                hint_params=tuple(i for i, (_, ty) in enumerate(params) if _HINT_PARAM_RE.match(ty)),
                return_type=item.return_type,
                signature=item.signature,
                receiver=item.receiver,
                nested=children,
            )
            return construct

        return [build(item) for item in sorted(found, key=lambda f: f.start)]


def _shape_matches(signature: Signature, shape: str) -> bool:
    # invocations are written as plain calls
    return signature.shape == shape or (signature.shape == "invocation" and shape == "call")


def _direction(item: _Found, side: Side) -> Direction:
    if item.kind is ConstructKind.ENTRY_POINT:
        return Direction.NONE
    return direction_of(item.kind, side)


def strip_hint_type(ty: str) -> Tuple[str, bool]:
    """Unwrap `UntrustedAdvice<T>` parameter types."""
    match = _HINT_PARAM_RE.match(ty.strip())
    if match:
        return match.group(1).strip(), True
    return ty, False


__all__ = ["SourceAnalyzer", "AnalysisResult", "flatten_constructs", "strip_hint_type"]
