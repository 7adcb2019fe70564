"""Data model shared by every phase of a platform transfer.

Constructs, pure spans and resolutions are immutable. A TransferPlan is a
frozen record that each phase extends by returning a new instance through
dataclasses.replace, so an aborted run simply drops the plan it was
building.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

if TYPE_CHECKING:
    from ..platforms import Platform


class ConstructKind(Enum):
    """Platform-specific call site categories."""
    ENTRY_POINT = "EntryPoint"
    STRUCTURED_READ = "StructuredRead"
    STRUCTURED_COMMIT = "StructuredCommit"
    RAW_READ = "RawRead"
    RAW_COMMIT = "RawCommit"
    CYCLE_COUNT = "CycleCount"
    HINT = "Hint"
    PRECOMPILE_CALL = "PrecompileCall"

    @property
    def is_io(self) -> bool:
        return self in IO_KINDS


IO_KINDS = frozenset({
    ConstructKind.STRUCTURED_READ,
    ConstructKind.STRUCTURED_COMMIT,
    ConstructKind.RAW_READ,
    ConstructKind.RAW_COMMIT,
    ConstructKind.CYCLE_COUNT,
    ConstructKind.HINT,
})

RAW_KINDS = frozenset({ConstructKind.RAW_READ, ConstructKind.RAW_COMMIT})

# Classification precedence when one call shape matches several kinds
PRECEDENCE_ENTRY = 0
PRECEDENCE_IO = 1
PRECEDENCE_PRECOMPILE = 2


def precedence_of(kind: ConstructKind) -> int:
    if kind is ConstructKind.ENTRY_POINT:
        return PRECEDENCE_ENTRY
    if kind.is_io:
        return PRECEDENCE_IO
    return PRECEDENCE_PRECOMPILE


class Side(Enum):
    GUEST = "guest"
    HOST = "host"


class Direction(Enum):
    READ = "read"
    WRITE = "write"
    NONE = "none"


def direction_of(kind: ConstructKind, side: Side) -> Direction:
    """Data direction of a construct as seen from the guest's input stream.

    Guest reads and host writes feed the same stream; guest commits leave
    the program. Hints are reads on the guest and writes on the host.
    """
    if side is Side.GUEST:
        if kind in (ConstructKind.STRUCTURED_READ, ConstructKind.RAW_READ, ConstructKind.HINT):
            return Direction.READ
        if kind in (ConstructKind.STRUCTURED_COMMIT, ConstructKind.RAW_COMMIT):
            return Direction.WRITE
        return Direction.NONE

    if kind in (ConstructKind.STRUCTURED_COMMIT, ConstructKind.RAW_COMMIT, ConstructKind.HINT):
        return Direction.WRITE
    if kind in (ConstructKind.STRUCTURED_READ, ConstructKind.RAW_READ):
        return Direction.READ
    return Direction.NONE


class Alignment(Enum):
    WORD_ALIGNED = "WordAligned"
    BYTE_ALIGNED = "ByteAligned"
    NOT_APPLICABLE = "NotApplicable"


class EntryStyle(Enum):
    MACRO = "macro"
    ATTRIBUTE = "attribute"
    FUNCTION = "function"


class PrecompileStatus(Enum):
    ACCELERATED = "Accelerated"
    SOFTWARE = "Software"
    UNAVAILABLE = "Unavailable"


class Action(Enum):
    DIRECT_MAP = "DirectMap"
    ADAPT = "Adapt"
    UNSUPPORTED = "Unsupported"


class Fallback(Enum):
    NONE = "none"
    BUNDLE = "bundle"
    IMPOSSIBLE = "impossible"


class WarningCode(Enum):
    RECOGNITION_AMBIGUITY = "recognition_ambiguity"
    CONSTRUCT_LIMIT = "construct_limit"
    ENTRY_MODEL = "entry_model"
    ALIGNMENT = "alignment"
    CHANNEL_SPLIT_UNCONFIRMED = "channel_split_unconfirmed"
    CHANNEL_MERGED = "channel_merged"
    PRECOMPILE_DEGRADED = "precompile_degraded"
    CYCLE_COUNT = "cycle_count"
    STREAMING_IO = "streaming_io"
    ASSUMED_FIXED_SIZE = "assumed_fixed_size"
    UNSUPPORTED = "unsupported"
    ORDERING_GAP = "ordering_gap"
    PAIRING_MISMATCH = "pairing_mismatch"
    HOST_CROSSCHECK_SKIPPED = "host_crosscheck_skipped"
    SOURCE_IMPORT = "source_import"


@dataclass(frozen=True)
class SourceSpan:
    """Half-open character range [start, end) plus its 1-based position."""
    start: int
    end: int
    line: int = 1
    column: int = 1

    def text_of(self, source: str) -> str:
        return source[self.start:self.end]

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Construct:
    """One recognized platform-specific call site."""
    kind: ConstructKind
    side: Side
    source_span: SourceSpan
    text: str
    path: str
    shape: str
    declared_type: Optional[str] = None
    sequence_index: Optional[int] = None
    args: Tuple[str, ...] = ()
    args_span: Optional[SourceSpan] = None
    binding: Optional[str] = None
    dest: Optional[str] = None
    size: Optional[int] = None
    operation: Optional[str] = None
    in_loop: bool = False
    entry_name: Optional[str] = None
    params: Tuple[Tuple[str, str], ...] = ()
    hint_params: Tuple[int, ...] = ()
    return_type: Optional[str] = None
    signature: Optional[str] = None
    receiver: Optional[str] = None
    nested: Tuple["Construct", ...] = ()

    @property
    def direction(self) -> Direction:
        return direction_of(self.kind, self.side)

    @property
    def slot_count(self) -> int:
        """Number of positions this construct occupies in the input stream.

        A single-shot guest entry reads one slot per parameter and a host
        invocation writes one slot per argument.
        """
        if self.kind is ConstructKind.ENTRY_POINT:
            return len(self.params) if self.side is Side.GUEST else 0
        if self.shape == "invocation":
            return len(self.args)
        return 1 if self.direction is not Direction.NONE else 0

    @property
    def arity(self) -> int:
        return len(self.args)

    def walk(self):
        """This construct followed by its nested constructs, depth first."""
        yield self
        for child in self.nested:
            yield from child.walk()

    @property
    def value(self) -> str:
        """First argument with a leading borrow removed."""
        if not self.args:
            return ""
        arg = self.args[0].strip()
        if arg.startswith("&mut "):
            return arg[5:].strip()
        return arg.lstrip("&").strip()


@dataclass(frozen=True)
class PureSpan:
    """Source text outside any construct, copied verbatim."""
    side: Side
    source_span: SourceSpan
    text: str


Unit = Union[Construct, PureSpan]


@dataclass(frozen=True)
class PortWarning:
    code: WarningCode
    message: str
    construct_index: Optional[int] = None
    requires_confirmation: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "construct": self.construct_index,
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True)
class AnalysisFailure:
    """A unit the analyzer could not tokenize."""
    side: Side
    message: str
    position: int
    line: int
    column: int
    snippet: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side": self.side.value,
            "message": self.message,
            "position": self.position,
            "line": self.line,
            "column": self.column,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class Resolution:
    """The decided action and rewrite rule for one construct."""
    construct_index: int
    construct: Construct
    action: Action
    rewrite_template: str
    transformation: Optional[str] = None
    fallback: Fallback = Fallback.NONE
    note: Optional[str] = None
    bindings: Tuple[Tuple[str, str], ...] = ()
    warnings: Tuple[PortWarning, ...] = ()

    @property
    def dropped(self) -> bool:
        return self.action is Action.UNSUPPORTED and self.fallback is Fallback.IMPOSSIBLE

    @property
    def bundled(self) -> bool:
        return self.action is Action.UNSUPPORTED and self.fallback is Fallback.BUNDLE


@dataclass(frozen=True)
class BundleLayout:
    """Aggregate values replacing streamed I/O on single-shot targets.

    Each entry is (construct_index, element type); the position of an entry
    is the tuple field carrying that construct's value.
    """
    inputs: Tuple[Tuple[int, str], ...] = ()
    outputs: Tuple[Tuple[int, str], ...] = ()
    host_inputs: Tuple[int, ...] = ()

    @property
    def input_type(self) -> str:
        return _tuple_type(t for _, t in self.inputs)

    @property
    def output_type(self) -> str:
        return _tuple_type(t for _, t in self.outputs)

    def entry_bindings(self) -> Dict[str, str]:
        """Captures for a single-shot entry wrapper.

        Bundled values live in module-level tuples of `Option` slots: the
        wrapper fills the input slots from its argument, each bundled read
        takes its slot once, each bundled commit fills an output slot and
        the wrapper collects the output slots into its return value.
        """
        n_in, n_out = len(self.inputs), len(self.outputs)
        return {
            "input_type": self.input_type,
            "output_type": self.output_type,
            "input_slots": _tuple_type(f"Option<{t}>" for _, t in self.inputs),
            "output_slots": _tuple_type(f"Option<{t}>" for _, t in self.outputs),
            "input_empty": _tuple_type(["None"] * n_in),
            "output_empty": _tuple_type(["None"] * n_out),
            "input_fill": _tuple_type(f"Some(input.{i})" for i in range(n_in)),
            "output_collect": _tuple_type(f"output.{i}.take().unwrap()" for i in range(n_out)),
        }

    def input_index(self, construct_index: int) -> Optional[int]:
        for position, (index, _) in enumerate(self.inputs):
            if index == construct_index:
                return position
        return None

    def output_index(self, construct_index: int) -> Optional[int]:
        for position, (index, _) in enumerate(self.outputs):
            if index == construct_index:
                return position
        return None

    def host_input_index(self, construct_index: int) -> Optional[int]:
        if construct_index in self.host_inputs:
            return self.host_inputs.index(construct_index)
        return None


def _tuple_type(types) -> str:
    items = list(types)
    if not items:
        return "()"
    if len(items) == 1:
        return f"({items[0]},)"
    return f"({', '.join(items)})"


@dataclass(frozen=True)
class SequenceGap:
    side: Side
    original_index: int
    construct_index: int


@dataclass(frozen=True)
class OrderingViolation:
    message: str
    guest_indices: Tuple[int, ...] = ()
    host_indices: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "guest_constructs": list(self.guest_indices),
            "host_constructs": list(self.host_indices),
        }


@dataclass(frozen=True)
class SequenceReport:
    """Retained read/write accounting produced by the I/O sequencer."""
    guest_reads: int = 0
    host_writes: int = 0
    guest_reindex: Tuple[Tuple[int, int], ...] = ()
    host_reindex: Tuple[Tuple[int, int], ...] = ()
    gaps: Tuple[SequenceGap, ...] = ()
    cross_checked: bool = False
    violation: Optional[OrderingViolation] = None


@dataclass(frozen=True)
class TransferPlan:
    """Ordered constructs and resolutions for one source to target transfer."""
    source_platform: "Platform"
    target_platform: "Platform"
    guest_units: Tuple[Unit, ...] = ()
    host_units: Tuple[Unit, ...] = ()
    guest_source: Optional[str] = None
    host_source: Optional[str] = None
    resolutions: Tuple[Resolution, ...] = ()
    bundle: BundleLayout = field(default_factory=BundleLayout)
    sequence: Optional[SequenceReport] = None
    warnings: Tuple[PortWarning, ...] = ()
    failures: Tuple[AnalysisFailure, ...] = ()
    confirmed: bool = False

    @property
    def constructs(self) -> Tuple[Construct, ...]:
        """Guest constructs followed by host constructs, each in source order."""
        return self.guest_constructs + self.host_constructs

    @property
    def guest_constructs(self) -> Tuple[Construct, ...]:
        return _flatten(self.guest_units)

    @property
    def host_constructs(self) -> Tuple[Construct, ...]:
        return _flatten(self.host_units)

    @property
    def has_host(self) -> bool:
        return self.host_source is not None

    @property
    def generatable(self) -> bool:
        return (
            not self.failures
            and self.sequence is not None
            and self.sequence.violation is None
            and len(self.resolutions) == len(self.constructs)
        )

    def all_warnings(self) -> List[PortWarning]:
        """Analysis warnings, then per-construct warnings in order, then sequencing."""
        analysis = [w for w in self.warnings if w.code not in _SEQUENCING_CODES]
        sequencing = [w for w in self.warnings if w.code in _SEQUENCING_CODES]
        per_construct = [w for res in self.resolutions for w in res.warnings]
        return analysis + per_construct + sequencing

    def extend(self, **changes: Any) -> "TransferPlan":
        if "target_platform" in changes and changes["target_platform"] != self.target_platform:
            raise ValueError("target_platform is fixed for the lifetime of a plan")
        return replace(self, **changes)

    def confirm(self) -> "TransferPlan":
        """Return the caller-confirmed copy of this plan."""
        return replace(self, confirmed=True)


_SEQUENCING_CODES = frozenset({
    WarningCode.ORDERING_GAP,
    WarningCode.PAIRING_MISMATCH,
    WarningCode.HOST_CROSSCHECK_SKIPPED,
})


def _flatten(units) -> Tuple[Construct, ...]:
    return tuple(
        construct
        for unit in units if isinstance(unit, Construct)
        for construct in unit.walk()
    )


@dataclass(frozen=True)
class ChangeLogEntry:
    construct_index: int
    side: Side
    kind: ConstructKind
    action: Action
    line: int
    original: str
    rewritten: str
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "construct": self.construct_index,
            "side": self.side.value,
            "kind": self.kind.value,
            "action": self.action.value,
            "line": self.line,
            "original": self.original,
            "rewritten": self.rewritten,
            "note": self.note,
        }


@dataclass(frozen=True)
class LogicalDependency:
    """One crate implied by the generated constructs.

    Handed to the build descriptor emitter, which owns manifest layout.
    """
    name: str
    version: str
    side: Side
    features: Tuple[str, ...] = ()
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "side": self.side.value,
            "features": list(self.features),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Artifacts:
    guest_source: str
    host_source: Optional[str]
    change_log: Tuple[ChangeLogEntry, ...] = ()
    dependencies: Tuple[LogicalDependency, ...] = ()


@dataclass
class Report:
    """Read-only compatibility view over a TransferPlan."""
    source_platform: "Platform"
    target_platform: "Platform"
    total: int
    direct: List[int] = field(default_factory=list)
    adapted: List[int] = field(default_factory=list)
    unsupported: List[int] = field(default_factory=list)
    warnings: List[PortWarning] = field(default_factory=list)
    failures: List[AnalysisFailure] = field(default_factory=list)
    ordering_violation: Optional[OrderingViolation] = None
    dependencies: List[LogicalDependency] = field(default_factory=list)
    plan: Optional[TransferPlan] = field(default=None, repr=False, compare=False)

    @property
    def generatable(self) -> bool:
        return self.plan is not None and self.plan.generatable

    @property
    def requires_confirmation(self) -> List[PortWarning]:
        return [w for w in self.warnings if w.requires_confirmation]

    def to_dict(self) -> Dict[str, Any]:
        constructs = self.plan.constructs if self.plan else ()
        resolutions = self.plan.resolutions if self.plan else ()
        return {
            "source_platform": self.source_platform.value,
            "target_platform": self.target_platform.value,
            "total": self.total,
            "counts": {
                "direct": len(self.direct),
                "adapted": len(self.adapted),
                "unsupported": len(self.unsupported),
            },
            "constructs": [
                {
                    "index": res.construct_index,
                    "side": constructs[res.construct_index].side.value,
                    "kind": constructs[res.construct_index].kind.value,
                    "line": constructs[res.construct_index].source_span.line,
                    "action": res.action.value,
                    "transformation": res.transformation,
                    "fallback": res.fallback.value,
                }
                for res in resolutions
            ],
            "warnings": [w.to_dict() for w in self.warnings],
            "failures": [f.to_dict() for f in self.failures],
            "ordering_violation": self.ordering_violation.to_dict() if self.ordering_violation else None,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "generatable": self.generatable,
        }
