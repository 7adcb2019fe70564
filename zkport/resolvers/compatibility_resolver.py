"""Compatibility resolution of recognized constructs against a target platform.

Every construct of a plan receives exactly one Resolution: DirectMap when
the target expresses it the same way, Adapt when a semantics-preserving
transformation exists, Unsupported otherwise (with a bundling fallback on
single-shot targets, or a stub). Decisions only ever look at profile
attributes from the capability catalog, never at which platform is which.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..analyzers.source_analyzer import strip_hint_type
from ..analyzers.type_info import fixed_size
from ..core.logger import LoggerMixin, log_execution_time
from ..core.models import (
    Action,
    Alignment,
    BundleLayout,
    Construct,
    ConstructKind,
    Direction,
    EntryStyle,
    Fallback,
    PortWarning,
    RAW_KINDS,
    Resolution,
    Side,
    TransferPlan,
    WarningCode,
)
from ..core.templating import escape, render
from ..platforms import CapabilityModel, Degraded, PlatformProfile, Supported, Unsupported
from .hint_classifier import Channel, HintClassifier

_VALUE_KINDS = frozenset({
    ConstructKind.STRUCTURED_READ,
    ConstructKind.HINT,
    ConstructKind.CYCLE_COUNT,
    ConstructKind.PRECOMPILE_CALL,
})

_INVOCATION_RECEIVER = "zkport_stdin"


@dataclass
class _Context:
    plan: TransferPlan
    source: PlatformProfile
    target: PlatformProfile
    constructs: Tuple[Construct, ...]
    channels: Dict[int, Channel] = field(default_factory=dict)
    host_channels: Dict[int, Channel] = field(default_factory=dict)
    guest_entry: Optional[Construct] = None


@dataclass
class _Draft:
    index: int
    construct: Construct
    action: Action
    template: str
    transformation: Optional[str] = None
    fallback: Fallback = Fallback.NONE
    note: Optional[str] = None
    bindings: Dict[str, str] = field(default_factory=dict)
    warnings: List[PortWarning] = field(default_factory=list)
    bundle_role: Optional[str] = None
    bundle_type: Optional[str] = None
    needs_layout: bool = False

    def warn(self, code: WarningCode, message: str, requires_confirmation: bool = False) -> None:
        self.warnings.append(PortWarning(code, message, self.index, requires_confirmation))

    def freeze(self) -> Resolution:
        return Resolution(
            construct_index=self.index,
            construct=self.construct,
            action=self.action,
            rewrite_template=self.template,
            transformation=self.transformation,
            fallback=self.fallback,
            note=self.note,
            bindings=tuple(sorted(self.bindings.items())),
            warnings=tuple(self.warnings),
        )


def alignment_change(source: Alignment, target: Alignment) -> Optional[str]:
    """'removed' for word to byte, 'added' for byte to word, else None."""
    if Alignment.NOT_APPLICABLE in (source, target) or source is target:
        return None
    return "removed" if source is Alignment.WORD_ALIGNED else "added"


class CompatibilityResolver(LoggerMixin):
    """Resolves each construct of a plan against the target's capabilities."""

    def __init__(self, model: CapabilityModel, classifier: Optional[HintClassifier] = None):
        self.model = model
        self.classifier = classifier or HintClassifier()

    @log_execution_time
    def resolve(self, plan: TransferPlan) -> TransferPlan:
        """Attach one resolution per construct, in source order.

        Args:
            plan: Plan carrying analyzed guest and host units.

        Returns:
            The plan extended with resolutions and the bundle layout.
        """
        ctx = _Context(
            plan=plan,
            source=self.model.profile(plan.source_platform),
            target=self.model.profile(plan.target_platform),
            constructs=plan.constructs,
        )
        ctx.guest_entry = next(
            (c for c in plan.guest_constructs if c.kind is ConstructKind.ENTRY_POINT), None
        )

        if self._splits_channels(ctx):
            ctx.channels = self.classifier.classify(plan.guest_source or "", ctx.constructs)
            ctx.host_channels = {
                ctx.constructs[index].sequence_index: channel
                for index, channel in ctx.channels.items()
            }

        drafts = [self._resolve_one(index, construct, ctx) for index, construct in enumerate(ctx.constructs)]
        layout = self._layout(drafts)
        for draft in drafts:
            self._bind(draft, layout)

        resolutions = tuple(draft.freeze() for draft in drafts)
        counts = {action: sum(1 for r in resolutions if r.action is action) for action in Action}
        self.logger.info(
            f"Resolved {len(resolutions)} constructs for {plan.source_platform.value} -> "
            f"{plan.target_platform.value}: "
            + ", ".join(f"{counts[a]} {a.value}" for a in Action)
        )
        return plan.extend(resolutions=resolutions, bundle=layout)

    def _splits_channels(self, ctx: _Context) -> bool:
        if not ctx.target.hint_channel_present or ctx.source.hint_channel_present:
            return False
        read = self.model.capability(ctx.plan.target_platform, ConstructKind.STRUCTURED_READ)
        hint = self.model.capability(ctx.plan.target_platform, ConstructKind.HINT)
        return isinstance(read, Supported) and isinstance(hint, Supported)

    def _resolve_one(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        if construct.kind is ConstructKind.ENTRY_POINT:
            if construct.side is Side.GUEST:
                return self._guest_entry(index, construct, ctx)
            return self._host_setup(index, construct, ctx)
        if construct.kind is ConstructKind.PRECOMPILE_CALL:
            return self._precompile(index, construct, ctx)
        if construct.shape == "invocation":
            return self._invocation(index, construct, ctx)
        return self._io(index, construct, ctx)

    # -- entry points -------------------------------------------------

    def _guest_entry(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        source_style = ctx.source.entry_style
        target_style = ctx.target.entry_style
        template = self.model.template(ctx.plan.target_platform, Side.GUEST, "EntryPoint")

        if source_style is target_style:
            if target_style is EntryStyle.FUNCTION:
                template = escape(construct.text)
            return _Draft(index, construct, Action.DIRECT_MAP, template)

        if target_style is EntryStyle.FUNCTION:
            draft = _Draft(
                index, construct, Action.ADAPT, template,
                transformation="entry bundled into single-shot invocation",
                note="entry bundled into single-shot invocation; "
                     f"{construct.entry_name or 'main'} reads and commits through zkport_input() and zkport_output()",
                needs_layout=True,
            )
            draft.warn(
                WarningCode.ENTRY_MODEL,
                f"construct #{index}: streaming entry converted to a single-shot provable function",
            )
            return draft

        if source_style is EntryStyle.FUNCTION:
            draft = _Draft(
                index, construct, Action.ADAPT,
                escape(self._unpack_entry(construct, ctx)),
                transformation="signature unpacked into streaming prologue",
                note="signature unpacked into streaming prologue",
            )
            if construct.hint_params:
                draft.note += "; advice parameters are now read from the hint channel"
            draft.warn(
                WarningCode.ENTRY_MODEL,
                f"construct #{index}: single-shot function {construct.entry_name} now reads its "
                f"{len(construct.params)} parameters from the input stream",
            )
            return draft

        return _Draft(
            index, construct, Action.ADAPT, template,
            transformation=f"entry marker converted to {target_style.value}",
            note=f"entry marker converted from {source_style.value} to {target_style.value}",
        )

    def _unpack_entry(self, construct: Construct, ctx: _Context) -> str:
        target = ctx.plan.target_platform
        entry = construct.entry_name or "main"
        wrapper = "zkport_main" if entry == "main" else "main"

        lines = [render(self.model.template(target, Side.GUEST, "EntryPoint"), {"entry": wrapper}, construct_index=None)]
        lines.append(f"fn {wrapper}() {{")

        names = []
        for name, declared in construct.params:
            inner, is_hint = strip_hint_type(declared)
            capability = self.model.capability(
                target, ConstructKind.HINT if is_hint else ConstructKind.STRUCTURED_READ
            )
            if isinstance(capability, Unsupported):
                capability = self.model.capability(target, ConstructKind.STRUCTURED_READ)
            names.append(name)
            lines.append(f"    let {name} = {render(capability.template, {'type': inner or '_'})};")

        call = f"{entry}({', '.join(names)})"
        if construct.return_type:
            commit = self.model.template(target, Side.GUEST, "StructuredCommit")
            lines.append(f"    {render(commit, {'args': '&' + call, 'value': call})};")
        else:
            lines.append(f"    {call};")
        lines.append("}")
        lines.append("")
        lines.append(construct.signature or f"fn {entry}()")
        return "\n".join(lines)

    def _host_setup(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        template = self.model.template(ctx.plan.target_platform, Side.HOST, "EntryPoint")
        source_setup = ctx.source.host_setup
        target_setup = ctx.target.host_setup

        if source_setup == target_setup:
            return _Draft(index, construct, Action.DIRECT_MAP, template)

        if ctx.target.single_shot:
            draft = _Draft(
                index, construct, Action.ADAPT, template,
                transformation="host input bundled into single-shot argument",
                note="host input bundled into single-shot argument; pass it to the prover invocation",
                needs_layout=True,
            )
            draft.warn(
                WarningCode.ENTRY_MODEL,
                f"construct #{index}: host input stream replaced by the bundled single-shot argument",
            )
            return draft

        return _Draft(
            index, construct, Action.ADAPT, template,
            transformation=f"host setup converted from {source_setup} to {target_setup}",
            note=f"host setup converted from {source_setup} to {target_setup}",
        )

    def _invocation(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        if ctx.target.host_setup == ctx.source.host_setup:
            return _Draft(index, construct, Action.DIRECT_MAP, escape(construct.text))

        target = ctx.plan.target_platform
        hint_positions = ctx.guest_entry.hint_params if ctx.guest_entry else ()
        parts = [f"let mut {_INVOCATION_RECEIVER} = {self.model.template(target, Side.HOST, 'EntryPoint')};"]

        for position, arg in enumerate(construct.args):
            kind = ConstructKind.HINT if position in hint_positions else ConstructKind.STRUCTURED_COMMIT
            capability = self.model.capability(target, kind, side=Side.HOST)
            if isinstance(capability, Unsupported):
                capability = self.model.capability(target, ConstructKind.STRUCTURED_COMMIT, side=Side.HOST)
            value = arg.strip()
            parts.append(render(
                capability.template,
                {"receiver": _INVOCATION_RECEIVER, "args": f"&{value}", "value": value},
            ) + ";")

        draft = _Draft(
            index, construct, Action.ADAPT,
            escape("{ " + " ".join(parts) + f" {_INVOCATION_RECEIVER} }}"),
            transformation="single-shot invocation unpacked into streaming input",
            note=f"single-shot invocation unpacked into streaming input; hand {_INVOCATION_RECEIVER} to the prover",
        )
        draft.warn(
            WarningCode.ENTRY_MODEL,
            f"construct #{index}: invocation arguments written to the input stream one by one",
        )
        return draft

    # -- I/O ----------------------------------------------------------

    def _io(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        capability = self.model.capability(ctx.plan.target_platform, construct.kind, side=construct.side)

        if isinstance(capability, Supported):
            return self._supported(index, construct, capability, ctx)

        if isinstance(capability, Degraded):
            draft = _Draft(
                index, construct, Action.ADAPT, capability.template,
                transformation=_degraded_transformation(construct.kind),
                note=capability.penalty_note,
            )
            if construct.kind is ConstructKind.CYCLE_COUNT:
                draft.warn(WarningCode.CYCLE_COUNT, f"construct #{index}: cycle counting unavailable on target")
            elif construct.kind is ConstructKind.HINT:
                draft.warn(WarningCode.CHANNEL_MERGED, f"construct #{index}: {capability.penalty_note}")
            else:
                draft.warn(WarningCode.UNSUPPORTED, f"construct #{index}: {capability.penalty_note}")
            return draft

        if capability.fallback_policy is Fallback.BUNDLE:
            return self._bundle(index, construct, capability, ctx)
        return self._impossible(index, construct, capability.note, ctx)

    def _supported(self, index: int, construct: Construct, capability: Supported, ctx: _Context) -> _Draft:
        if construct.kind in RAW_KINDS:
            change = alignment_change(ctx.source.alignment, ctx.target.alignment)
            if change:
                return self._realign(index, construct, capability, change, ctx)

        channel = None
        if ctx.channels and construct.kind is ConstructKind.STRUCTURED_READ and construct.side is Side.GUEST:
            channel = ctx.channels.get(index)
        elif ctx.host_channels and construct.kind is ConstructKind.STRUCTURED_COMMIT and construct.side is Side.HOST:
            channel = ctx.host_channels.get(construct.sequence_index)

        if channel is None:
            return _Draft(index, construct, Action.DIRECT_MAP, capability.template)

        template = capability.template
        if channel is Channel.HINT:
            template = self.model.capability(ctx.plan.target_platform, ConstructKind.HINT, side=construct.side).template

        draft = _Draft(
            index, construct, Action.ADAPT, template,
            transformation=f"channel split: {channel.value} input",
            note=f"channel split: classified as {channel.value} input",
        )
        draft.warn(
            WarningCode.CHANNEL_SPLIT_UNCONFIRMED,
            f"construct #{index}: classified as {channel.value} input by heuristic; confirm before generating",
            requires_confirmation=True,
        )
        return draft

    def _realign(self, index: int, construct: Construct, capability: Supported, change: str, ctx: _Context) -> _Draft:
        note = f"alignment padding {change}"
        draft = _Draft(index, construct, Action.ADAPT, capability.template, transformation=note, note=note)

        if change == "added" and construct.kind is ConstructKind.RAW_READ and construct.side is Side.GUEST:
            padded = self.model.template(ctx.plan.target_platform, Side.GUEST, "RawReadPadded")
            if padded and construct.size:
                draft.template = padded
                draft.bindings["words"] = str(math.ceil(construct.size / 4))
            else:
                draft.warn(
                    WarningCode.ALIGNMENT,
                    f"construct #{index}: buffer size of {construct.dest or 'destination'} unknown; "
                    "word padding not applied",
                )
                return draft

        draft.warn(WarningCode.ALIGNMENT, f"construct #{index}: {note}")
        return draft

    def _bundle(self, index: int, construct: Construct, capability: Unsupported, ctx: _Context) -> _Draft:
        draft = _Draft(
            index, construct, Action.UNSUPPORTED, capability.template or "",
            fallback=Fallback.BUNDLE,
            transformation="bundled into single-shot I/O",
            note=capability.note,
        )

        reason = self._unboundable(construct, draft)
        if reason:
            return self._impossible(index, construct, f"{capability.note}; {reason}", ctx)

        direction = construct.direction
        if construct.side is Side.HOST:
            draft.bundle_role = "host"
            if not construct.receiver:
                draft.template = ""
        elif direction is Direction.READ:
            draft.bundle_role = "input"
            draft.bundle_type = construct.declared_type
        elif construct.kind is ConstructKind.RAW_COMMIT:
            draft.bundle_role = "output"
            draft.bundle_type = "Vec<u8>"
        else:
            draft.bundle_role = "output"
            draft.bundle_type = construct.declared_type or _bound_type(construct.value, ctx)
            if not draft.bundle_type:
                return self._impossible(
                    index, construct,
                    f"{capability.note}; type of committed value {construct.value or '?'} is unknown, "
                    "annotate its binding to bundle it",
                    ctx,
                )
        draft.needs_layout = True
        draft.warn(WarningCode.STREAMING_IO, f"construct #{index}: {capability.note}")
        return draft

    def _unboundable(self, construct: Construct, draft: _Draft) -> Optional[str]:
        if construct.in_loop:
            return "inside a loop, so the number of values is not known statically"
        if construct.side is Side.HOST or construct.direction is not Direction.READ:
            return None

        bounded = fixed_size(construct.declared_type)
        if bounded is False:
            return f"type {construct.declared_type or 'unknown'} has no static size bound"
        if bounded is None:
            draft.warn(
                WarningCode.ASSUMED_FIXED_SIZE,
                f"construct #{draft.index}: {construct.declared_type} assumed to be fixed-size",
            )
        return None

    def _impossible(self, index: int, construct: Construct, reason: str, ctx: _Context) -> _Draft:
        if construct.kind in _VALUE_KINDS:
            stub = ctx.target.stub_value
        elif construct.shape == "method" and not construct.receiver:
            stub = ""
        else:
            stub = "()"

        draft = _Draft(
            index, construct, Action.UNSUPPORTED, escape(stub),
            fallback=Fallback.IMPOSSIBLE,
            note=reason,
        )
        draft.warn(WarningCode.UNSUPPORTED, f"construct #{index}: {construct.kind.value} unsupported: {reason}")
        return draft

    def _precompile(self, index: int, construct: Construct, ctx: _Context) -> _Draft:
        capability = self.model.capability(
            ctx.plan.target_platform, ConstructKind.PRECOMPILE_CALL, operation=construct.operation
        )

        if isinstance(capability, Supported):
            return _Draft(index, construct, Action.DIRECT_MAP, capability.template)

        if isinstance(capability, Degraded):
            draft = _Draft(
                index, construct, Action.ADAPT, capability.template,
                transformation="precompile degraded to software",
                note=capability.penalty_note,
            )
            draft.warn(
                WarningCode.PRECOMPILE_DEGRADED,
                f"construct #{index}: {capability.penalty_note}; expect a higher cycle count",
            )
            return draft

        return self._impossible(index, construct, capability.note, ctx)

    # -- bundling -----------------------------------------------------

    def _layout(self, drafts: List[_Draft]) -> BundleLayout:
        inputs = tuple((d.index, d.bundle_type) for d in drafts if d.bundle_role == "input")
        outputs = tuple((d.index, d.bundle_type) for d in drafts if d.bundle_role == "output")
        host_inputs = tuple(d.index for d in drafts if d.bundle_role == "host")
        return BundleLayout(inputs=inputs, outputs=outputs, host_inputs=host_inputs)

    def _bind(self, draft: _Draft, layout: BundleLayout) -> None:
        if not draft.needs_layout:
            return

        if draft.construct.kind is ConstructKind.ENTRY_POINT:
            if draft.construct.side is Side.GUEST:
                draft.bindings.update(layout.entry_bindings())
            else:
                draft.bindings["input_type"] = layout.input_type
            return

        if draft.bundle_role == "input":
            position = layout.input_index(draft.index)
        elif draft.bundle_role == "output":
            position = layout.output_index(draft.index)
        else:
            position = layout.host_input_index(draft.index)
            if not draft.construct.receiver:
                draft.note = f"{draft.note}; set field {position} of the bundled input to {draft.construct.value}"
        draft.bindings["index"] = str(position)


def _degraded_transformation(kind: ConstructKind) -> str:
    if kind is ConstructKind.CYCLE_COUNT:
        return "cycle count replaced by constant zero"
    if kind is ConstructKind.HINT:
        return "channel merged"
    return "degraded"


def _bound_type(name: str, ctx: _Context) -> Optional[str]:
    """Declared type of a guest read bound to `name`, if any."""
    for construct in ctx.constructs:
        if construct.side is Side.GUEST and construct.binding == name and construct.declared_type:
            return construct.declared_type
    return None
