"""Code generation for confirmed transfer plans.

Pure spans are copied byte for byte. Each construct span is replaced by its
instantiated rewrite template; constructs nested in another construct's
arguments are rewritten first and substituted into the parent's ${args}.
Every Adapt or Unsupported rewrite is prefixed with a block comment naming
the transformation so the output stays reviewable.
"""

import itertools
from typing import Dict, Iterator, List, Optional, Tuple

from ..analyzers import lexer
from ..builders import collect_dependencies
from ..core.config import settings
from ..core.exceptions import CompletenessError, GenerationError, OrderingViolationError, PlanNotConfirmedError
from ..core.logger import LoggerMixin, log_execution_time
from ..core.models import Action, Artifacts, ChangeLogEntry, Construct, PureSpan, Resolution, TransferPlan
from ..core.templating import render
from ..platforms import CapabilityModel


def _strip_borrow(arg: str) -> str:
    arg = arg.strip()
    if arg.startswith("&mut "):
        return arg[5:].strip()
    return arg.lstrip("&").strip()


class CodeGenerator(LoggerMixin):
    """Emits target guest and host source from a confirmed plan."""

    def __init__(self, model: CapabilityModel, annotation_tag: Optional[str] = None):
        self.model = model
        self.annotation_tag = annotation_tag or settings.annotation_tag

    @log_execution_time
    def generate(self, plan: TransferPlan) -> Artifacts:
        """Produce target sources, a change log and the dependency list.

        Raises:
            GenerationError: If any source unit failed analysis.
            OrderingViolationError: If the sequencer found an ordering violation.
            CompletenessError: If a construct has no resolution.
            PlanNotConfirmedError: If the plan was never confirmed.
        """
        self._check(plan)

        resolutions = {r.construct_index: r for r in plan.resolutions}
        counter = itertools.count()
        change_log: List[ChangeLogEntry] = []

        guest = self._emit(plan.guest_units, resolutions, counter, change_log)
        host = self._emit(plan.host_units, resolutions, counter, change_log) if plan.has_host else None

        dependencies = collect_dependencies(plan, self.model)
        self.logger.info(
            f"Generated {plan.target_platform.value} sources: {len(change_log)} constructs rewritten, "
            f"{len(dependencies)} dependencies"
        )
        return Artifacts(
            guest_source=guest,
            host_source=host,
            change_log=tuple(change_log),
            dependencies=tuple(dependencies),
        )

    def _check(self, plan: TransferPlan) -> None:
        if plan.failures:
            failure = plan.failures[0]
            raise GenerationError(
                f"Cannot generate: {failure.side.value} source failed analysis at "
                f"line {failure.line}, column {failure.column}: {failure.message}"
            )

        if plan.sequence is None:
            raise GenerationError("Cannot generate: plan was never sequenced")

        violation = plan.sequence.violation
        if violation is not None:
            raise OrderingViolationError(
                f"Cannot generate: {violation.message}",
                guest_indices=list(violation.guest_indices),
                host_indices=list(violation.host_indices),
            )

        expected = len(plan.constructs)
        indices = [r.construct_index for r in plan.resolutions]
        if sorted(indices) != list(range(expected)):
            missing = sorted(set(range(expected)) - set(indices))
            raise CompletenessError(
                "Cannot generate: plan does not resolve every construct exactly once",
                expected=expected,
                actual=len(indices),
                indices=missing,
            )

        if not plan.confirmed:
            raise PlanNotConfirmedError(
                "Cannot generate: plan has not been confirmed",
                context={"requires_confirmation": [w.message for w in plan.all_warnings() if w.requires_confirmation]},
            )

    def _emit(
        self,
        units,
        resolutions: Dict[int, Resolution],
        counter: Iterator[int],
        change_log: List[ChangeLogEntry]
    ) -> str:
        parts = []
        for unit in units:
            if isinstance(unit, PureSpan):
                parts.append(unit.text)
            else:
                parts.append(self._render(unit, resolutions, counter, change_log))
        return "".join(parts)

    def _render(
        self,
        construct: Construct,
        resolutions: Dict[int, Resolution],
        counter: Iterator[int],
        change_log: List[ChangeLogEntry]
    ) -> str:
        index = next(counter)
        resolution = resolutions[index]
        if resolution.construct != construct:
            raise GenerationError(
                f"Resolution #{index} does not belong to the construct at line {construct.source_span.line}",
                construct_index=index,
            )

        children = [(child, self._render(child, resolutions, counter, change_log)) for child in construct.nested]
        args = self._rewritten_args(construct, children)

        values: Dict[str, object] = {
            "type": construct.declared_type or "_",
            "args": ", ".join(args),
            "value": _strip_borrow(args[0]) if args else "",
            "entry": construct.entry_name or "main",
            "receiver": construct.receiver or "",
        }
        if construct.dest is not None:
            values["dest"] = construct.dest
        if construct.size is not None:
            values["size"] = construct.size
        values.update(dict(resolution.bindings))

        rewritten = render(resolution.rewrite_template, values, construct_index=index)
        if resolution.action is not Action.DIRECT_MAP:
            note = resolution.note or resolution.transformation or resolution.action.value
            comment = f"/* {self.annotation_tag}: {note} */"
            rewritten = f"{comment} {rewritten}" if rewritten else comment

        change_log.append(ChangeLogEntry(
            construct_index=index,
            side=construct.side,
            kind=construct.kind,
            action=resolution.action,
            line=construct.source_span.line,
            original=construct.text,
            rewritten=rewritten,
            note=resolution.note,
        ))
        return rewritten

    def _rewritten_args(self, construct: Construct, children: List[Tuple[Construct, str]]) -> List[str]:
        if not children or construct.args_span is None:
            return [arg.strip() for arg in construct.args]

        offset = construct.source_span.start
        start = construct.args_span.start - offset
        end = construct.args_span.end - offset

        pieces = []
        cursor = start
        for child, text in sorted(children, key=lambda pair: pair[0].source_span.start):
            child_start = child.source_span.start - offset
            child_end = child.source_span.end - offset
            pieces.append(construct.text[cursor:child_start])
            pieces.append(text)
            cursor = child_end
        pieces.append(construct.text[cursor:end])

        return [arg.strip() for arg in lexer.split_text("".join(pieces))]
