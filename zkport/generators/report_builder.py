"""Compatibility report over a resolved and sequenced plan."""

from collections import Counter
from typing import Optional

from ..builders import collect_dependencies
from ..core.exceptions import CompletenessError
from ..core.logger import LoggerMixin
from ..core.models import Action, Report, TransferPlan
from ..platforms import CapabilityModel


class ReportBuilder(LoggerMixin):
    """Builds the read-only Report view of a TransferPlan."""

    def __init__(self, model: Optional[CapabilityModel] = None):
        self.model = model

    def build(self, plan: TransferPlan) -> Report:
        """Bucket every construct by action.

        Raises:
            CompletenessError: If the buckets do not cover every construct
                exactly once.
        """
        total = len(plan.constructs)
        self._check_completeness(plan, total)

        buckets = {action: [] for action in Action}
        for resolution in plan.resolutions:
            buckets[resolution.action].append(resolution.construct_index)

        counted = sum(len(indices) for indices in buckets.values())
        if counted != total:
            raise CompletenessError(
                "Report buckets do not cover every construct",
                expected=total,
                actual=counted,
            )

        report = Report(
            source_platform=plan.source_platform,
            target_platform=plan.target_platform,
            total=total,
            direct=buckets[Action.DIRECT_MAP],
            adapted=buckets[Action.ADAPT],
            unsupported=buckets[Action.UNSUPPORTED],
            warnings=plan.all_warnings(),
            failures=list(plan.failures),
            ordering_violation=plan.sequence.violation if plan.sequence else None,
            dependencies=collect_dependencies(plan, self.model) if self.model and not plan.failures else [],
            plan=plan,
        )

        self.logger.info(
            f"Report: {total} constructs, {len(report.direct)} direct, {len(report.adapted)} adapted, "
            f"{len(report.unsupported)} unsupported, {len(report.warnings)} warnings"
        )
        return report

    def _check_completeness(self, plan: TransferPlan, total: int) -> None:
        counts = Counter(r.construct_index for r in plan.resolutions)
        offending = sorted(
            {i for i, n in counts.items() if n != 1 or not 0 <= i < total}
            | {i for i in range(total) if i not in counts}
        )
        if offending:
            raise CompletenessError(
                "Every construct must carry exactly one resolution",
                expected=total,
                actual=len(plan.resolutions),
                indices=offending,
            )
