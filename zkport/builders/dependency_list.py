"""Logical dependency list for a generated transfer.

The list names crates, versions, features and the side that needs them. It
is handed to the build descriptor emitter, which owns manifest layout.
"""

from typing import Dict, List, Tuple

from packaging import version

from ..core.logger import get_logger
from ..core.models import ConstructKind, LogicalDependency, PrecompileStatus, Side, TransferPlan
from ..platforms import CapabilityModel

logger = get_logger(__name__)


def _merge(
    collected: Dict[Tuple[str, Side], LogicalDependency],
    dependency: LogicalDependency
) -> None:
    key = (dependency.name, dependency.side)
    existing = collected.get(key)

    if existing is None:
        collected[key] = dependency
        return

    features = tuple(sorted(set(existing.features) | set(dependency.features)))
    newer = dependency if version.parse(dependency.version) > version.parse(existing.version) else existing
    collected[key] = LogicalDependency(
        name=newer.name,
        version=newer.version,
        side=newer.side,
        features=features,
        reason=existing.reason,
    )


def collect_dependencies(plan: TransferPlan, model: CapabilityModel) -> List[LogicalDependency]:
    """Crates implied by the target platform and the constructs being emitted.

    Args:
        plan: A resolved transfer plan.
        model: Capability model the plan was resolved against.

    Returns:
        Dependencies ordered guest first, then host, each in discovery order.
    """
    profile = model.profile(plan.target_platform)
    collected: Dict[Tuple[str, Side], LogicalDependency] = {}

    for dependency in model.dependencies(plan.target_platform):
        if dependency.side is Side.HOST and not plan.has_host:
            continue
        _merge(collected, LogicalDependency(
            name=dependency.name,
            version=dependency.version,
            side=dependency.side,
            features=tuple(dependency.features),
            reason=f"{profile.display_name} {dependency.side.value} runtime",
        ))

    for resolution in plan.resolutions:
        construct = resolution.construct
        if construct.kind is not ConstructKind.PRECOMPILE_CALL or resolution.dropped:
            continue

        entry = profile.precompiles.get(construct.operation or "")
        if entry is None:
            continue

        if entry.status is PrecompileStatus.ACCELERATED and entry.crate:
            crate, reason = entry.crate, f"accelerated {construct.operation}"
        elif entry.status is PrecompileStatus.SOFTWARE:
            fallback = model.software_fallback(construct.operation)
            crate, reason = fallback.crate, f"software {construct.operation}"
        else:
            continue

        _merge(collected, LogicalDependency(
            name=crate.name,
            version=crate.version,
            side=Side.GUEST,
            features=tuple(crate.features),
            reason=reason,
        ))

    dependencies = sorted(collected.values(), key=lambda d: 0 if d.side is Side.GUEST else 1)
    logger.debug(f"Collected {len(dependencies)} dependencies for {plan.target_platform.value}")
    return dependencies
