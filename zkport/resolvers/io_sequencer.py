"""Ordering check between guest reads and host writes.

Streaming platforms pair the n-th guest read with the n-th host write.
Dropping a construct on one side silently shifts every later pairing, so
after resolution the sequencer recounts both streams and only lets the
plan through when they still line up.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..core.logger import LoggerMixin, log_execution_time
from ..core.models import (
    Construct,
    ConstructKind,
    Direction,
    OrderingViolation,
    PortWarning,
    Resolution,
    SequenceGap,
    SequenceReport,
    Side,
    TransferPlan,
    WarningCode,
)

_PAIRING_CLASSES = {
    ConstructKind.STRUCTURED_READ: "structured",
    ConstructKind.STRUCTURED_COMMIT: "structured",
    ConstructKind.ENTRY_POINT: "structured",
    ConstructKind.RAW_READ: "raw",
    ConstructKind.RAW_COMMIT: "raw",
    ConstructKind.HINT: "hint",
}


@dataclass(frozen=True)
class _Slot:
    """One position in the guest input stream."""
    original_index: int
    construct_index: int
    kind: ConstructKind
    dropped: bool


def _stream(constructs: Tuple[Construct, ...], resolutions: Tuple[Resolution, ...], side: Side) -> List[_Slot]:
    wanted = Direction.READ if side is Side.GUEST else Direction.WRITE
    entries = []

    for index, construct in enumerate(constructs):
        if construct.side is not side:
            continue
        if construct.kind is ConstructKind.ENTRY_POINT or construct.shape == "invocation":
            slots = construct.slot_count
        elif construct.direction is wanted:
            slots = 1
        else:
            continue
        if slots:
            entries.append((construct.source_span.start, index, construct.kind, slots))

    stream = []
    for _, index, kind, slots in sorted(entries):
        for _ in range(slots):
            stream.append(_Slot(len(stream), index, kind, resolutions[index].dropped))
    return stream


class IOSequencer(LoggerMixin):
    """Recounts guest reads against host writes after resolution."""

    @log_execution_time
    def sequence(self, plan: TransferPlan) -> TransferPlan:
        """Attach the sequence report to a resolved plan.

        Returns:
            The plan extended with a SequenceReport and sequencing warnings.
            An ordering violation is recorded on the report, which makes the
            plan ungeneratable.
        """
        constructs = plan.constructs
        guest = _stream(constructs, plan.resolutions, Side.GUEST)
        host = _stream(constructs, plan.resolutions, Side.HOST)

        kept_guest = [s for s in guest if not s.dropped]
        kept_host = [s for s in host if not s.dropped]
        gaps = tuple(
            SequenceGap(side, slot.original_index, slot.construct_index)
            for side, stream in ((Side.GUEST, guest), (Side.HOST, host))
            for slot in stream if slot.dropped
        )

        warnings: List[PortWarning] = []
        violation: Optional[OrderingViolation] = None

        if not plan.has_host:
            warnings.append(PortWarning(
                WarningCode.HOST_CROSSCHECK_SKIPPED,
                "no host source supplied; guest reads were not cross-checked against host writes",
            ))
        else:
            violation = self._cross_check(guest, host, kept_guest, kept_host)
            if violation is None:
                warnings.extend(self._gap_warnings(gaps))
                warnings.extend(self._pairing_warnings(kept_guest, kept_host))

        report = SequenceReport(
            guest_reads=len(kept_guest),
            host_writes=len(kept_host),
            guest_reindex=_reindex(kept_guest),
            host_reindex=_reindex(kept_host),
            gaps=gaps,
            cross_checked=plan.has_host,
            violation=violation,
        )

        if violation:
            self.logger.error(f"Ordering violation: {violation.message}")
        else:
            self.logger.info(f"Sequenced {len(kept_guest)} guest reads against {len(kept_host)} host writes")

        return plan.extend(sequence=report, warnings=plan.warnings + tuple(warnings))

    def _cross_check(self, guest, host, kept_guest, kept_host) -> Optional[OrderingViolation]:
        dropped_guest = {s.original_index for s in guest if s.dropped}
        dropped_host = {s.original_index for s in host if s.dropped}

        if dropped_guest != dropped_host:
            offending = dropped_guest ^ dropped_host
            return OrderingViolation(
                "dropped reads and writes no longer pair up at stream positions "
                f"{sorted(offending)}",
                guest_indices=_construct_indices(guest, offending),
                host_indices=_construct_indices(host, offending),
            )

        if len(kept_guest) != len(kept_host):
            shorter = min(len(kept_guest), len(kept_host))
            return OrderingViolation(
                f"{len(kept_guest)} guest reads but {len(kept_host)} host writes",
                guest_indices=tuple(sorted({s.construct_index for s in kept_guest[shorter:]})),
                host_indices=tuple(sorted({s.construct_index for s in kept_host[shorter:]})),
            )
        return None

    def _gap_warnings(self, gaps) -> List[PortWarning]:
        return [
            PortWarning(
                WarningCode.ORDERING_GAP,
                f"{gap.side.value} stream position {gap.original_index} dropped on both sides; "
                "later positions re-indexed",
                gap.construct_index,
            )
            for gap in gaps
        ]

    def _pairing_warnings(self, kept_guest, kept_host) -> List[PortWarning]:
        warnings = []
        for position, (read, write) in enumerate(zip(kept_guest, kept_host)):
            if _PAIRING_CLASSES.get(read.kind) != _PAIRING_CLASSES.get(write.kind):
                warnings.append(PortWarning(
                    WarningCode.PAIRING_MISMATCH,
                    f"stream position {position}: guest {read.kind.value} (construct #{read.construct_index}) "
                    f"paired with host {write.kind.value} (construct #{write.construct_index})",
                    read.construct_index,
                ))
        return warnings


def _construct_indices(stream: List[_Slot], positions) -> Tuple[int, ...]:
    return tuple(sorted({s.construct_index for s in stream if s.original_index in positions}))


def _reindex(kept: List[_Slot]) -> Tuple[Tuple[int, int], ...]:
    seen = {}
    for position, slot in enumerate(kept):
        seen.setdefault(slot.construct_index, position)
    return tuple(sorted(seen.items()))
