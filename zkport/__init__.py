"""zkport: transfer zkVM guest and host programs between proving platforms.

Typical use::

    import zkport

    report = zkport.assess(guest, host, "risc0", "sp1")
    plan = report.plan.confirm()
    artifacts = zkport.generate(plan)
"""

from .core.exceptions import (
    CompletenessError,
    ConfigurationError,
    GenerationError,
    MalformedSourceError,
    OrderingViolationError,
    PlanNotConfirmedError,
    PortError,
)
from .core.models import Artifacts, Report, TransferPlan
from .engine import TransferEngine, assess, generate
from .platforms import Platform

__version__ = "0.1.0"

__all__ = [
    "assess",
    "generate",
    "TransferEngine",
    "Platform",
    "Report",
    "TransferPlan",
    "Artifacts",
    "PortError",
    "ConfigurationError",
    "MalformedSourceError",
    "OrderingViolationError",
    "CompletenessError",
    "GenerationError",
    "PlanNotConfirmedError",
]
