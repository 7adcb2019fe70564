"""Supported zkVM platforms and their capability model.

This package contains the closed platform catalog:
- sp1: SP1 (macro entry, byte-aligned streaming I/O)
- risc0: RISC Zero (macro entry, word-aligned streaming I/O)
- openvm: OpenVM (macro entry, word-aligned streaming I/O)
- nexus: Nexus (attribute entry, separate private hint input)
- jolt: Jolt (single-shot provable function)
"""

from enum import Enum

from ..core.exceptions import ConfigurationError


class Platform(Enum):
    """Supported source and target platforms."""
    SP1 = "sp1"
    RISC0 = "risc0"
    OPENVM = "openvm"
    NEXUS = "nexus"
    JOLT = "jolt"

    @classmethod
    def parse(cls, value) -> "Platform":
        """Resolve a platform identifier, rejecting anything outside the catalog."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "").replace("_", "")
        for platform in cls:
            if platform.value == normalized:
                return platform
        raise ConfigurationError.unknown_platform(str(value), [p.value for p in cls])


from .capability_model import (  # noqa: E402
    CapabilityModel,
    Degraded,
    PlatformProfile,
    Supported,
    Unsupported,
    load_model,
)

__all__ = [
    "Platform",
    "CapabilityModel",
    "PlatformProfile",
    "Supported",
    "Degraded",
    "Unsupported",
    "load_model",
]
