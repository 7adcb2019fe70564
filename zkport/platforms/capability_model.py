"""Platform capability model backed by the packaged catalog.yaml.

The catalog is loaded and validated once; the resulting CapabilityModel is a
read-only handle passed explicitly to the analyzer, resolver and generator.
Everything platform specific lives in the catalog rows, so engine code only
ever branches on profile attributes.
"""

import functools
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

import yaml
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ..core.config import settings
from ..core.exceptions import ConfigurationError
from ..core.logger import get_logger
from ..core.models import (
    Alignment,
    ConstructKind,
    EntryStyle,
    Fallback,
    PrecompileStatus,
    Side,
)

logger = get_logger(__name__)

DEFAULT_CATALOG = Path(__file__).parent / "catalog.yaml"

_KIND_NAMES = {kind.value for kind in ConstructKind}
_TEMPLATE_KEYS = _KIND_NAMES | {"RawReadPadded"}


class CrateRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    features: List[str] = []

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        try:
            Version(v)
        except InvalidVersion as e:
            raise ValueError(f"Invalid crate version: {v}") from e
        return v


class PlatformDependency(CrateRef):
    side: Side


class Signature(BaseModel):
    """One recognizable call shape mapped to a construct kind."""
    model_config = ConfigDict(frozen=True)

    path: str
    kind: ConstructKind
    shape: Literal["call", "macro", "attribute", "invocation"] = "call"
    operation: Optional[str] = None

    @model_validator(mode="after")
    def check_operation(self) -> "Signature":
        if self.kind is ConstructKind.PRECOMPILE_CALL and not self.operation:
            raise ValueError(f"Precompile signature {self.path} needs an operation")
        return self


class HostMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    kind: ConstructKind
    fallible: bool = False


class SideTable(BaseModel):
    """Recognition patterns and rewrite templates for one side of a program."""
    model_config = ConfigDict(frozen=True)

    signatures: List[Signature] = []
    constructors: List[Signature] = []
    methods: List[HostMethod] = []
    templates: Dict[str, str] = {}
    bundle: Dict[str, str] = {}

    @field_validator("templates", "bundle")
    @classmethod
    def validate_template_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(v) - _TEMPLATE_KEYS)
        if unknown:
            raise ValueError(f"Unknown template keys: {unknown}")
        return v


class CapabilityEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["supported", "degraded", "unsupported"]
    template: Optional[str] = None
    note: Optional[str] = None
    fallback: Literal["bundle", "stub"] = "stub"

    @model_validator(mode="after")
    def check_template(self) -> "CapabilityEntry":
        if self.status == "degraded" and (self.template is None or not self.note):
            raise ValueError("Degraded capabilities need a template and a note")
        return self


class PrecompileEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PrecompileStatus
    template: Optional[str] = None
    crate: Optional[CrateRef] = None

    @model_validator(mode="after")
    def check_template(self) -> "PrecompileEntry":
        if self.status is PrecompileStatus.ACCELERATED and not self.template:
            raise ValueError("Accelerated precompiles need a template")
        return self


class SoftwareFallback(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: str
    crate: CrateRef


class PlatformProfile(BaseModel):
    """One platform's capability description."""
    model_config = ConfigDict(frozen=True)

    display_name: str
    entry_style: EntryStyle
    host_setup: Literal["stdin", "builder", "invocation"]
    alignment: Alignment
    hint_channel_present: bool
    streaming_io_supported: bool
    cycle_count_supported: bool
    stub_value: str = "Default::default()"
    dependencies: List[PlatformDependency] = []
    guest: SideTable = SideTable()
    host: SideTable = SideTable()
    capabilities: Dict[str, CapabilityEntry] = {}
    host_capabilities: Dict[str, CapabilityEntry] = {}
    precompiles: Dict[str, PrecompileEntry] = {}

    @field_validator("capabilities", "host_capabilities")
    @classmethod
    def validate_capability_keys(cls, v: Dict[str, CapabilityEntry]) -> Dict[str, CapabilityEntry]:
        unknown = sorted(set(v) - _KIND_NAMES)
        if unknown:
            raise ValueError(f"Unknown construct kinds: {unknown}")
        return v

    @property
    def precompile_table(self) -> Dict[str, PrecompileStatus]:
        return {name: entry.status for name, entry in self.precompiles.items()}

    @property
    def single_shot(self) -> bool:
        return self.entry_style is EntryStyle.FUNCTION

    def side_table(self, side: Side) -> SideTable:
        return self.guest if side is Side.GUEST else self.host


class Catalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    software_fallbacks: Dict[str, SoftwareFallback] = {}
    platforms: Dict[str, PlatformProfile]

    @model_validator(mode="after")
    def check_rows(self) -> "Catalog":
        from . import Platform

        expected = {p.value for p in Platform}
        present = set(self.platforms)
        if expected != present:
            raise ValueError(
                f"Catalog rows {sorted(present)} do not match platforms {sorted(expected)}"
            )
        for name, profile in self.platforms.items():
            for operation, entry in profile.precompiles.items():
                if entry.status is PrecompileStatus.SOFTWARE and operation not in self.software_fallbacks:
                    raise ValueError(f"{name}: {operation} is Software but has no software fallback")
        return self


@dataclass(frozen=True)
class Supported:
    template: str


@dataclass(frozen=True)
class Degraded:
    template: str
    penalty_note: str


@dataclass(frozen=True)
class Unsupported:
    fallback_policy: Fallback
    note: str
    template: Optional[str] = None


Capability = Union[Supported, Degraded, Unsupported]


class CapabilityModel:
    """Read-only query surface over the validated catalog."""

    def __init__(self, catalog: Catalog, source: Optional[Path] = None):
        from . import Platform

        self.catalog = catalog
        self.source = source
        self._profiles = {p: catalog.platforms[p.value] for p in Platform}

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "CapabilityModel":
        """Load and validate a catalog file.

        Raises:
            ConfigurationError: If the file is missing or fails validation.
        """
        path = Path(path) if path else DEFAULT_CATALOG
        logger.debug(f"Loading platform catalog from {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError.invalid_catalog(path, "file not found")
        except yaml.YAMLError as e:
            raise ConfigurationError.invalid_catalog(path, f"invalid YAML syntax: {e}")

        try:
            catalog = Catalog.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError.invalid_catalog(path, str(e)) from e

        logger.info(f"Loaded catalog with {len(catalog.platforms)} platforms")
        return cls(catalog, source=path)

    def profile(self, platform) -> PlatformProfile:
        from . import Platform

        return self._profiles[Platform.parse(platform)]

    def profiles(self):
        """(platform, profile) pairs in enumeration order."""
        return list(self._profiles.items())

    def capability(
        self,
        platform,
        kind: ConstructKind,
        operation: Optional[str] = None,
        side: Side = Side.GUEST
    ) -> Capability:
        """Answer whether a construct kind can be expressed on a platform."""
        profile = self.profile(platform)

        if kind is ConstructKind.PRECOMPILE_CALL:
            return self._precompile_capability(profile, operation)

        table = profile.side_table(side)
        overrides = profile.capabilities if side is Side.GUEST else profile.host_capabilities
        entry = overrides.get(kind.value)

        if entry is not None:
            if entry.status == "supported":
                return Supported(entry.template or table.templates[kind.value])
            if entry.status == "degraded":
                return Degraded(entry.template, entry.note)
            policy = Fallback.BUNDLE if entry.fallback == "bundle" else Fallback.IMPOSSIBLE
            return Unsupported(
                policy,
                entry.note or f"{kind.value} unavailable on target",
                table.bundle.get(kind.value),
            )

        if kind.value in table.templates:
            return Supported(table.templates[kind.value])

        return Unsupported(Fallback.IMPOSSIBLE, f"{kind.value} has no equivalent on {profile.display_name}")

    def _precompile_capability(self, profile: PlatformProfile, operation: Optional[str]) -> Capability:
        entry = profile.precompiles.get(operation or "")

        if entry is None or entry.status is PrecompileStatus.UNAVAILABLE:
            return Unsupported(Fallback.IMPOSSIBLE, f"precompile {operation} unavailable on target")

        if entry.status is PrecompileStatus.ACCELERATED:
            return Supported(entry.template)

        fallback = self.catalog.software_fallbacks[operation]
        return Degraded(fallback.template, f"precompile {operation} degraded to software implementation")

    def template(self, platform, side: Side, key: str) -> Optional[str]:
        return self.profile(platform).side_table(side).templates.get(key)

    def software_fallback(self, operation: str) -> Optional[SoftwareFallback]:
        return self.catalog.software_fallbacks.get(operation)

    def dependencies(self, platform) -> List[PlatformDependency]:
        return list(self.profile(platform).dependencies)


@functools.lru_cache(maxsize=4)
def _cached_model(path: Optional[Path]) -> CapabilityModel:
    return CapabilityModel.load(path)


def load_model(path: Optional[Path] = None) -> CapabilityModel:
    """Process-wide model for the configured catalog, loaded on first use."""
    return _cached_model(path or settings.catalog_path)
