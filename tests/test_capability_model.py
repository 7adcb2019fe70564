import pytest
import yaml

from zkport.core.exceptions import ConfigurationError
from zkport.core.models import Alignment, ConstructKind, EntryStyle, Fallback, PrecompileStatus, Side
from zkport.platforms import CapabilityModel, Degraded, Platform, Supported, Unsupported
from zkport.platforms.capability_model import DEFAULT_CATALOG


def test_catalog_has_a_row_per_platform(model):
    assert [p for p, _ in model.profiles()] == list(Platform)


@pytest.mark.parametrize("platform, entry, alignment, hints, cycles", [
    (Platform.SP1, EntryStyle.MACRO, Alignment.BYTE_ALIGNED, False, False),
    (Platform.RISC0, EntryStyle.MACRO, Alignment.WORD_ALIGNED, False, True),
    (Platform.OPENVM, EntryStyle.MACRO, Alignment.WORD_ALIGNED, False, False),
    (Platform.NEXUS, EntryStyle.ATTRIBUTE, Alignment.BYTE_ALIGNED, True, True),
    (Platform.JOLT, EntryStyle.FUNCTION, Alignment.NOT_APPLICABLE, True, False),
])
def test_profile_attributes(model, platform, entry, alignment, hints, cycles):
    profile = model.profile(platform)

    assert profile.entry_style is entry
    assert profile.alignment is alignment
    assert profile.hint_channel_present is hints
    assert profile.cycle_count_supported is cycles


def test_only_jolt_lacks_streaming_io(model):
    streaming = {p for p, profile in model.profiles() if not profile.streaming_io_supported}
    assert streaming == {Platform.JOLT}


def test_profile_accepts_identifiers(model):
    assert model.profile("RISC-0") is model.profile(Platform.RISC0)


def test_supported_capability_uses_side_template(model):
    capability = model.capability(Platform.OPENVM, ConstructKind.STRUCTURED_READ)
    assert capability == Supported("openvm::io::read::<${type}>()")

    host = model.capability(Platform.RISC0, ConstructKind.STRUCTURED_COMMIT, side=Side.HOST)
    assert host == Supported("${receiver}.write(${args}).unwrap()")


def test_degraded_cycle_count(model):
    capability = model.capability(Platform.SP1, ConstructKind.CYCLE_COUNT)

    assert isinstance(capability, Degraded)
    assert capability.template == "0u64"
    assert "cycle counting" in capability.penalty_note


def test_jolt_streaming_reads_bundle(model):
    capability = model.capability(Platform.JOLT, ConstructKind.RAW_READ)

    assert isinstance(capability, Unsupported)
    assert capability.fallback_policy is Fallback.BUNDLE
    assert capability.template == "${dest}.copy_from_slice(&zkport_input().${index}.take().unwrap())"


def test_missing_template_is_impossible(model):
    capability = model.capability(Platform.SP1, ConstructKind.HINT, side=Side.HOST)
    assert isinstance(capability, Degraded)

    capability = model.capability(Platform.JOLT, ConstructKind.STRUCTURED_READ, side=Side.HOST)
    assert isinstance(capability, Unsupported)
    assert capability.fallback_policy is Fallback.IMPOSSIBLE


def test_precompile_capabilities(model):
    assert isinstance(
        model.capability(Platform.SP1, ConstructKind.PRECOMPILE_CALL, operation="sha256"), Supported
    )

    software = model.capability(Platform.NEXUS, ConstructKind.PRECOMPILE_CALL, operation="sha256")
    assert isinstance(software, Degraded)
    assert software.template.startswith("<sha2::Sha256")

    missing = model.capability(Platform.NEXUS, ConstructKind.PRECOMPILE_CALL, operation="bn254_add")
    assert isinstance(missing, Unsupported)
    assert missing.fallback_policy is Fallback.IMPOSSIBLE

    unknown = model.capability(Platform.SP1, ConstructKind.PRECOMPILE_CALL, operation="blake3")
    assert isinstance(unknown, Unsupported)


def test_precompile_table(model):
    table = model.profile(Platform.JOLT).precompile_table
    assert table["sha256"] is PrecompileStatus.ACCELERATED
    assert table["bn254_add"] is PrecompileStatus.UNAVAILABLE


def test_dependencies(model):
    sides = {(d.name, d.side) for d in model.dependencies(Platform.RISC0)}
    assert sides == {("risc0-zkvm", Side.GUEST), ("risc0-zkvm", Side.HOST)}


def test_unknown_platform():
    with pytest.raises(ConfigurationError) as excinfo:
        Platform.parse("zksync")

    assert "zksync" in str(excinfo.value)
    assert excinfo.value.suggestions == [p.value for p in Platform]


def test_missing_catalog_file(tmp_path):
    with pytest.raises(ConfigurationError, match="file not found"):
        CapabilityModel.load(tmp_path / "absent.yaml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("platforms: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="invalid YAML"):
        CapabilityModel.load(path)


def test_catalog_missing_rows(tmp_path):
    raw = yaml.safe_load(DEFAULT_CATALOG.read_text(encoding="utf-8"))
    del raw["platforms"]["jolt"]
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid platform catalog") as excinfo:
        CapabilityModel.load(path)
    assert excinfo.value.config_file == path


def test_software_precompile_needs_fallback(tmp_path):
    raw = yaml.safe_load(DEFAULT_CATALOG.read_text(encoding="utf-8"))
    raw["platforms"]["nexus"]["precompiles"]["bn254_add"] = {"status": "Software"}
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="no software fallback"):
        CapabilityModel.load(path)


def test_invalid_crate_version(tmp_path):
    raw = yaml.safe_load(DEFAULT_CATALOG.read_text(encoding="utf-8"))
    raw["software_fallbacks"]["sha256"]["crate"]["version"] = "not-a-version"
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid crate version"):
        CapabilityModel.load(path)
