import pytest

from zkport.core.exceptions import ConfigurationError
from zkport.core.models import Action, Alignment, ConstructKind, Fallback, Side, WarningCode
from zkport.platforms import Platform
from zkport.resolvers.compatibility_resolver import alignment_change

from .sources import (
    JOLT_GUEST,
    JOLT_HOST,
    RISC0_CHUNK_GUEST,
    RISC0_CYCLE_GUEST,
    RISC0_RAW_GUEST,
    SP1_GUEST,
    SP1_HOST,
    SPLIT_GUEST,
    SPLIT_HOST,
)


def _codes(resolution):
    return [w.code for w in resolution.warnings]


def test_one_resolution_per_construct_in_order(resolve):
    plan = resolve(SP1_GUEST, SP1_HOST, "sp1", "openvm")

    assert len(plan.resolutions) == len(plan.constructs) == 5
    assert [r.construct_index for r in plan.resolutions] == list(range(5))
    assert all(r.construct is c for r, c in zip(plan.resolutions, plan.constructs))


def test_same_model_platforms_map_directly(resolve):
    plan = resolve(SP1_GUEST, SP1_HOST, "sp1", "openvm")

    assert [r.action for r in plan.resolutions] == [Action.DIRECT_MAP] * 5
    assert plan.resolutions[1].rewrite_template == "openvm::io::read::<${type}>()"
    assert plan.resolutions[3].rewrite_template == "openvm_sdk::StdIn::default()"
    assert all(not r.warnings for r in plan.resolutions)


def test_resolution_is_deterministic(resolve):
    first = resolve(RISC0_CHUNK_GUEST, None, "risc0", "jolt")
    second = resolve(RISC0_CHUNK_GUEST, None, "risc0", "jolt")

    assert first.resolutions == second.resolutions
    assert first.bundle == second.bundle


def test_raw_chunks_bundle_into_single_shot_input(resolve):
    plan = resolve(RISC0_CHUNK_GUEST, None, "risc0", "jolt")
    entry, *reads = plan.resolutions

    assert entry.action is Action.ADAPT
    assert entry.transformation == "entry bundled into single-shot invocation"
    assert _codes(entry) == [WarningCode.ENTRY_MODEL]
    assert dict(entry.bindings) == {
        "input_type": "([u32; 8], [u32; 8], [u32; 8], [u32; 8], [u32; 8])",
        "output_type": "()",
        "input_slots": "(" + ", ".join(["Option<[u32; 8]>"] * 5) + ")",
        "output_slots": "()",
        "input_empty": "(None, None, None, None, None)",
        "output_empty": "()",
        "input_fill": "(Some(input.0), Some(input.1), Some(input.2), Some(input.3), Some(input.4))",
        "output_collect": "()",
    }

    assert len(reads) == 5
    for position, read in enumerate(reads):
        assert read.action is Action.UNSUPPORTED
        assert read.fallback is Fallback.BUNDLE
        assert read.bundled and not read.dropped
        assert dict(read.bindings) == {"index": str(position)}
        assert _codes(read) == [WarningCode.STREAMING_IO]


def test_bundled_commit_takes_bound_type(resolve):
    source = (
        "risc0_zkvm::guest::entry!(main);\n"
        "fn main() {\n"
        "    let x: u64 = risc0_zkvm::guest::env::read();\n"
        "    risc0_zkvm::guest::env::commit(&x);\n"
        "}\n"
    )
    plan = resolve(source, None, "risc0", "jolt")

    assert plan.bundle.input_type == "(u64,)"
    assert plan.bundle.output_type == "(u64,)"
    assert plan.resolutions[2].rewrite_template == "zkport_output().${index} = Some((${value}).clone())"
    bindings = dict(plan.resolutions[0].bindings)
    assert bindings["output_slots"] == "(Option<u64>,)"
    assert bindings["output_collect"] == "(output.0.take().unwrap(),)"


def test_dynamic_read_cannot_bundle(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    let data = sp1_zkvm::io::read::<Vec<u8>>();\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "jolt")
    read = plan.resolutions[1]

    assert read.dropped
    assert read.rewrite_template == "Default::default()"
    assert "no static size bound" in read.note
    assert _codes(read) == [WarningCode.UNSUPPORTED]
    assert plan.bundle.inputs == ()


def test_nominal_read_is_assumed_fixed_size(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    let p = sp1_zkvm::io::read::<Point>();\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "jolt")
    read = plan.resolutions[1]

    assert read.bundled
    assert _codes(read) == [WarningCode.ASSUMED_FIXED_SIZE, WarningCode.STREAMING_IO]


def test_read_in_loop_cannot_bundle(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    loop {\n"
        "        let x = sp1_zkvm::io::read::<u32>();\n"
        "    }\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "jolt")

    assert plan.resolutions[1].dropped
    assert "inside a loop" in plan.resolutions[1].note


def test_read_in_iterator_closure_cannot_bundle(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    let n: u32 = sp1_zkvm::io::read::<u32>();\n"
        "    let xs: Vec<u32> = (0..n).map(|_| sp1_zkvm::io::read::<u32>()).collect();\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "jolt")
    _, count, element = plan.resolutions

    assert count.bundled
    assert element.dropped
    assert "inside a loop" in element.note
    assert plan.bundle.input_type == "(u32,)"


def test_read_in_match_arm_loop_cannot_bundle(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    match mode() {\n"
        "        0 => for _ in 0..3 { let x = sp1_zkvm::io::read::<u32>(); },\n"
        "        _ => {}\n"
        "    }\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "jolt")

    assert plan.resolutions[1].dropped
    assert "inside a loop" in plan.resolutions[1].note


def test_cycle_count_degrades(resolve):
    plan = resolve(RISC0_CYCLE_GUEST, None, "risc0", "sp1")
    entry, cycles, read, commit = plan.resolutions

    assert entry.action is Action.DIRECT_MAP
    assert cycles.action is Action.ADAPT
    assert cycles.rewrite_template == "0u64"
    assert cycles.transformation == "cycle count replaced by constant zero"
    assert _codes(cycles) == [WarningCode.CYCLE_COUNT]
    assert read.action is commit.action is Action.DIRECT_MAP


def test_cycle_count_supported_maps_directly(resolve):
    plan = resolve(RISC0_CYCLE_GUEST, None, "risc0", "nexus")
    assert plan.resolutions[1].action is Action.DIRECT_MAP
    assert plan.resolutions[1].rewrite_template == "nexus_rt::cycle_count()"


def test_alignment_padding_removed(resolve):
    plan = resolve(RISC0_RAW_GUEST, None, "risc0", "sp1")
    reads = [r for r in plan.resolutions if r.construct.kind is ConstructKind.RAW_READ]

    assert len(reads) == 2
    for read in reads:
        assert read.action is Action.ADAPT
        assert read.note == "alignment padding removed"
        assert read.rewrite_template == "sp1_zkvm::io::read_slice(&mut ${dest})"
        assert _codes(read) == [WarningCode.ALIGNMENT]


def test_alignment_padding_added(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    let mut buf = [0u8; 5];\n"
        "    sp1_zkvm::io::read_slice(&mut buf);\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "risc0")
    read = plan.resolutions[1]

    assert read.action is Action.ADAPT
    assert read.note == "alignment padding added"
    assert dict(read.bindings) == {"words": "2"}
    assert "zkport_words" in read.rewrite_template


def test_alignment_padding_needs_size(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main(data: &mut Vec<u8>) {\n"
        "    sp1_zkvm::io::read_slice(data);\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "openvm")
    read = plan.resolutions[1]

    assert read.rewrite_template == "openvm::io::read_into(&mut ${dest})"
    assert "unknown" in read.warnings[0].message


def test_alignment_change():
    assert alignment_change(Alignment.WORD_ALIGNED, Alignment.BYTE_ALIGNED) == "removed"
    assert alignment_change(Alignment.BYTE_ALIGNED, Alignment.WORD_ALIGNED) == "added"
    assert alignment_change(Alignment.WORD_ALIGNED, Alignment.WORD_ALIGNED) is None
    assert alignment_change(Alignment.BYTE_ALIGNED, Alignment.NOT_APPLICABLE) is None


def test_entry_marker_converted(resolve):
    plan = resolve(SP1_GUEST, None, "sp1", "nexus")
    entry = plan.resolutions[0]

    assert entry.action is Action.ADAPT
    assert entry.rewrite_template == "#[nexus_rt::main]"
    assert entry.note == "entry marker converted from macro to attribute"


def test_channel_split(resolve):
    plan = resolve(SPLIT_GUEST, SPLIT_HOST, "sp1", "nexus")
    guest_entry, public, secret, commit, setup, write_public, write_secret = plan.resolutions

    assert public.note == "channel split: classified as proven input"
    assert public.rewrite_template == "nexus_rt::read_public_input::<${type}>()"
    assert secret.note == "channel split: classified as hint input"
    assert secret.rewrite_template == "nexus_rt::read_private_input::<${type}>()"
    assert commit.action is Action.DIRECT_MAP
    assert setup.action is Action.DIRECT_MAP
    assert write_public.rewrite_template == "${receiver}.write_public(${args})"
    assert write_secret.rewrite_template == "${receiver}.write_private(${args})"

    confirm = [w for r in plan.resolutions for w in r.warnings if w.requires_confirmation]
    assert [w.construct_index for w in confirm] == [1, 2, 5, 6]
    assert {w.code for w in confirm} == {WarningCode.CHANNEL_SPLIT_UNCONFIRMED}


def test_no_split_without_hint_channel(resolve):
    plan = resolve(SPLIT_GUEST, SPLIT_HOST, "sp1", "risc0")
    setup = plan.resolutions[4]

    assert [r.action for r in plan.resolutions[:4]] == [Action.DIRECT_MAP] * 4
    assert setup.note == "host setup converted from stdin to builder"
    assert all(w.code is not WarningCode.CHANNEL_SPLIT_UNCONFIRMED for r in plan.resolutions for w in r.warnings)


def test_hint_merges_into_stream(resolve):
    source = (
        "#[nexus_rt::main]\n"
        "fn main() {\n"
        "    let k = nexus_rt::read_private_input::<u64>();\n"
        "}\n"
    )
    plan = resolve(source, None, "nexus", "sp1")
    entry, hint = plan.resolutions

    assert entry.note == "entry marker converted from attribute to macro"
    assert entry.rewrite_template == "sp1_zkvm::entrypoint!(${entry});"
    assert hint.action is Action.ADAPT
    assert hint.rewrite_template == "sp1_zkvm::io::read::<${type}>()"
    assert _codes(hint) == [WarningCode.CHANNEL_MERGED]


def test_precompiles(resolve):
    source = (
        "sp1_zkvm::entrypoint!(main);\n"
        "pub fn main() {\n"
        "    let digest = sp1_zkvm::precompiles::sha256(&data);\n"
        "    let sum = sp1_zkvm::precompiles::bn254_add(&p, &q);\n"
        "}\n"
    )
    plan = resolve(source, None, "sp1", "nexus")
    _, sha, bn = plan.resolutions

    assert sha.action is Action.ADAPT
    assert sha.transformation == "precompile degraded to software"
    assert _codes(sha) == [WarningCode.PRECOMPILE_DEGRADED]

    assert bn.dropped
    assert bn.rewrite_template == "Default::default()"
    assert _codes(bn) == [WarningCode.UNSUPPORTED]


def test_precompile_accelerated_on_target(resolve):
    source = "fn main() { let d = sp1_zkvm::precompiles::sha256(&data); }\n"
    plan = resolve(source, None, "sp1", "jolt")

    assert plan.resolutions[0].action is Action.DIRECT_MAP
    assert plan.resolutions[0].rewrite_template == "jolt_inlines_sha2::Sha256::digest(${args})"


def test_single_shot_entry_unpacks(resolve):
    plan = resolve(JOLT_GUEST, JOLT_HOST, "jolt", "sp1")
    entry, invocation = plan.resolutions

    assert entry.action is Action.ADAPT
    assert entry.transformation == "signature unpacked into streaming prologue"
    assert entry.rewrite_template == (
        "sp1_zkvm::entrypoint!(main);\n"
        "fn main() {\n"
        "    let n = sp1_zkvm::io::read::<u32>();\n"
        "    sp1_zkvm::io::commit(&fib(n));\n"
        "}\n"
        "\n"
        "fn fib(n: u32) -> u128"
    )

    assert invocation.construct.side is Side.HOST
    assert invocation.action is Action.ADAPT
    assert invocation.rewrite_template == (
        "{ let mut zkport_stdin = sp1_sdk::SP1Stdin::new(); zkport_stdin.write(&50); zkport_stdin }"
    )


def test_single_shot_advice_reads_hint_channel(resolve):
    source = "#[jolt::provable]\nfn check(x: u64, y: jolt::UntrustedAdvice<u64>) {\n}\n"
    entry = resolve(source, None, "jolt", "nexus").resolutions[0]

    assert "    let x = nexus_rt::read_public_input::<u64>();" in entry.rewrite_template
    assert "    let y = nexus_rt::read_private_input::<u64>();" in entry.rewrite_template
    assert "    check(x, y);" in entry.rewrite_template
    assert entry.note.endswith("advice parameters are now read from the hint channel")


def test_single_shot_to_single_shot_keeps_entry(resolve):
    plan = resolve(JOLT_GUEST, JOLT_HOST, "jolt", "jolt")

    assert [r.action for r in plan.resolutions] == [Action.DIRECT_MAP, Action.DIRECT_MAP]
    assert plan.resolutions[0].rewrite_template == "#[jolt::provable]\nfn fib(n: u32) -> u128"


def test_host_writes_bundle_for_single_shot_target(resolve):
    plan = resolve(SP1_GUEST, SP1_HOST, "sp1", "jolt")
    setup, write = plan.resolutions[3:]

    assert setup.action is Action.ADAPT
    assert setup.rewrite_template == "<${input_type}>::default()"
    assert dict(setup.bindings)["input_type"] == "(u32,)"
    assert write.bundled
    assert write.rewrite_template == "${receiver}.${index} = ${value}"
    assert plan.bundle.host_inputs == (4,)


def test_commit_of_unknown_type_cannot_bundle(resolve):
    plan = resolve(SP1_GUEST, SP1_HOST, "sp1", "jolt")
    entry, _, commit = plan.resolutions[:3]

    assert commit.dropped
    assert commit.rewrite_template == "()"
    assert "type of committed value result is unknown" in commit.note
    assert _codes(commit) == [WarningCode.UNSUPPORTED]
    assert plan.bundle.outputs == ()
    assert dict(entry.bindings)["output_type"] == "()"
    assert "_" not in dict(entry.bindings)["output_slots"]


def test_raw_commit_bundles_as_bytes(resolve):
    source = (
        "risc0_zkvm::guest::entry!(main);\n"
        "fn main() {\n"
        "    let digest = [0u8; 32];\n"
        "    risc0_zkvm::guest::env::commit_slice(&digest);\n"
        "}\n"
    )
    plan = resolve(source, None, "risc0", "jolt")

    assert plan.bundle.output_type == "(Vec<u8>,)"
    assert plan.resolutions[1].rewrite_template == "zkport_output().${index} = Some((${value}).to_vec())"


def test_unknown_target_rejected():
    with pytest.raises(ConfigurationError, match="Unknown platform"):
        Platform.parse("cairo")
