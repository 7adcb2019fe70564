import pytest

from zkport.core.exceptions import CompletenessError
from zkport.core.models import AnalysisFailure, Side, WarningCode
from zkport.generators import ReportBuilder

from .sources import RISC0_CHUNK_GUEST, SP1_GUEST, SP1_HOST, SPLIT_GUEST, SPLIT_HOST


@pytest.fixture
def builder(model):
    return ReportBuilder(model)


def test_buckets_cover_every_construct(sequenced, builder):
    report = builder.build(sequenced(SP1_GUEST, SP1_HOST, "sp1", "openvm"))

    assert report.total == 5
    assert sorted(report.direct + report.adapted + report.unsupported) == list(range(5))
    assert report.generatable
    assert report.ordering_violation is None


def test_bundled_reads_are_unsupported(sequenced, builder):
    report = builder.build(sequenced(RISC0_CHUNK_GUEST, None, "risc0", "jolt"))

    assert report.direct == []
    assert report.adapted == [0]
    assert report.unsupported == [1, 2, 3, 4, 5]
    assert [w.code for w in report.warnings] == [
        WarningCode.SOURCE_IMPORT,
        WarningCode.ENTRY_MODEL,
        *[WarningCode.STREAMING_IO] * 5,
        WarningCode.HOST_CROSSCHECK_SKIPPED,
    ]
    assert report.generatable


def test_confirmation_warnings(sequenced, builder):
    report = builder.build(sequenced(SPLIT_GUEST, SPLIT_HOST, "sp1", "nexus"))

    assert len(report.requires_confirmation) == 4
    assert all(w.code is WarningCode.CHANNEL_SPLIT_UNCONFIRMED for w in report.requires_confirmation)


def test_dependencies_attached(sequenced, builder):
    report = builder.build(sequenced(SP1_GUEST, SP1_HOST, "sp1", "openvm"))

    assert [d.name for d in report.dependencies] == ["openvm", "openvm-sdk"]


def test_failures_suppress_dependencies(sequenced, builder):
    plan = sequenced(SP1_GUEST, None, "sp1", "openvm")
    failure = AnalysisFailure(Side.HOST, "Unterminated string literal", 10, 2, 3)
    report = builder.build(plan.extend(failures=(failure,)))

    assert report.dependencies == []
    assert report.failures == [failure]
    assert not report.generatable


def test_missing_resolution_is_a_completeness_error(sequenced, builder):
    plan = sequenced(SP1_GUEST, None, "sp1", "openvm")

    with pytest.raises(CompletenessError) as excinfo:
        builder.build(plan.extend(resolutions=plan.resolutions[:-1]))
    assert excinfo.value.indices == [2]
    assert excinfo.value.expected == 3
    assert excinfo.value.actual == 2


def test_duplicate_resolution_is_a_completeness_error(sequenced, builder):
    plan = sequenced(SP1_GUEST, None, "sp1", "openvm")

    with pytest.raises(CompletenessError) as excinfo:
        builder.build(plan.extend(resolutions=plan.resolutions + plan.resolutions[:1]))
    assert excinfo.value.indices == [0]
    assert "Offending constructs: [0]" in str(excinfo.value)


def test_to_dict(sequenced, builder):
    data = builder.build(sequenced(SP1_GUEST, None, "sp1", "openvm")).to_dict()

    assert data["source_platform"] == "sp1"
    assert data["target_platform"] == "openvm"
    assert data["counts"] == {"direct": 3, "adapted": 0, "unsupported": 0}
    read = data["constructs"][1]
    assert read["side"] == "guest"
    assert read["kind"] == "StructuredRead"
    assert read["line"] == 5
    assert read["action"] == "DirectMap"
    assert data["warnings"] == [{
        "code": "host_crosscheck_skipped",
        "message": data["warnings"][0]["message"],
        "construct": None,
        "requires_confirmation": False,
    }]
    assert data["ordering_violation"] is None
    assert data["generatable"] is True
