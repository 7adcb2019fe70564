"""Shared fixtures: the packaged capability model and resolution helpers."""

import pytest

from zkport.analyzers import SourceAnalyzer
from zkport.core.models import Side, TransferPlan
from zkport.platforms import CapabilityModel, Platform
from zkport.resolvers import CompatibilityResolver, IOSequencer


@pytest.fixture(scope="session")
def model():
    """The packaged platform catalog."""
    return CapabilityModel.load()


@pytest.fixture
def analyzer(model):
    return SourceAnalyzer(model)


@pytest.fixture
def resolve(model):
    """Analyze and resolve a program without sequencing it."""
    analyzer = SourceAnalyzer(model)
    resolver = CompatibilityResolver(model)

    def _resolve(guest, host, source, target):
        source = Platform.parse(source)
        guest_result = analyzer.analyze(guest, Side.GUEST, source)
        host_result = analyzer.analyze(host, Side.HOST, source) if host is not None else None
        plan = TransferPlan(
            source_platform=source,
            target_platform=Platform.parse(target),
            guest_units=guest_result.units,
            host_units=host_result.units if host_result else (),
            guest_source=guest,
            host_source=host,
            warnings=guest_result.warnings + (host_result.warnings if host_result else ()),
        )
        return resolver.resolve(plan)

    return _resolve


@pytest.fixture
def sequenced(resolve):
    """Analyze, resolve and sequence a program."""
    sequencer = IOSequencer()

    def _sequenced(guest, host, source, target):
        return sequencer.sequence(resolve(guest, host, source, target))

    return _sequenced
