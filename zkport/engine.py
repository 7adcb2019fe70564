"""Transfer engine: analysis, resolution, sequencing, reporting, generation.

The engine wires the phases together. Guest and host are analyzed
concurrently; everything after the analysis barrier runs on one thread and
only extends the plan it was handed.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

from .analyzers import SourceAnalyzer
from .core.config import settings
from .core.exceptions import MalformedSourceError
from .core.logger import LoggerMixin, log_execution_time
from .core.models import AnalysisFailure, Artifacts, PortWarning, PureSpan, Report, Side, SourceSpan, TransferPlan
from .generators import CodeGenerator, ReportBuilder
from .platforms import CapabilityModel, Platform, load_model
from .resolvers import CompatibilityResolver, IOSequencer


class TransferEngine(LoggerMixin):
    """Runs platform transfers against one capability model."""

    def __init__(self, model: Optional[CapabilityModel] = None, max_workers: Optional[int] = None):
        self.model = model or load_model()
        self.max_workers = max_workers or settings.analysis_workers
        self.analyzer = SourceAnalyzer(self.model)
        self.resolver = CompatibilityResolver(self.model)
        self.sequencer = IOSequencer()
        self.report_builder = ReportBuilder(self.model)
        self.generator = CodeGenerator(self.model)

    @log_execution_time
    def assess(
        self,
        guest_source: str,
        host_source: Optional[str],
        source_platform,
        target_platform
    ) -> Report:
        """Analyze, resolve and sequence a program without generating anything.

        Args:
            guest_source: Guest program source text.
            host_source: Host program source text, or None when unavailable.
            source_platform: Platform the program is written against.
            target_platform: Platform to transfer to.

        Returns:
            Compatibility report; `report.plan` is the plan to confirm and
            hand to generate().

        Raises:
            ConfigurationError: If either platform is not in the catalog.
        """
        source = Platform.parse(source_platform)
        target = Platform.parse(target_platform)
        self.logger.info(f"Assessing transfer {source.value} -> {target.value}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            guest_future = executor.submit(self._analyze, guest_source, Side.GUEST, source)
            host_future = (
                executor.submit(self._analyze, host_source, Side.HOST, source)
                if host_source is not None else None
            )
            guest_units, guest_warnings, guest_failure = guest_future.result()
            if host_future is not None:
                host_units, host_warnings, host_failure = host_future.result()
            else:
                host_units, host_warnings, host_failure = (), (), None

        plan = TransferPlan(
            source_platform=source,
            target_platform=target,
            guest_units=guest_units,
            host_units=host_units,
            guest_source=guest_source,
            host_source=host_source,
            warnings=guest_warnings + host_warnings,
            failures=tuple(f for f in (guest_failure, host_failure) if f is not None),
        )

        plan = self.resolver.resolve(plan)
        plan = self.sequencer.sequence(plan)
        return self.report_builder.build(plan)

    def _analyze(
        self,
        text: str,
        side: Side,
        platform: Platform
    ) -> Tuple[tuple, Tuple[PortWarning, ...], Optional[AnalysisFailure]]:
        try:
            result = self.analyzer.analyze(text, side, platform)
            return result.units, result.warnings, None
        except MalformedSourceError as e:
            self.logger.error(f"Failed to analyze {side.value} source: {e}")
            failure = AnalysisFailure(
                side=side,
                message=e.args[0],
                position=e.position,
                line=e.line,
                column=e.column,
                snippet=e.snippet,
            )
            whole = PureSpan(side=side, source_span=SourceSpan(0, len(text)), text=text)
            return (whole,), (), failure

    def generate(self, plan: TransferPlan) -> Artifacts:
        """Emit target sources for a confirmed plan."""
        return self.generator.generate(plan)


_engine: Optional[TransferEngine] = None


def _default_engine() -> TransferEngine:
    global _engine
    if _engine is None:
        _engine = TransferEngine()
    return _engine


def assess(
    guest_source: str,
    host_source: Optional[str],
    source_platform,
    target_platform,
    model: Optional[CapabilityModel] = None
) -> Report:
    """Assess a transfer; see TransferEngine.assess."""
    engine = TransferEngine(model) if model is not None else _default_engine()
    return engine.assess(guest_source, host_source, source_platform, target_platform)


def generate(plan: TransferPlan, model: Optional[CapabilityModel] = None) -> Artifacts:
    """Generate target sources from a confirmed plan; see CodeGenerator.generate."""
    engine = TransferEngine(model) if model is not None else _default_engine()
    return engine.generate(plan)
