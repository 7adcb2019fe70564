"""Source analysis: recognition of platform constructs in Rust source."""

from .source_analyzer import AnalysisResult, SourceAnalyzer, flatten_constructs

__all__ = ["SourceAnalyzer", "AnalysisResult", "flatten_constructs"]
