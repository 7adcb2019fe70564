"""Target source generation and compatibility reports."""

from .code_generator import CodeGenerator
from .report_builder import ReportBuilder

__all__ = ["CodeGenerator", "ReportBuilder"]
