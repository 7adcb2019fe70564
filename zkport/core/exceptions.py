"""Custom exceptions for the zkport transfer engine.

This module defines a hierarchy of exceptions specific to the platform
transfer process, providing clear error context and handling. Construct-local
problems (ambiguity, degradation, unsupported constructs) are never raised;
they travel as warnings on the resolution instead.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


class PortError(Exception):
    """Base exception for all transfer related errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(PortError):
    """Configuration, catalog or platform selection errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[Path] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_file = config_file
        self.suggestions = suggestions or []

    def __str__(self) -> str:
        parts = [super().__str__()]

        if self.config_file:
            parts.append(f"File: {self.config_file}")

        if self.suggestions:
            parts.append(f"Expected one of: {', '.join(self.suggestions)}")

        return "\n".join(parts)

    @classmethod
    def unknown_platform(cls, value: str, known: Sequence[str]) -> "ConfigurationError":
        """Create exception for a platform identifier outside the catalog."""
        return cls(
            f"Unknown platform: {value!r}",
            config_key="platform",
            suggestions=list(known)
        )

    @classmethod
    def invalid_catalog(cls, config_file: Optional[Path], detail: str) -> "ConfigurationError":
        """Create exception for a catalog file that fails validation."""
        return cls(
            f"Invalid platform catalog: {detail}",
            config_key="catalog",
            config_file=config_file
        )


class MalformedSourceError(PortError):
    """A source unit could not be tokenized.

    Fatal for the one unit being analyzed; other units of the same run are
    analyzed independently.
    """

    def __init__(
        self,
        message: str,
        side: Optional[str] = None,
        position: int = 0,
        line: int = 0,
        column: int = 0,
        snippet: str = ""
    ):
        super().__init__(message)
        self.side = side
        self.position = position
        self.line = line
        self.column = column
        self.snippet = snippet

    def __str__(self) -> str:
        location = f"{self.side or 'source'}:{self.line}:{self.column}"
        return f"{super().__str__()} (at {location}, offset {self.position})"

    @classmethod
    def at(cls, message: str, text: str, position: int, side: Optional[str] = None) -> "MalformedSourceError":
        """Create exception with line/column computed from a text offset."""
        line = text.count("\n", 0, position) + 1
        column = position - (text.rfind("\n", 0, position) + 1) + 1
        snippet = text[position:position + 40].splitlines()[0] if text[position:] else ""
        return cls(
            message,
            side=side,
            position=position,
            line=line,
            column=column,
            snippet=snippet
        )


class OrderingViolationError(PortError):
    """Guest reads and host writes no longer line up index for index."""

    def __init__(
        self,
        message: str,
        guest_indices: Optional[List[int]] = None,
        host_indices: Optional[List[int]] = None
    ):
        super().__init__(message)
        self.guest_indices = guest_indices or []
        self.host_indices = host_indices or []


class CompletenessError(PortError):
    """A transfer plan does not carry exactly one resolution per construct."""

    def __init__(
        self,
        message: str,
        expected: int = 0,
        actual: int = 0,
        indices: Optional[List[int]] = None
    ):
        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.indices = indices or []

    def __str__(self) -> str:
        parts = [super().__str__(), f"Expected {self.expected}, got {self.actual}"]
        if self.indices:
            parts.append(f"Offending constructs: {self.indices}")
        return "\n".join(parts)


class GenerationError(PortError):
    """Rewrite template instantiation or artifact emission errors."""

    def __init__(
        self,
        message: str,
        construct_index: Optional[int] = None,
        template: Optional[str] = None
    ):
        super().__init__(message)
        self.construct_index = construct_index
        self.template = template

    @classmethod
    def missing_placeholder(cls, construct_index: int, template: str, key: str) -> "GenerationError":
        """Create exception for a template referencing an unknown capture."""
        return cls(
            f"Template placeholder '${key}' has no value for construct #{construct_index}",
            construct_index=construct_index,
            template=template
        )


class PlanNotConfirmedError(PortError):
    """generate() was called with a plan the caller never confirmed."""
