"""Configuration management for the zkport transfer engine.

This module provides centralized configuration management using Pydantic
for environment variable handling and validation.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables and defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ZKPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Platform catalog (None means the packaged catalog.yaml)
    catalog_path: Optional[Path] = None

    # Analysis limits
    max_constructs: int = Field(4096, description="Cap on recognized constructs per run")
    analysis_workers: int = Field(2, description="Threads used to analyze guest and host")

    # Generation
    annotation_tag: str = "zkport"

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator("max_constructs")
    @classmethod
    def validate_max_constructs(cls, v: int) -> int:
        """Validate the construct cap is positive."""
        if v <= 0:
            raise ValueError("max_constructs must be positive")
        return v

    @field_validator("analysis_workers")
    @classmethod
    def validate_analysis_workers(cls, v: int) -> int:
        """Validate worker count is positive."""
        if v <= 0:
            raise ValueError("analysis_workers must be positive")
        return min(v, os.cpu_count() or 2)  # Cap at CPU count

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("annotation_tag")
    @classmethod
    def validate_annotation_tag(cls, v: str) -> str:
        """Annotation tags end up inside block comments."""
        if not v or "*/" in v or "/*" in v:
            raise ValueError("annotation_tag must be non-empty and free of comment delimiters")
        return v


# Global settings instance
settings = Settings()
