"""Base classes for typed connector configurations.

This module provides base classes that connectors inherit from to get:
- Strict validation (reject unknown fields)
- Factory methods with clear error messages
- Common validation patterns (path handling, etc.)

Example usage:
    class JSONLSourceConfig(PathConfig):
        id_field: str = "id"
        encoding: str = "utf-8"

    cfg = JSONLSourceConfig.from_dict(options)
    path = cfg.path  # Direct access, fails fast if missing
"""

from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ValidationError, field_validator


class PluginConfigError(Exception):
    """Raised when connector configuration is invalid."""


class PluginConfig(BaseModel):
    """Base class for typed connector and runtime configurations."""

    model_config = {"extra": "forbid"}  # Reject unknown fields

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Create config from dict with clear error on validation failure.

        Raises:
            PluginConfigError: If configuration is invalid.
        """
        try:
            return cls(**config)
        except ValidationError as e:
            raise PluginConfigError(
                f"Invalid configuration for {cls.__name__}: {e}"
            ) from e


class PathConfig(PluginConfig):
    """Base for configs that include file paths."""

    path: str

    @field_validator("path")
    @classmethod
    def validate_path_not_empty(cls, v: str) -> str:
        """Validate that path is not empty or whitespace-only."""
        if not v or not v.strip():
            raise ValueError("path cannot be empty")
        return v

    def resolved_path(self, base_dir: Path | None = None) -> Path:
        """Resolve path relative to base directory if provided."""
        p = Path(self.path)
        if base_dir and not p.is_absolute():
            return base_dir / p
        return p


class DatabaseConfig(PluginConfig):
    """Base for connectors backed by a SQLAlchemy table."""

    url: str
    table: str

    @field_validator("url", "table")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v
