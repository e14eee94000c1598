"""Configuration classes for parsing into and emitting from arena trees.

Configuration objects are plain dataclasses validated in ``__post_init__``.
They round-trip through dictionaries and JSON so that embedding applications
can keep them in their own settings files.
"""

import json
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional


class EmitFormat(Enum):
    """Output surface syntax."""

    YAML = "yaml"
    JSON = "json"


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.field_name = field_name


class _ConfigMixin:
    """Serialization helpers shared by the config dataclasses."""

    def override(self, **kwargs: Any) -> Any:
        """Return a copy with the given fields replaced.

        Raises:
            ConfigValidationError: If a field is unknown or a value is invalid
        """
        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigValidationError(
                f"Unknown configuration fields: {', '.join(unknown)}",
                field_name=unknown[0],
            )
        return replace(self, **kwargs)  # type: ignore[type-var]

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-compatible dictionary."""
        result: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            result[f.name] = value
        return result

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Any:
        """Create configuration from a dictionary, ignoring unknown keys."""
        values: Dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            if f.name in data:
                values[f.name] = data[f.name]
        return cls(**values)

    @classmethod
    def from_json(cls, json_str: str) -> Any:
        """Create configuration from a JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid configuration JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration JSON must be an object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class ParseConfig(_ConfigMixin):
    """Configuration for building a tree from source text."""

    source_name: str = "(input)"
    track_locations: bool = True
    node_capacity: int = 16
    arena_capacity: int = 0
    max_depth: int = 1000
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate parse configuration."""
        if not self.source_name:
            raise ConfigValidationError("source_name cannot be empty", "source_name")
        if self.node_capacity <= 0:
            raise ConfigValidationError("node_capacity must be > 0", "node_capacity")
        if self.arena_capacity < 0:
            raise ConfigValidationError("arena_capacity must be >= 0", "arena_capacity")
        if self.max_depth <= 0:
            raise ConfigValidationError("max_depth must be > 0", "max_depth")


@dataclass(frozen=True)
class EmitConfig(_ConfigMixin):
    """Configuration for serializing a tree."""

    format: EmitFormat = EmitFormat.YAML
    indent: int = 2
    error_on_excess: bool = True
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate emit configuration."""
        if isinstance(self.format, str):
            try:
                object.__setattr__(self, "format", EmitFormat(self.format.lower()))
            except ValueError as e:
                valid = [f.value for f in EmitFormat]
                raise ConfigValidationError(
                    f"format must be one of {valid}", "format"
                ) from e
        if not (1 <= self.indent <= 9):
            raise ConfigValidationError("indent must be between 1 and 9", "indent")

    @property
    def is_json(self) -> bool:
        return self.format is EmitFormat.JSON

    @classmethod
    def yaml(cls) -> "EmitConfig":
        """Default YAML emission."""
        return cls()

    @classmethod
    def json(cls) -> "EmitConfig":
        """JSON emission (flow only, no tags or anchors)."""
        return cls(format=EmitFormat.JSON)

    @classmethod
    def lenient(cls, format: EmitFormat = EmitFormat.YAML) -> "EmitConfig":
        """Emission that truncates into fixed writers instead of failing."""
        return cls(format=format, error_on_excess=False)

