"""Shared utilities for the arena tree engine.

This module provides configuration objects, the error taxonomy and its
process-wide bridge, metrics, and logging used across all layers.
"""

from .bridge import (
    ErrorCallbacks,
    ErrorKind,
    get_callbacks,
    init_once,
    is_initialized,
    report,
    set_callbacks,
    translate_parser_errors,
)
from .config import (
    ConfigError,
    ConfigValidationError,
    EmitConfig,
    EmitFormat,
    ParseConfig,
)
from .errors import (
    ArenaYamlError,
    BufferExhausted,
    ConsistencyFault,
    CyclicMove,
    EmitError,
    IndexOutOfBounds,
    InvalidIndex,
    InvalidNodeKind,
    Location,
    MalformedInput,
)
from .logging import ContextLogger, get_logger
from .result import EmitMetrics, ParseMetrics

__all__ = [
    "ErrorCallbacks",
    "ErrorKind",
    "get_callbacks",
    "init_once",
    "is_initialized",
    "report",
    "set_callbacks",
    "translate_parser_errors",
    "ConfigError",
    "ConfigValidationError",
    "EmitConfig",
    "EmitFormat",
    "ParseConfig",
    "ArenaYamlError",
    "BufferExhausted",
    "ConsistencyFault",
    "CyclicMove",
    "EmitError",
    "IndexOutOfBounds",
    "InvalidIndex",
    "InvalidNodeKind",
    "Location",
    "MalformedInput",
    "ContextLogger",
    "get_logger",
    "EmitMetrics",
    "ParseMetrics",
]
