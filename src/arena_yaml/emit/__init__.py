"""Emission engine.

This module provides the output sinks and the emitter that serializes arena
trees to YAML or JSON through them.
"""

from .emitter import Emitter, emit, emit_json, emit_yaml
from .writers import BufferWriter, CountingWriter, GrowableWriter, StreamWriter, Writer

__all__ = [
    "Emitter",
    "emit",
    "emit_json",
    "emit_yaml",
    "BufferWriter",
    "CountingWriter",
    "GrowableWriter",
    "StreamWriter",
    "Writer",
]
