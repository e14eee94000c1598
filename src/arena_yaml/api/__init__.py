"""Public entry points: parse into trees and emit them back out."""

from .parser import (
    ArenaYamlParser,
    emit,
    emit_json,
    emit_to_buffer,
    emit_to_stream,
    emit_yaml,
    parse,
    parse_file,
    parse_in_place,
)

__all__ = [
    "ArenaYamlParser",
    "emit",
    "emit_json",
    "emit_to_buffer",
    "emit_to_stream",
    "emit_yaml",
    "parse",
    "parse_file",
    "parse_in_place",
]
