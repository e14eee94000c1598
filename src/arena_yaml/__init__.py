"""Arena YAML.

A YAML/JSON document model built around one flat, index-addressed tree:
parsing fills a single arena of nodes, nodes are manipulated by integer id,
and the same tree is serialized back to text through pluggable writers.

Progressive API Disclosure:
- Level 1: Simple functions - parse(), parse_in_place(), parse_file(), emit_yaml(), emit_json()
- Level 2: Configured parser - ArenaYamlParser class
- Level 3: Direct tree access - Tree, TreeBuilder, Emitter and writers
"""

__version__ = "0.1.0"
__author__ = "Arena YAML Team"

from .api import (
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
from .emit import BufferWriter, CountingWriter, Emitter, GrowableWriter, StreamWriter, Writer
from .shared.config import EmitConfig, EmitFormat, ParseConfig
from .shared.errors import (
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
from .tree import NONE, ROOT, NodeType, Tree, TreeBuilder

__all__ = [
    # Version and metadata
    "__author__",
    "__version__",

    # Level 1: Simple functions
    "parse",
    "parse_in_place",
    "parse_file",
    "emit",
    "emit_yaml",
    "emit_json",
    "emit_to_buffer",
    "emit_to_stream",

    # Level 2: Configured parser
    "ArenaYamlParser",

    # Level 3: Tree and emission internals
    "Tree",
    "TreeBuilder",
    "NodeType",
    "NONE",
    "ROOT",
    "Emitter",
    "Writer",
    "BufferWriter",
    "CountingWriter",
    "GrowableWriter",
    "StreamWriter",

    # Configuration classes
    "ParseConfig",
    "EmitConfig",
    "EmitFormat",

    # Errors
    "ArenaYamlError",
    "MalformedInput",
    "InvalidIndex",
    "IndexOutOfBounds",
    "CyclicMove",
    "InvalidNodeKind",
    "BufferExhausted",
    "EmitError",
    "ConsistencyFault",
    "Location",
]
