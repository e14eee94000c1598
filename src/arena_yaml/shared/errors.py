"""Public error taxonomy for the arena tree engine.

All recoverable failures derive from :class:`ArenaYamlError`. They are raised
synchronously by the call that detected them, after the process-wide bridge
(:mod:`arena_yaml.shared.bridge`) has translated the low-level abort into the
matching class. :class:`ConsistencyFault` is deliberately outside the taxonomy:
it signals a broken engine invariant and is never caught internally.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Location:
    """Position in a source document.

    ``line`` and ``column`` are 1-based; ``offset`` is the 0-based character
    offset into the decoded source text.
    """

    name: str = "(input)"
    line: int = 0
    column: int = 0
    offset: int = 0

    def __str__(self) -> str:
        if self.line <= 0:
            return self.name
        return f"{self.name}:{self.line}:{self.column}"


class ArenaYamlError(Exception):
    """Base class for all recoverable arena tree failures."""

    def __init__(
        self,
        message: str,
        location: Optional[Location] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.location = location
        self.details = details or {}
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.location is not None:
            return f"{self.location}: {self.message}"
        return self.message


class MalformedInput(ArenaYamlError):
    """The source text violates YAML/JSON grammar."""


class InvalidIndex(ArenaYamlError, IndexError):
    """A node id is out of range or refers to a freed slot."""

    @property
    def node(self) -> Optional[int]:
        return self.details.get("node")


class IndexOutOfBounds(InvalidIndex):
    """A child or sibling position is past the end of its sequence."""

    @property
    def position(self) -> Optional[int]:
        return self.details.get("position")


class CyclicMove(ArenaYamlError):
    """A reparent would make a node its own ancestor."""


class InvalidNodeKind(ArenaYamlError):
    """A node was placed under a container that cannot hold it.

    MAP children must carry a key and SEQ children must not.
    """


class BufferExhausted(ArenaYamlError):
    """A fixed-capacity writer could not hold the emitted output."""

    @property
    def attempted(self) -> int:
        return int(self.details.get("attempted", 0))

    @property
    def capacity(self) -> int:
        return int(self.details.get("capacity", 0))


class EmitError(ArenaYamlError):
    """The tree holds a construct the requested output format cannot express."""


class ConsistencyFault(RuntimeError):
    """Internal invariant violation (broken links, unhandled abort).

    Indicates a bug in the engine; callers should not try to recover from it.
    """
