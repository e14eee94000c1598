"""Fixed-layout node records stored in a tree's arena.

Relational fields hold node ids; :data:`NONE` marks an absent link. Scalar
text is never stored as ``str`` on the record: each piece of payload is a
:class:`Span` into either the tree's own text arena or the caller's source
buffer (``borrowed``), and is decoded on access by the owning tree.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from .node_type import NodeType

#: id value meaning "no node"
NONE = -1


@dataclass(frozen=True)
class Span:
    """Byte range of UTF-8 text held by a tree.

    ``borrowed`` spans view the caller's buffer passed to an in-place parse;
    the others live in the tree's text arena.
    """

    start: int
    end: int
    borrowed: bool = False

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start


@dataclass
class NodeScalar:
    """Tag, scalar text and anchor of one side (key or value) of a node.

    For references the ``anchor`` span holds the referenced anchor name and
    ``scalar`` holds the alias text (``*name``).
    """

    tag: Optional[Span] = None
    scalar: Optional[Span] = None
    anchor: Optional[Span] = None

    def copy(self) -> "NodeScalar":
        return replace(self)

    def spans(self):
        return (s for s in (self.tag, self.scalar, self.anchor) if s is not None)


@dataclass
class NodeData:
    """All data of one arena slot."""

    node_type: NodeType = NodeType.NOTYPE
    key: NodeScalar = field(default_factory=NodeScalar)
    val: NodeScalar = field(default_factory=NodeScalar)
    parent: int = NONE
    first_child: int = NONE
    last_child: int = NONE
    next_sibling: int = NONE
    prev_sibling: int = NONE
    freed: bool = False

    def copy(self) -> "NodeData":
        """Detached copy; payload spans are immutable and shared."""
        return replace(self, key=self.key.copy(), val=self.val.copy())

    def clear_links(self) -> None:
        self.parent = NONE
        self.first_child = NONE
        self.last_child = NONE
        self.next_sibling = NONE
        self.prev_sibling = NONE

    def clear_payload(self) -> None:
        self.node_type = NodeType.NOTYPE
        self.key = NodeScalar()
        self.val = NodeScalar()
