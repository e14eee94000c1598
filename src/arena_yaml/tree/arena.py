"""Arena tree: every node of one document in a single slot array.

Nodes are addressed by integer id (their slot index) and linked to each other
by id, never by reference, so the whole tree can be cloned, compacted or
transplanted as plain data. Every public operation validates the ids it is
given before touching the arena.

Id stability:
    Ids stay valid across insertions, removals and same-tree moves. Removing
    a node tombstones its slot (``freed``); freed slots are never recycled
    while the tree lives, so a stale id is always detected as
    :class:`~arena_yaml.shared.errors.InvalidIndex` rather than silently
    aliasing a new node. Only :meth:`Tree.clear` and :meth:`Tree.reorder`
    renumber, and both say so. Cross-tree transplants mint new ids in the
    destination.

Text:
    Scalar text lives either in the tree's own text arena or, after an
    in-place parse, in the caller's buffer (borrowed spans). Everything the
    tree writes itself, and everything copied from another tree, goes to the
    arena.

Example:
    >>> tree = Tree()
    >>> tree.to_map(ROOT)
    >>> a = tree.append_child(ROOT)
    >>> tree.to_keyval(a, "a", "1")
    >>> tree.key(a), tree.val(a)
    ('a', '1')
"""

from typing import Dict, Iterator, List, Optional, Tuple, Union

from arena_yaml.shared.bridge import ErrorKind, init_once, report
from arena_yaml.shared.errors import Location
from arena_yaml.shared.logging import get_logger

from .node import NONE, NodeData, NodeScalar, Span
from .node_type import NodeType

#: id of the root node of every tree
ROOT = 0

_MIN_CAPACITY = 16
_REF_FLAGS = NodeType.KEYREF | NodeType.VALREF
_ANCHOR_FLAGS = NodeType.KEYANCH | NodeType.VALANCH
_KIND_FLAGS = NodeType.MAP | NodeType.SEQ | NodeType.VAL
# flags describing where a node sits rather than what it holds
_TARGET_FLAGS = (
    NodeType.KEY | NodeType.KEYTAG | NodeType.KEYANCH | NodeType.KEYREF
    | NodeType.KEY_STYLE | NodeType.DOC
)

Text = Union[str, bytes]
# anchor name -> (anchored on the key, node id)
_Anchors = Dict[str, Tuple[bool, int]]


class Tree:
    """Arena of :class:`NodeData` records plus the text they reference.

    A tree always has a root at id :data:`ROOT`. It is not thread-safe:
    callers sharing one tree between threads must serialize all access.
    """

    def __init__(
        self,
        node_capacity: int = _MIN_CAPACITY,
        arena_capacity: int = 0,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Create an empty tree holding only an untyped root.

        Args:
            node_capacity: Initial number of node slots to reserve
            arena_capacity: Initial text arena size to reserve, in bytes
            correlation_id: Optional correlation ID for log records
        """
        init_once()
        self.logger = get_logger(__name__, correlation_id, "arena_tree")
        self._nodes: List[NodeData] = []
        self._capacity = 0
        self._freed = 0
        self._arena = bytearray()
        self._arena_capacity = 0
        self._source: Optional[memoryview] = None
        self._locations: Dict[int, Location] = {}
        self.reserve(node_capacity)
        self.reserve_arena(arena_capacity)
        self._claim()

    # ==================== Construction helpers ====================

    @classmethod
    def parse(cls, text: Text, config=None) -> "Tree":
        """Parse ``text`` into a new tree; see :func:`arena_yaml.api.parse`."""
        from arena_yaml.api.parser import parse
        return parse(text, config)

    @classmethod
    def parse_in_place(cls, buffer, config=None) -> "Tree":
        """Parse ``buffer`` in place; see :func:`arena_yaml.api.parse_in_place`."""
        from arena_yaml.api.parser import parse_in_place
        return parse_in_place(buffer, config)

    def emit(self, node: Optional[int] = None) -> str:
        """Serialize the tree (or the subtree at ``node``) as YAML."""
        from arena_yaml.emit import emit_yaml
        return emit_yaml(self, node)

    def emit_json(self, node: Optional[int] = None) -> str:
        """Serialize the tree (or the subtree at ``node``) as JSON."""
        from arena_yaml.emit import emit_json
        return emit_json(self, node)

    # ==================== Capacity ====================

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"Tree(size={self.size}, arena={self.arena_size})"

    @property
    def size(self) -> int:
        """Number of live nodes."""
        return len(self._nodes) - self._freed

    @property
    def slot_count(self) -> int:
        """Number of slots in use, including freed ones."""
        return len(self._nodes)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def slack(self) -> int:
        return self._capacity - len(self._nodes)

    @property
    def empty(self) -> bool:
        """True when the root is the only node and has no type."""
        return self.size == 1 and self._nodes[ROOT].node_type == NodeType.NOTYPE

    def reserve(self, node_capacity: int) -> None:
        """Make room for at least ``node_capacity`` slots."""
        if node_capacity > self._capacity:
            self._capacity = node_capacity

    @property
    def arena_size(self) -> int:
        return len(self._arena)

    @property
    def arena_capacity(self) -> int:
        return self._arena_capacity

    @property
    def arena_slack(self) -> int:
        return self._arena_capacity - len(self._arena)

    def reserve_arena(self, arena_capacity: int) -> None:
        """Make room for at least ``arena_capacity`` bytes of text."""
        if arena_capacity > self._arena_capacity:
            self._arena_capacity = arena_capacity

    @property
    def source(self) -> Optional[memoryview]:
        """The caller buffer borrowed by an in-place parse, if any."""
        return self._source

    def clear(self) -> None:
        """Reset to an empty tree. Every previously obtained id becomes invalid."""
        self._nodes = []
        self._freed = 0
        self._arena = bytearray()
        self._source = None
        self._locations = {}
        self._claim()

    def clone(self) -> "Tree":
        """Independent copy of nodes and arena.

        Borrowed spans of the copy keep viewing the same caller buffer.
        """
        other = Tree(self._capacity, self._arena_capacity, self.logger.correlation_id)
        other._nodes = [data.copy() for data in self._nodes]
        other._freed = self._freed
        other._arena = bytearray(self._arena)
        other._source = self._source
        other._locations = dict(self._locations)
        return other

    # ==================== Text arena ====================

    def copy_to_arena(self, text: Text) -> Span:
        """Append ``text`` to the arena and return the span holding it."""
        data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        start = len(self._arena)
        self._arena += data
        if len(self._arena) > self._arena_capacity:
            self._arena_capacity = max(len(self._arena), self._arena_capacity * 2)
        return Span(start, len(self._arena))

    def _raw(self, span: Span) -> bytes:
        if span.borrowed:
            if self._source is None:
                report(ErrorKind.INTERNAL, "borrowed span on a tree without source")
            return bytes(self._source[span.start:span.end])
        return bytes(self._arena[span.start:span.end])

    def text(self, span: Optional[Span]) -> Optional[str]:
        """Decode the text held by ``span``."""
        if span is None:
            return None
        return self._raw(span).decode("utf-8")

    def _own(self, text: Optional[Text]) -> Optional[Span]:
        if text is None:
            return None
        return self.copy_to_arena(text)

    def _adopt(self, src: "Tree", span: Optional[Span]) -> Optional[Span]:
        if span is None:
            return None
        if src is self:
            return span
        return self.copy_to_arena(src._raw(span))

    # ==================== Validation ====================

    def _check(self, node: int) -> NodeData:
        if isinstance(node, bool) or not isinstance(node, int):
            report(ErrorKind.INVALID_INDEX, f"node id must be an int, not {node!r}", node=node)
        if node < 0 or node >= len(self._nodes):
            report(
                ErrorKind.INVALID_INDEX,
                f"node id {node} out of range [0, {len(self._nodes)})",
                node=node,
            )
        data = self._nodes[node]
        if data.freed:
            report(ErrorKind.INVALID_INDEX, f"node id {node} refers to a freed slot", node=node)
        return data

    def _check_after(self, parent: int, after: int) -> None:
        if after == NONE:
            return
        data = self._check(after)
        if data.parent != parent:
            report(
                ErrorKind.INVALID_INDEX,
                f"node {after} is not a child of node {parent}",
                node=after,
                parent=parent,
            )

    def _check_can_hold(self, parent: int, child_type: NodeType) -> None:
        parent_type = self._nodes[parent].node_type
        if parent_type.is_map() and not child_type.has_key():
            report(
                ErrorKind.INVALID_NODE_KIND,
                f"map node {parent} can only hold keyed children",
                parent=parent,
            )
        if parent_type.is_seq() and child_type.has_key():
            report(
                ErrorKind.INVALID_NODE_KIND,
                f"sequence node {parent} cannot hold keyed children",
                parent=parent,
            )
        if not parent_type.is_container() and parent_type.has_val():
            report(
                ErrorKind.INVALID_NODE_KIND,
                f"scalar node {parent} cannot have children",
                parent=parent,
            )

    def _check_fits_parent(self, node: int, has_key: bool) -> None:
        parent = self._nodes[node].parent
        if parent == NONE:
            return
        parent_type = self._nodes[parent].node_type
        if parent_type.is_map() and not has_key:
            report(ErrorKind.INVALID_NODE_KIND, f"node {node} is in a map and needs a key", node=node)
        if parent_type.is_seq() and has_key:
            report(ErrorKind.INVALID_NODE_KIND, f"node {node} is in a sequence and cannot have a key", node=node)

    def _check_no_children(self, node: int, data: NodeData) -> None:
        if data.first_child != NONE:
            report(ErrorKind.INVALID_NODE_KIND, f"node {node} has children", node=node)

    # ==================== Slot management ====================

    def _claim(self) -> int:
        if len(self._nodes) >= self._capacity:
            self._capacity = max(_MIN_CAPACITY, self._capacity * 2)
        self._nodes.append(NodeData())
        return len(self._nodes) - 1

    def _set_hierarchy(self, node: int, parent: int, after: int) -> None:
        """Link a detached ``node`` under ``parent`` right after ``after``."""
        data = self._nodes[node]
        pdata = self._nodes[parent]
        data.parent = parent
        if after == NONE:
            following = pdata.first_child
            pdata.first_child = node
        else:
            following = self._nodes[after].next_sibling
            self._nodes[after].next_sibling = node
        data.prev_sibling = after
        data.next_sibling = following
        if following == NONE:
            pdata.last_child = node
        else:
            self._nodes[following].prev_sibling = node

    def _rem_hierarchy(self, node: int) -> None:
        """Unlink ``node`` from its parent and siblings; its subtree stays intact."""
        data = self._nodes[node]
        if data.parent != NONE:
            pdata = self._nodes[data.parent]
            if pdata.first_child == node:
                pdata.first_child = data.next_sibling
            if pdata.last_child == node:
                pdata.last_child = data.prev_sibling
        if data.prev_sibling != NONE:
            self._nodes[data.prev_sibling].next_sibling = data.next_sibling
        if data.next_sibling != NONE:
            self._nodes[data.next_sibling].prev_sibling = data.prev_sibling
        data.parent = NONE
        data.prev_sibling = NONE
        data.next_sibling = NONE

    def _record_location(self, node: int, location: Location) -> None:
        self._locations[node] = location

    # ==================== Node data ====================

    def get(self, node: int) -> NodeData:
        """Return a detached copy of the record at ``node``."""
        return self._check(node).copy()

    def node_type(self, node: int) -> NodeType:
        return self._check(node).node_type

    def type_str(self, node: int) -> str:
        return self._check(node).node_type.type_str()

    def location(self, node: int) -> Optional[Location]:
        """Source position recorded for ``node`` at parse time, if any."""
        self._check(node)
        return self._locations.get(node)

    def key(self, node: int) -> str:
        data = self._check(node)
        if not data.node_type.has_key():
            report(ErrorKind.INVALID_NODE_KIND, f"node {node} has no key", node=node)
        return self.text(data.key.scalar) or ""

    def key_tag(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.key.tag) if data.node_type.has_key_tag() else None

    def key_anchor(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.key.anchor) if data.node_type.has_key_anchor() else None

    def key_ref(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.key.anchor) if data.node_type.is_key_ref() else None

    def keysc(self, node: int) -> NodeScalar:
        return self._check(node).key.copy()

    def val(self, node: int) -> str:
        data = self._check(node)
        if not data.node_type.has_val():
            report(ErrorKind.INVALID_NODE_KIND, f"node {node} has no value", node=node)
        return self.text(data.val.scalar) or ""

    def val_tag(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.val.tag) if data.node_type.has_val_tag() else None

    def val_anchor(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.val.anchor) if data.node_type.has_val_anchor() else None

    def val_ref(self, node: int) -> Optional[str]:
        data = self._check(node)
        return self.text(data.val.anchor) if data.node_type.is_val_ref() else None

    def valsc(self, node: int) -> NodeScalar:
        return self._check(node).val.copy()

    def is_borrowed(self, node: int) -> bool:
        """True when any payload text of ``node`` views the caller's buffer."""
        data = self._check(node)
        spans = list(data.key.spans()) + list(data.val.spans())
        return any(span.borrowed for span in spans)

    # ==================== Type predicates ====================

    def is_root(self, node: int) -> bool:
        return self._check(node).parent == NONE

    def is_stream(self, node: int) -> bool:
        return self.node_type(node).is_stream()

    def is_doc(self, node: int) -> bool:
        return self.node_type(node).is_doc()

    def is_container(self, node: int) -> bool:
        return self.node_type(node).is_container()

    def is_map(self, node: int) -> bool:
        return self.node_type(node).is_map()

    def is_seq(self, node: int) -> bool:
        return self.node_type(node).is_seq()

    def has_key(self, node: int) -> bool:
        return self.node_type(node).has_key()

    def has_val(self, node: int) -> bool:
        return self.node_type(node).has_val()

    def is_val(self, node: int) -> bool:
        return self.node_type(node).is_val()

    def is_keyval(self, node: int) -> bool:
        return self.node_type(node).is_keyval()

    def has_key_tag(self, node: int) -> bool:
        return self.node_type(node).has_key_tag()

    def has_val_tag(self, node: int) -> bool:
        return self.node_type(node).has_val_tag()

    def has_key_anchor(self, node: int) -> bool:
        return self.node_type(node).has_key_anchor()

    def has_val_anchor(self, node: int) -> bool:
        return self.node_type(node).has_val_anchor()

    def is_anchor(self, node: int) -> bool:
        return self.node_type(node).is_anchor()

    def is_key_ref(self, node: int) -> bool:
        return self.node_type(node).is_key_ref()

    def is_val_ref(self, node: int) -> bool:
        return self.node_type(node).is_val_ref()

    def is_ref(self, node: int) -> bool:
        return self.node_type(node).is_ref()

    def is_anchor_or_ref(self, node: int) -> bool:
        return self.node_type(node).is_anchor_or_ref()

    def is_key_quoted(self, node: int) -> bool:
        return self.node_type(node).is_key_quoted()

    def is_val_quoted(self, node: int) -> bool:
        return self.node_type(node).is_val_quoted()

    def is_quoted(self, node: int) -> bool:
        return self.node_type(node).is_quoted()

    def parent_is_map(self, node: int) -> bool:
        parent = self._check(node).parent
        return parent != NONE and self._nodes[parent].node_type.is_map()

    def parent_is_seq(self, node: int) -> bool:
        parent = self._check(node).parent
        return parent != NONE and self._nodes[parent].node_type.is_seq()

    def is_node_empty(self, node: int) -> bool:
        """True for a childless node whose value (if any) is empty."""
        data = self._check(node)
        if data.first_child != NONE:
            return False
        scalar = data.val.scalar
        return scalar is None or len(scalar) == 0

    def has_anchor(self, node: int, anchor: str) -> bool:
        """Check whether ``node`` declares ``anchor`` on its key or value."""
        return anchor in (self.key_anchor(node), self.val_anchor(node))

    # ==================== Navigation ====================

    def root_id(self) -> int:
        return ROOT

    def parent_of(self, node: int) -> int:
        return self._check(node).parent

    def has_parent(self, node: int) -> bool:
        return self._check(node).parent != NONE

    def first_child(self, node: int) -> int:
        return self._check(node).first_child

    def last_child(self, node: int) -> int:
        return self._check(node).last_child

    def next_sibling(self, node: int) -> int:
        return self._check(node).next_sibling

    def previous_sibling(self, node: int) -> int:
        return self._check(node).prev_sibling

    def has_children(self, node: int) -> bool:
        return self._check(node).first_child != NONE

    def children(self, node: int) -> Iterator[int]:
        """Iterate over the ids of ``node``'s children in sibling order."""
        child = self._check(node).first_child
        while child != NONE:
            yield child
            child = self._nodes[child].next_sibling

    def num_children(self, node: int) -> int:
        return sum(1 for _ in self.children(node))

    def child_at(self, node: int, pos: int) -> int:
        """Id of the child at position ``pos``.

        Raises:
            IndexOutOfBounds: If ``pos`` is negative or ``>= num_children(node)``
        """
        if pos >= 0:
            for i, child in enumerate(self.children(node)):
                if i == pos:
                    return child
        else:
            self._check(node)
        report(
            ErrorKind.INDEX_OUT_OF_BOUNDS,
            f"node {node} has no child at position {pos}",
            node=node,
            position=pos,
        )

    def child_pos(self, node: int, child: int) -> int:
        """Position of ``child`` among ``node``'s children, or NONE."""
        for i, candidate in enumerate(self.children(node)):
            if candidate == child:
                return i
        return NONE

    def find_child(self, node: int, key: str) -> int:
        """Id of the first child whose key equals ``key``, or NONE."""
        for child in self.children(node):
            data = self._nodes[child]
            if data.node_type.has_key() and self.text(data.key.scalar) == key:
                return child
        return NONE

    def has_child(self, node: int, key: str) -> bool:
        return self.find_child(node, key) != NONE

    def num_siblings(self, node: int) -> int:
        """Number of children of ``node``'s parent, ``node`` included."""
        parent = self._check(node).parent
        if parent == NONE:
            return 1
        return self.num_children(parent)

    def num_other_siblings(self, node: int) -> int:
        return self.num_siblings(node) - 1

    def has_other_siblings(self, node: int) -> bool:
        return self.num_other_siblings(node) > 0

    def sibling_pos(self, node: int, sibling: int) -> int:
        parent = self._check(node).parent
        if parent == NONE:
            return 0 if sibling == node else NONE
        return self.child_pos(parent, sibling)

    def first_sibling(self, node: int) -> int:
        parent = self._check(node).parent
        return node if parent == NONE else self._nodes[parent].first_child

    def last_sibling(self, node: int) -> int:
        parent = self._check(node).parent
        return node if parent == NONE else self._nodes[parent].last_child

    def sibling(self, node: int, pos: int) -> int:
        parent = self._check(node).parent
        if parent == NONE:
            if pos == 0:
                return node
            report(
                ErrorKind.INDEX_OUT_OF_BOUNDS,
                f"root node {node} has no sibling at position {pos}",
                node=node,
                position=pos,
            )
        return self.child_at(parent, pos)

    def find_sibling(self, node: int, key: str) -> int:
        parent = self._check(node).parent
        if parent == NONE:
            return NONE
        return self.find_child(parent, key)

    def has_sibling(self, node: int, key: str) -> bool:
        return self.find_sibling(node, key) != NONE

    def is_ancestor(self, ancestor: int, node: int) -> bool:
        """True when ``ancestor`` lies strictly above ``node``."""
        self._check(ancestor)
        current = self._check(node).parent
        steps = 0
        while current != NONE:
            if current == ancestor:
                return True
            current = self._nodes[current].parent
            steps += 1
            if steps > len(self._nodes):
                report(ErrorKind.INTERNAL, f"parent chain of node {node} loops")
        return False

    def depth(self, node: int) -> int:
        """Number of ancestors of ``node`` (the root has depth 0)."""
        current = self._check(node).parent
        depth = 0
        while current != NONE:
            depth += 1
            current = self._nodes[current].parent
        return depth

    def walk(self, node: int = ROOT) -> Iterator[int]:
        """Iterate over ``node`` and its descendants in pre-order."""
        self._check(node)
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            child = self._nodes[current].last_child
            while child != NONE:
                stack.append(child)
                child = self._nodes[child].prev_sibling

    # ==================== Type conversion ====================

    def to_val(self, node: int, val: Text, more_flags: NodeType = NodeType.NOTYPE) -> None:
        """Turn ``node`` into an unkeyed scalar."""
        data = self._check(node)
        self._check_no_children(node, data)
        self._check_fits_parent(node, has_key=False)
        data.node_type = NodeType.VAL | more_flags
        data.key = NodeScalar()
        data.val = NodeScalar(scalar=self._own(val))

    def to_keyval(
        self, node: int, key: Text, val: Text, more_flags: NodeType = NodeType.NOTYPE
    ) -> None:
        """Turn ``node`` into a map entry holding a scalar."""
        data = self._check(node)
        self._check_no_children(node, data)
        self._check_fits_parent(node, has_key=True)
        data.node_type = NodeType.KEYVAL | more_flags
        data.key = NodeScalar(scalar=self._own(key))
        data.val = NodeScalar(scalar=self._own(val))

    def to_map(
        self, node: int, key: Optional[Text] = None, more_flags: NodeType = NodeType.NOTYPE
    ) -> None:
        """Turn ``node`` into a map, keyed when ``key`` is given."""
        self._to_container(node, NodeType.MAP, key, more_flags)

    def to_seq(
        self, node: int, key: Optional[Text] = None, more_flags: NodeType = NodeType.NOTYPE
    ) -> None:
        """Turn ``node`` into a sequence, keyed when ``key`` is given."""
        self._to_container(node, NodeType.SEQ, key, more_flags)

    def _to_container(
        self, node: int, kind: NodeType, key: Optional[Text], more_flags: NodeType
    ) -> None:
        data = self._check(node)
        if data.first_child != NONE and not (data.node_type & kind):
            report(
                ErrorKind.INVALID_NODE_KIND,
                f"node {node} has children of another container kind",
                node=node,
            )
        self._check_fits_parent(node, has_key=key is not None)
        flags = kind | more_flags | (data.node_type & NodeType.DOC)
        data.val = NodeScalar()
        if key is not None:
            flags |= NodeType.KEY
            data.key = NodeScalar(scalar=self._own(key))
        else:
            data.key = NodeScalar()
        data.node_type = flags

    def to_doc(self, node: int, more_flags: NodeType = NodeType.NOTYPE) -> None:
        """Mark ``node`` as a document; ``more_flags`` may add MAP/SEQ/VAL."""
        data = self._check(node)
        self._check_fits_parent(node, has_key=False)
        data.node_type = NodeType.DOC | more_flags
        data.key = NodeScalar()

    def to_stream(self, node: int, more_flags: NodeType = NodeType.NOTYPE) -> None:
        """Mark ``node`` as a stream of documents."""
        data = self._check(node)
        for child in self.children(node):
            if self._nodes[child].node_type.has_key():
                report(ErrorKind.INVALID_NODE_KIND, f"node {node} has keyed children", node=node)
        data.node_type = NodeType.STREAM | more_flags
        data.key = NodeScalar()
        data.val = NodeScalar()

    def change_type(self, node: int, new_type: NodeType) -> bool:
        """Switch ``node`` between MAP, SEQ and VAL, dropping its children.

        Returns:
            False when ``node`` already had that kind, True otherwise
        """
        kind = NodeType(new_type) & _KIND_FLAGS
        if kind not in (NodeType.MAP, NodeType.SEQ, NodeType.VAL):
            report(ErrorKind.INVALID_NODE_KIND, f"cannot change node {node} to {new_type!r}", node=node)
        data = self._check(node)
        if data.node_type & kind:
            return False
        self.remove_children(node)
        data.node_type = NodeType((int(data.node_type) & ~int(_KIND_FLAGS)) | int(kind))
        if kind == NodeType.VAL:
            data.val = NodeScalar(scalar=self.copy_to_arena(""))
        else:
            data.node_type &= ~NodeType.VAL_STYLE
            data.val = NodeScalar()
        return True

    # ==================== Payload ====================

    def set_key(self, node: int, key: Text, more_flags: NodeType = NodeType.NOTYPE) -> None:
        data = self._check(node)
        self._check_fits_parent(node, has_key=True)
        data.key.scalar = self._own(key)
        data.node_type |= NodeType.KEY | more_flags

    def set_val(self, node: int, val: Text, more_flags: NodeType = NodeType.NOTYPE) -> None:
        data = self._check(node)
        if data.node_type.is_container():
            report(ErrorKind.INVALID_NODE_KIND, f"container node {node} cannot hold a value", node=node)
        data.val.scalar = self._own(val)
        data.node_type |= NodeType.VAL | more_flags

    def set_key_tag(self, node: int, tag: Text) -> None:
        data = self._check(node)
        data.key.tag = self._own(tag)
        data.node_type |= NodeType.KEYTAG

    def set_val_tag(self, node: int, tag: Text) -> None:
        data = self._check(node)
        data.val.tag = self._own(tag)
        data.node_type |= NodeType.VALTAG

    def set_key_anchor(self, node: int, anchor: Text) -> None:
        data = self._check(node)
        data.key.anchor = self._own(anchor)
        data.node_type = (data.node_type & ~NodeType.KEYREF) | NodeType.KEYANCH

    def set_val_anchor(self, node: int, anchor: Text) -> None:
        data = self._check(node)
        data.val.anchor = self._own(anchor)
        data.node_type = (data.node_type & ~NodeType.VALREF) | NodeType.VALANCH

    def set_key_ref(self, node: int, ref: str) -> None:
        """Make the key of ``node`` an alias of anchor ``ref``."""
        data = self._check(node)
        self._check_fits_parent(node, has_key=True)
        data.key.anchor = self._own(ref)
        data.key.scalar = self._own("*" + ref)
        data.node_type = (data.node_type & ~NodeType.KEYANCH) | NodeType.KEY | NodeType.KEYREF

    def set_val_ref(self, node: int, ref: str) -> None:
        """Make the value of ``node`` an alias of anchor ``ref``."""
        data = self._check(node)
        self._check_no_children(node, data)
        data.val.anchor = self._own(ref)
        data.val.scalar = self._own("*" + ref)
        data.node_type = (data.node_type & ~(NodeType.VALANCH | NodeType.CONTAINER)) | NodeType.VAL | NodeType.VALREF

    def rem_key_anchor(self, node: int) -> None:
        data = self._check(node)
        if data.node_type.has_key_anchor():
            data.key.anchor = None
            data.node_type &= ~NodeType.KEYANCH

    def rem_val_anchor(self, node: int) -> None:
        data = self._check(node)
        if data.node_type.has_val_anchor():
            data.val.anchor = None
            data.node_type &= ~NodeType.VALANCH

    def rem_key_ref(self, node: int) -> None:
        data = self._check(node)
        if data.node_type.is_key_ref():
            data.key.anchor = None
            data.node_type &= ~NodeType.KEYREF

    def rem_val_ref(self, node: int) -> None:
        data = self._check(node)
        if data.node_type.is_val_ref():
            data.val.anchor = None
            data.node_type &= ~NodeType.VALREF

    def rem_anchor_ref(self, node: int) -> None:
        data = self._check(node)
        data.key.anchor = None
        data.val.anchor = None
        data.node_type &= ~(_ANCHOR_FLAGS | _REF_FLAGS)

    def add_flags(self, node: int, flags: NodeType) -> None:
        """Add style hints (or other flags) to ``node``."""
        self._check(node).node_type |= flags

    def rem_flags(self, node: int, flags: NodeType) -> None:
        data = self._check(node)
        data.node_type = NodeType(int(data.node_type) & ~int(flags))

    # ==================== Node creation ====================

    def insert_child(self, parent: int, after: int) -> int:
        """Create an untyped child of ``parent`` right after ``after``.

        ``after == NONE`` inserts as the first child.
        """
        pdata = self._check(parent)
        if not pdata.node_type.is_container() and pdata.node_type.has_val():
            report(ErrorKind.INVALID_NODE_KIND, f"scalar node {parent} cannot have children", parent=parent)
        self._check_after(parent, after)
        node = self._claim()
        self._set_hierarchy(node, parent, after)
        return node

    def prepend_child(self, parent: int) -> int:
        return self.insert_child(parent, NONE)

    def append_child(self, parent: int) -> int:
        return self.insert_child(parent, self._check(parent).last_child)

    def _sibling_parent(self, node: int) -> int:
        parent = self._check(node).parent
        if parent == NONE:
            report(ErrorKind.INVALID_INDEX, "the root node has no siblings", node=node)
        return parent

    def insert_sibling(self, node: int, after: int) -> int:
        return self.insert_child(self._sibling_parent(node), after)

    def prepend_sibling(self, node: int) -> int:
        return self.insert_child(self._sibling_parent(node), NONE)

    def append_sibling(self, node: int) -> int:
        parent = self._sibling_parent(node)
        return self.insert_child(parent, self._nodes[parent].last_child)

    # ==================== Removal ====================

    def remove(self, node: int) -> None:
        """Remove ``node`` and its whole subtree; their ids become invalid."""
        data = self._check(node)
        if data.parent == NONE:
            report(ErrorKind.INVALID_INDEX, "the root node cannot be removed", node=node)
        doomed = list(self.walk(node))
        self._rem_hierarchy(node)
        for slot in doomed:
            record = self._nodes[slot]
            record.clear_links()
            record.clear_payload()
            record.freed = True
            self._locations.pop(slot, None)
        self._freed += len(doomed)
        self.logger.debug("Removed subtree", extra={"node": node, "freed": len(doomed)})

    def remove_children(self, node: int) -> None:
        for child in list(self.children(node)):
            self.remove(child)

    # ==================== Moves ====================

    def move(self, node: int, after: int) -> None:
        """Reposition ``node`` within its parent, right after sibling ``after``."""
        data = self._check(node)
        if data.parent == NONE:
            report(ErrorKind.INVALID_INDEX, "the root node cannot be moved", node=node)
        self._check_after(data.parent, after)
        if after == node:
            return
        parent = data.parent
        self._rem_hierarchy(node)
        self._set_hierarchy(node, parent, after)

    def move_to_parent(self, node: int, new_parent: int, after: int) -> None:
        """Detach ``node`` with its subtree and relink it under ``new_parent``.

        The node keeps its id and its subtree is untouched. All checks run
        before any link changes, so a rejected move leaves the tree as it was.

        Raises:
            InvalidIndex: If an id is invalid, ``node`` is the root, or
                ``after`` is not a child of ``new_parent``
            CyclicMove: If ``node`` is ``new_parent`` or one of its ancestors
            InvalidNodeKind: If ``new_parent`` cannot hold ``node``
        """
        data = self._check(node)
        self._check(new_parent)
        if data.parent == NONE:
            report(ErrorKind.INVALID_INDEX, "the root node cannot be moved", node=node)
        if node == new_parent or self.is_ancestor(node, new_parent):
            report(
                ErrorKind.CYCLIC_MOVE,
                f"moving node {node} under node {new_parent} would create a cycle",
                node=node,
                new_parent=new_parent,
            )
        self._check_after(new_parent, after)
        self._check_can_hold(new_parent, data.node_type)
        if after == node:
            return
        self._rem_hierarchy(node)
        self._set_hierarchy(node, new_parent, after)
        self.logger.debug(
            "Moved node",
            extra={"node": node, "new_parent": new_parent, "after": after},
        )

    def move_from(self, src: "Tree", node: int, new_parent: int, after: int) -> int:
        """Transplant a copy of ``src``'s subtree at ``node`` into this tree.

        ``src`` is left untouched. Every piece of text is copied into this
        tree's arena, since the two trees need not share a source buffer.

        Returns:
            Id of the new subtree root in this tree
        """
        sdata = src._check(node)
        self._check(new_parent)
        self._check_after(new_parent, after)
        self._check_can_hold(new_parent, sdata.node_type)
        new_node = self._copy_subtree(src, node, new_parent, after)
        self.logger.debug(
            "Transplanted subtree",
            extra={"src_node": node, "new_node": new_node, "new_parent": new_parent},
        )
        return new_node

    # ==================== Duplication ====================

    def _copy_payload(self, src: "Tree", src_node: int, dst_node: int) -> None:
        sdata = src._nodes[src_node]
        ddata = self._nodes[dst_node]
        ddata.node_type = sdata.node_type
        ddata.key = NodeScalar(
            tag=self._adopt(src, sdata.key.tag),
            scalar=self._adopt(src, sdata.key.scalar),
            anchor=self._adopt(src, sdata.key.anchor),
        )
        ddata.val = NodeScalar(
            tag=self._adopt(src, sdata.val.tag),
            scalar=self._adopt(src, sdata.val.scalar),
            anchor=self._adopt(src, sdata.val.anchor),
        )

    def _copy_subtree(self, src: "Tree", node: int, parent: int, after: int) -> int:
        # The plan is taken before any slot is created, so copying a subtree
        # into one of its own descendants terminates.
        plan: List[Tuple[int, int]] = [(n, src._nodes[n].parent) for n in src.walk(node)]
        mapping: Dict[int, int] = {}
        last_created: Dict[int, int] = {}
        for src_id, src_parent in plan:
            if src_id == node:
                dst_parent, dst_after = parent, after
            else:
                dst_parent = mapping[src_parent]
                dst_after = last_created.get(dst_parent, NONE)
            new_id = self._claim()
            self._set_hierarchy(new_id, dst_parent, dst_after)
            self._copy_payload(src, src_id, new_id)
            mapping[src_id] = new_id
            last_created[dst_parent] = new_id
        return mapping[node]

    def duplicate(
        self, node: int, new_parent: int, after: int, src: Optional["Tree"] = None
    ) -> int:
        """Recursively copy ``node`` (from ``src`` or this tree) under ``new_parent``."""
        source = self if src is None else src
        sdata = source._check(node)
        self._check(new_parent)
        self._check_after(new_parent, after)
        self._check_can_hold(new_parent, sdata.node_type)
        return self._copy_subtree(source, node, new_parent, after)

    def duplicate_children(
        self, node: int, parent: int, after: int, src: Optional["Tree"] = None
    ) -> int:
        """Copy the children of ``node`` (not ``node`` itself) under ``parent``.

        Returns:
            Id of the last copied child, or ``after`` when there was none
        """
        source = self if src is None else src
        children = list(source.children(node))
        self._check(parent)
        self._check_after(parent, after)
        for child in children:
            self._check_can_hold(parent, source._nodes[child].node_type)
        prev = after
        for child in children:
            prev = self._copy_subtree(source, child, parent, prev)
        return prev

    def duplicate_contents(self, node: int, target: int, src: Optional["Tree"] = None) -> None:
        """Copy type, payload and children of ``node`` onto existing ``target``."""
        source = self if src is None else src
        source._check(node)
        tdata = self._check(target)
        if source is self and (node == target or self.is_ancestor(target, node)):
            report(
                ErrorKind.CYCLIC_MOVE,
                f"cannot copy node {node} onto its ancestor {target}",
                node=node,
            )
        self.remove_children(target)
        key, kept = tdata.key, tdata.node_type & _TARGET_FLAGS
        self._copy_payload(source, node, target)
        tdata.key = key if self.parent_is_map(target) else NodeScalar()
        tdata.node_type = NodeType((int(tdata.node_type) & ~int(_TARGET_FLAGS)) | int(kept))
        self.duplicate_children(node, target, NONE, src=source)

    def duplicate_children_no_rep(self, node: int, parent: int, after: int) -> int:
        """Copy the children of ``node`` under ``parent`` without repetitions.

        A copied child replaces an existing child of ``parent`` with the same
        key (maps) or value (sequences); the one placed last prevails.

        Returns:
            Id of the last copied child, or ``after`` when there was none
        """
        children = list(self.children(node))
        self._check(parent)
        self._check_after(parent, after)
        is_map = self._nodes[parent].node_type.is_map()
        prev = after
        for child in children:
            match = self._find_repeat(parent, child, is_map)
            if match != NONE:
                if match == prev:
                    prev = self._nodes[match].prev_sibling
                self.remove(match)
            prev = self._copy_subtree(self, child, parent, prev)
        return prev

    def _find_repeat(self, parent: int, child: int, is_map: bool) -> int:
        cdata = self._nodes[child]
        for existing in self.children(parent):
            edata = self._nodes[existing]
            if is_map:
                if edata.node_type.has_key() and self.text(edata.key.scalar) == self.text(cdata.key.scalar):
                    return existing
            elif edata.node_type.has_val() and cdata.node_type.has_val():
                if self.text(edata.val.scalar) == self.text(cdata.val.scalar):
                    return existing
        return NONE

    # ==================== Reference resolution ====================

    def resolve(self) -> None:
        """Expand every alias into a copy of its anchored node.

        Aliases name the closest anchor before them in document order. A
        value alias takes a copy of the anchored node's contents, a key alias
        takes the anchored scalar's text. Merge keys (``<<: *a``,
        ``<<: [*a, *b]`` or ``<<: {...}``) copy the entries of the merged
        maps into the enclosing map; keys already present there win, and
        earlier maps win over later ones. Afterwards no node carries an
        anchor or a reference. Ids of merge-key entries become invalid.

        Raises:
            MalformedInput: If an alias names an unknown anchor or a merge
                key does not refer to maps
            InvalidNodeKind: If a key alias names a container
        """
        anchors: _Anchors = {}
        refs = merges = 0
        node = ROOT
        while node != NONE:
            data = self._nodes[node]
            if data.node_type.is_key_ref():
                self._resolve_key_ref(node, anchors)
                refs += 1
            if self._is_merge(node):
                node = self._resolve_merge(node, anchors)
                merges += 1
                continue
            if data.node_type.is_val_ref():
                self._resolve_val_ref(node, anchors)
                refs += 1
            if data.node_type.has_key_anchor():
                anchors[self.text(data.key.anchor)] = (True, node)
            if data.node_type.has_val_anchor():
                anchors[self.text(data.val.anchor)] = (False, node)
            node = data.first_child if data.first_child != NONE else self._next_outside(node)

        for node in self.walk(ROOT):
            self.rem_anchor_ref(node)
        self.logger.debug("Resolved references", extra={"refs": refs, "merges": merges})

    def _next_outside(self, node: int) -> int:
        """Pre-order successor of ``node`` once its subtree is done."""
        while node != NONE:
            data = self._nodes[node]
            if data.next_sibling != NONE:
                return data.next_sibling
            node = data.parent
        return NONE

    def _is_merge(self, node: int) -> bool:
        data = self._nodes[node]
        node_type = data.node_type
        if not node_type.has_key() or node_type & (NodeType.KEYREF | NodeType.KEY_QUOTED):
            return False
        return self.text(data.key.scalar) == "<<"

    def _lookup_anchor(self, node: int, name: str, anchors: _Anchors) -> Tuple[bool, int]:
        if name not in anchors:
            report(
                ErrorKind.MALFORMED_INPUT,
                f"alias *{name} refers to an unknown anchor",
                self._locations.get(node),
                node=node,
            )
        return anchors[name]

    def _resolve_key_ref(self, node: int, anchors: _Anchors) -> None:
        data = self._nodes[node]
        on_key, target = self._lookup_anchor(node, self.text(data.key.anchor), anchors)
        tdata = self._nodes[target]
        if on_key:
            text, tag = self.text(tdata.key.scalar), self.text(tdata.key.tag)
            style = tdata.node_type & NodeType.KEY_STYLE
        else:
            if tdata.node_type.is_container() or not tdata.node_type.has_val():
                report(
                    ErrorKind.INVALID_NODE_KIND,
                    f"key alias of node {node} names a container",
                    self._locations.get(node),
                    node=node,
                )
            text, tag = self.text(tdata.val.scalar), self.text(tdata.val.tag)
            style = NodeType(int(tdata.node_type & NodeType.VAL_STYLE) >> 1)
        data.key = NodeScalar(tag=self._own(tag), scalar=self._own(text or ""))
        flags = int(data.node_type) & ~int(NodeType.KEYREF | NodeType.KEYTAG | NodeType.KEY_STYLE)
        data.node_type = NodeType(flags | int(style) | (int(NodeType.KEYTAG) if tag is not None else 0))

    def _resolve_val_ref(self, node: int, anchors: _Anchors) -> None:
        data = self._nodes[node]
        on_key, target = self._lookup_anchor(node, self.text(data.val.anchor), anchors)
        if not on_key:
            self.duplicate_contents(target, node)
            return
        tdata = self._nodes[target]
        tag = self.text(tdata.key.tag)
        data.val = NodeScalar(tag=self._own(tag), scalar=self._own(self.text(tdata.key.scalar) or ""))
        style = int(tdata.node_type & NodeType.KEY_STYLE) << 1
        flags = int(data.node_type) & ~int(NodeType.VALREF | NodeType.VALTAG | NodeType.VAL_STYLE)
        data.node_type = NodeType(flags | style | (int(NodeType.VALTAG) if tag is not None else 0))

    def _merge_sources(self, node: int, anchors: _Anchors) -> List[int]:
        node_type = self._nodes[node].node_type
        candidates = list(self.children(node)) if node_type.is_seq() else [node]
        sources = []
        for candidate in candidates:
            cdata = self._nodes[candidate]
            if cdata.node_type.is_val_ref():
                on_key, candidate = self._lookup_anchor(node, self.text(cdata.val.anchor), anchors)
                if on_key:
                    candidate = NONE
            if candidate == NONE or not self._nodes[candidate].node_type.is_map():
                report(
                    ErrorKind.MALFORMED_INPUT,
                    "merge key needs a map or a sequence of maps",
                    self._locations.get(node),
                    node=node,
                )
            sources.append(candidate)
        return sources

    def _resolve_merge(self, node: int, anchors: _Anchors) -> int:
        """Fold a merge-key entry into its map; returns the next node to visit."""
        sources = self._merge_sources(node, anchors)
        parent = self._nodes[node].parent
        existing = {self.key(child) for child in self.children(parent) if child != node}
        prev = self._nodes[node].prev_sibling
        resume = self._next_outside(node)
        first = NONE
        for source in sources:
            for child in list(self.children(source)):
                if self._is_merge(child):
                    continue
                name = self.key(child)
                if name in existing:
                    continue
                existing.add(name)
                prev = self._copy_subtree(self, child, parent, prev)
                if first == NONE:
                    first = prev
        self.remove(node)
        return first if first != NONE else resume

    # ==================== Whole-tree maintenance ====================

    def reorder(self) -> Dict[int, int]:
        """Compact live nodes into pre-order slots, dropping freed ones.

        Every id changes; use the returned map to translate held ids.

        Returns:
            Mapping from old id to new id
        """
        order = list(self.walk(ROOT))
        mapping = {old: new for new, old in enumerate(order)}

        def remap(i: int) -> int:
            return NONE if i == NONE else mapping[i]

        nodes: List[NodeData] = []
        for old in order:
            record = self._nodes[old].copy()
            record.parent = remap(record.parent)
            record.first_child = remap(record.first_child)
            record.last_child = remap(record.last_child)
            record.next_sibling = remap(record.next_sibling)
            record.prev_sibling = remap(record.prev_sibling)
            nodes.append(record)
        self._nodes = nodes
        self._freed = 0
        self._locations = {
            mapping[old]: loc for old, loc in self._locations.items() if old in mapping
        }
        return mapping

    def check(self) -> None:
        """Verify parent and sibling links of every live node.

        Raises:
            ConsistencyFault: On any broken link
        """
        limit = len(self._nodes)
        for node, data in enumerate(self._nodes):
            if data.freed:
                continue
            prev = NONE
            child = data.first_child
            count = 0
            while child != NONE:
                if not (0 <= child < limit) or self._nodes[child].freed:
                    report(ErrorKind.INTERNAL, f"node {node} links to dead child {child}")
                cdata = self._nodes[child]
                if cdata.parent != node:
                    report(ErrorKind.INTERNAL, f"child {child} does not point back to parent {node}")
                if cdata.prev_sibling != prev:
                    report(ErrorKind.INTERNAL, f"sibling links of node {child} are inconsistent")
                prev = child
                child = cdata.next_sibling
                count += 1
                if count > limit:
                    report(ErrorKind.INTERNAL, f"children of node {node} form a loop")
            if data.last_child != prev:
                report(ErrorKind.INTERNAL, f"last_child of node {node} is stale")
            if node != ROOT and data.parent == NONE:
                report(ErrorKind.INTERNAL, f"live node {node} is detached")

    def snapshot(self, node: int = ROOT) -> tuple:
        """Style-free structural view of the subtree at ``node``.

        Two subtrees with equal snapshots hold the same kinds, keys, values,
        tags, anchors and references in the same sibling order.
        """
        data = self._check(node)
        node_type = data.node_type
        return (
            int(node_type.structural()),
            self.text(data.key.scalar) if node_type.has_key() else None,
            self.key_tag(node),
            self.text(data.key.anchor),
            self.text(data.val.scalar) if node_type.has_val() else None,
            self.val_tag(node),
            self.text(data.val.anchor),
            tuple(self.snapshot(child) for child in self.children(node)),
        )
