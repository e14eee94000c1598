"""Bulk construction of arena trees from PyYAML's event stream.

The grammar work is left to PyYAML (``yaml.parse`` with ``SafeLoader``); the
builder only turns its events into arena slots. Scalars whose text appears
verbatim in the source become spans into the source bytes, either the copy
held in the tree's arena (copy mode) or the caller's own buffer (in-place
mode). Everything else (escaped, folded or block scalars, anchors, tags) is
appended to the arena.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import yaml

from arena_yaml.shared.bridge import ErrorKind, report, translate_parser_errors
from arena_yaml.shared.config import ParseConfig
from arena_yaml.shared.errors import Location
from arena_yaml.shared.logging import get_logger
from arena_yaml.shared.result import ParseMetrics

from .arena import ROOT, Tree
from .node import NodeData, NodeScalar, Span
from .node_type import NodeType

#: prefix of the YAML core schema tags, written as ``!!``
CORE_TAG_PREFIX = "tag:yaml.org,2002:"

_KEY_STYLES = {
    None: NodeType.KEY_PLAIN,
    "'": NodeType.KEY_SQUO,
    '"': NodeType.KEY_DQUO,
    "|": NodeType.KEY_LITERAL,
    ">": NodeType.KEY_FOLDED,
}
_VAL_STYLES = {
    None: NodeType.VAL_PLAIN,
    "'": NodeType.VAL_SQUO,
    '"': NodeType.VAL_DQUO,
    "|": NodeType.VAL_LITERAL,
    ">": NodeType.VAL_FOLDED,
}


def shorten_tag(tag: str) -> str:
    """Write core schema tags in their ``!!`` shorthand."""
    if tag.startswith(CORE_TAG_PREFIX):
        return "!!" + tag[len(CORE_TAG_PREFIX):]
    return tag


class _ByteOffsets:
    """Maps character indices of the decoded source to UTF-8 byte offsets.

    Lookups are mostly increasing, so the previous answer is kept and the
    text between it and the next index is encoded incrementally.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._ascii = text.isascii()
        self._char = 0
        self._byte = 0

    def __call__(self, index: int) -> int:
        if self._ascii:
            return index
        if index < self._char:
            self._char = 0
            self._byte = 0
        self._byte += len(self._text[self._char:index].encode("utf-8"))
        self._char = index
        return self._byte


@dataclass
class _PendingKey:
    """Key of a map entry whose value event has not arrived yet."""

    scalar: Span
    flags: NodeType
    tag: Optional[Span] = None
    anchor: Optional[Span] = None
    location: Optional[Location] = None


@dataclass
class _Frame:
    """Open document or container on the builder stack."""

    node: int
    kind: str
    key: Optional[_PendingKey] = None


class TreeBuilder:
    """Builds :class:`~arena_yaml.tree.arena.Tree` instances from YAML text.

    A builder can be reused; :attr:`metrics` describes the most recent build.
    """

    def __init__(self, config: Optional[ParseConfig] = None) -> None:
        """Initialize tree builder.

        Args:
            config: Parse configuration; defaults to :class:`ParseConfig()`
        """
        self.config = config or ParseConfig()
        self.logger = get_logger(__name__, self.config.correlation_id, "tree_builder")
        self.metrics = ParseMetrics()

        self._tree: Optional[Tree] = None
        self._text = ""
        self._offsets: Optional[_ByteOffsets] = None
        self._borrowed = False
        self._stack: List[_Frame] = []
        self._depth = 0

    def build(self, source: Union[str, bytes]) -> Tree:
        """Parse ``source`` into a tree that owns all of its text.

        Raises:
            MalformedInput: If the source is not valid UTF-8 YAML
        """
        if isinstance(source, str):
            text = source
            data = self._encode(source)
        else:
            data = bytes(source)
            text = self._decode(data)
        tree = self._new_tree(len(data))
        tree.copy_to_arena(data)
        return self._run(tree, text, borrowed=False)

    def build_in_place(self, buffer: Union[bytearray, memoryview]) -> Tree:
        """Parse ``buffer`` into a tree whose verbatim scalars borrow from it.

        The tree keeps a view of ``buffer``; the caller must not modify it
        while the tree is in use.

        Raises:
            TypeError: If ``buffer`` is not a writable bytes-like object
            MalformedInput: If the buffer is not valid UTF-8 YAML
        """
        view = memoryview(buffer)
        if view.readonly:
            raise TypeError("in-place parsing needs a writable buffer such as a bytearray")
        if view.format != "B" or view.ndim != 1:
            view = view.cast("B")
        text = self._decode(bytes(view))
        tree = self._new_tree(0)
        tree._source = view
        return self._run(tree, text, borrowed=True)

    # ==================== Driver ====================

    def _new_tree(self, source_size: int) -> Tree:
        return Tree(
            self.config.node_capacity,
            max(self.config.arena_capacity, source_size),
            self.config.correlation_id,
        )

    def _encode(self, text: str) -> bytes:
        try:
            return text.encode("utf-8")
        except UnicodeError as e:
            report(
                ErrorKind.MALFORMED_INPUT,
                f"source is not encodable as UTF-8: {e.reason}",
                Location(self.config.source_name, offset=e.start),
            )

    def _decode(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            report(
                ErrorKind.MALFORMED_INPUT,
                f"source is not valid UTF-8: {e.reason}",
                Location(self.config.source_name, offset=e.start),
            )

    def _run(self, tree: Tree, text: str, borrowed: bool) -> Tree:
        start_time = time.time()
        self._reset(tree, text, borrowed)
        self.logger.debug(
            "Starting tree building",
            extra={"characters": len(text), "in_place": borrowed},
        )
        try:
            with translate_parser_errors(self.config.source_name):
                events = list(yaml.parse(text, Loader=yaml.SafeLoader))
            self.metrics.events_consumed = len(events)
            self._prepare_root(tree, events)
            for event in events:
                self._process_event(event)
        finally:
            self._tree = None
            self._stack = []

        self.metrics.processing_time_ms = (time.time() - start_time) * 1000
        self.metrics.characters_processed = len(text)
        self.metrics.nodes_created = tree.size
        self.metrics.arena_bytes = tree.arena_size
        self.logger.info(
            "Tree building completed",
            extra={
                "node_count": tree.size,
                "arena_bytes": tree.arena_size,
                "processing_time_ms": self.metrics.processing_time_ms,
            },
        )
        return tree

    def _reset(self, tree: Tree, text: str, borrowed: bool) -> None:
        self.metrics = ParseMetrics()
        self._tree = tree
        self._text = text
        self._offsets = _ByteOffsets(text)
        self._borrowed = borrowed
        self._stack = []
        self._depth = 0

    def _prepare_root(self, tree: Tree, events: List[yaml.Event]) -> None:
        documents = sum(1 for e in events if isinstance(e, yaml.DocumentStartEvent))
        if documents != 1:
            tree.to_stream(ROOT)

    # ==================== Event handling ====================

    def _process_event(self, event: yaml.Event) -> None:
        if isinstance(event, yaml.ScalarEvent):
            self._on_scalar(event)
        elif isinstance(event, yaml.AliasEvent):
            self._on_alias(event)
        elif isinstance(event, (yaml.MappingStartEvent, yaml.SequenceStartEvent)):
            self._on_collection_start(event)
        elif isinstance(event, yaml.CollectionEndEvent):
            self._stack.pop()
            self._depth -= 1
        elif isinstance(event, yaml.DocumentStartEvent):
            self._on_document_start(event)
        elif isinstance(event, yaml.DocumentEndEvent):
            self._stack.pop()

    def _on_document_start(self, event: yaml.DocumentStartEvent) -> None:
        tree = self._tree
        if tree.is_stream(ROOT):
            node = tree.append_child(ROOT)
        else:
            node = ROOT
        self._record(node, event.start_mark)
        self._stack.append(_Frame(node, "doc"))

    def _on_scalar(self, event: yaml.ScalarEvent) -> None:
        frame = self._stack[-1]
        if frame.kind == "map" and frame.key is None:
            frame.key = _PendingKey(
                scalar=self._scalar_span(event),
                flags=NodeType.KEY | _KEY_STYLES.get(event.style, NodeType.KEY_PLAIN),
                tag=self._tag_span(event.tag),
                anchor=self._name_span(event.anchor),
                location=self._location(event.start_mark),
            )
            if frame.key.tag is not None:
                frame.key.flags |= NodeType.KEYTAG
            if frame.key.anchor is not None:
                frame.key.flags |= NodeType.KEYANCH
            return
        node, data = self._place(frame, event)
        data.node_type |= NodeType.VAL | _VAL_STYLES.get(event.style, NodeType.VAL_PLAIN)
        data.val = NodeScalar(
            tag=self._tag_span(event.tag),
            scalar=self._scalar_span(event),
            anchor=self._name_span(event.anchor),
        )
        self._add_props(data)

    def _on_alias(self, event: yaml.AliasEvent) -> None:
        frame = self._stack[-1]
        name = self._name_span(event.anchor)
        alias = self._tree.copy_to_arena("*" + event.anchor)
        if frame.kind == "map" and frame.key is None:
            frame.key = _PendingKey(
                scalar=alias,
                flags=NodeType.KEY | NodeType.KEYREF,
                anchor=name,
                location=self._location(event.start_mark),
            )
            return
        node, data = self._place(frame, event)
        data.node_type |= NodeType.VAL | NodeType.VALREF
        data.val = NodeScalar(scalar=alias, anchor=name)

    def _on_collection_start(self, event: yaml.CollectionStartEvent) -> None:
        frame = self._stack[-1]
        if frame.kind == "map" and frame.key is None:
            report(
                ErrorKind.MALFORMED_INPUT,
                "mapping keys must be scalars or aliases",
                self._location(event.start_mark),
            )
        self._depth += 1
        if self._depth > self.config.max_depth:
            report(
                ErrorKind.MALFORMED_INPUT,
                f"nesting exceeds max_depth={self.config.max_depth}",
                self._location(event.start_mark),
            )
        node, data = self._place(frame, event)
        is_map = isinstance(event, yaml.MappingStartEvent)
        data.node_type |= NodeType.MAP if is_map else NodeType.SEQ
        data.node_type |= NodeType.FLOW if event.flow_style else NodeType.BLOCK
        data.val = NodeScalar(tag=self._tag_span(event.tag), anchor=self._name_span(event.anchor))
        self._add_props(data)
        self._stack.append(_Frame(node, "map" if is_map else "seq"))

    def _place(self, frame: _Frame, event: yaml.Event) -> Tuple[int, NodeData]:
        """Return the slot that receives the content of ``event``."""
        tree = self._tree
        if frame.kind == "doc":
            node = frame.node
            data = tree._check(node)
            data.node_type |= NodeType.DOC
            return node, data

        node = tree.append_child(frame.node)
        data = tree._check(node)
        self._record(node, event.start_mark)
        if frame.kind == "map":
            key = frame.key
            frame.key = None
            data.node_type = key.flags
            data.key = NodeScalar(tag=key.tag, scalar=key.scalar, anchor=key.anchor)
            if self.config.track_locations and key.location is not None:
                tree._record_location(node, key.location)
        return node, data

    @staticmethod
    def _add_props(data: NodeData) -> None:
        if data.val.tag is not None:
            data.node_type |= NodeType.VALTAG
        if data.val.anchor is not None:
            data.node_type |= NodeType.VALANCH

    # ==================== Text ====================

    def _scalar_span(self, event: yaml.ScalarEvent) -> Span:
        value = event.value
        end = event.end_mark.index
        if event.style in ("'", '"'):
            end -= 1
        if event.style in (None, "'", '"'):
            start = end - len(value)
            if start >= event.start_mark.index and self._text[start:end] == value:
                self.metrics.borrowed_scalars += 1
                return Span(self._offsets(start), self._offsets(end), self._borrowed)
        self.metrics.copied_scalars += 1
        return self._tree.copy_to_arena(value)

    def _tag_span(self, tag: Optional[str]) -> Optional[Span]:
        if not tag or tag == "!":
            return None
        return self._tree.copy_to_arena(shorten_tag(tag))

    def _name_span(self, name: Optional[str]) -> Optional[Span]:
        if name is None:
            return None
        return self._tree.copy_to_arena(name)

    # ==================== Locations ====================

    def _location(self, mark) -> Optional[Location]:
        if mark is None:
            return None
        return Location(self.config.source_name, mark.line + 1, mark.column + 1, mark.index)

    def _record(self, node: int, mark) -> None:
        if self.config.track_locations and mark is not None:
            self._tree._record_location(node, self._location(mark))
