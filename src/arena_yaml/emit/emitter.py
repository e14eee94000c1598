"""Serialization of arena trees to YAML and JSON.

One depth-first traversal serves both the measuring pass and the writing
pass. It depends only on the tree and the configuration, never on the
writer, so the byte count measured by a :class:`CountingWriter` always
matches what the real pass writes.
"""

import json
import re
import time
from typing import List, Optional

from arena_yaml.shared.bridge import ErrorKind, init_once, report
from arena_yaml.shared.config import EmitConfig
from arena_yaml.shared.logging import get_logger
from arena_yaml.shared.result import EmitMetrics
from arena_yaml.tree.arena import ROOT, Tree
from arena_yaml.tree.node_type import NodeType

from .writers import CountingWriter, GrowableWriter, Writer

# Characters YAML can only carry inside double quotes.
_NON_PRINTABLE = re.compile(
    "[^\x09\x0A\x20-\x7E\x85\xA0-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)
_LINE_BREAKS = re.compile("[\n\r\x85\u2028\u2029]")
_PLAIN_INDICATORS = frozenset(",[]{}#&*!|>'\"%@`")
_PLAIN_FORBIDDEN = frozenset(",?[]{}")
_BREAKS_BUT_NEWLINE = re.compile("[\r\x85\u2028\u2029]")
_ESCAPES = {
    "\0": "\\0",
    "\x07": "\\a",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\x0b": "\\v",
    "\x0c": "\\f",
    "\r": "\\r",
    "\x1b": "\\e",
    '"': '\\"',
    "\\": "\\\\",
    "\x85": "\\N",
    "\xa0": "\\_",
    "\u2028": "\\L",
    "\u2029": "\\P",
}

_JSON_NULLS = frozenset(("", "~", "null", "Null", "NULL"))
_JSON_BOOLS = {"true": "true", "True": "true", "TRUE": "true",
               "false": "false", "False": "false", "FALSE": "false"}
_JSON_NUMBER = re.compile(r"-?(?:0|[1-9][0-9]*)(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?\Z")


def double_quoted(text: str) -> str:
    """YAML double-quoted form of ``text``."""
    chunks = ['"']
    for ch in text:
        if ch in _ESCAPES:
            chunks.append(_ESCAPES[ch])
        elif _NON_PRINTABLE.match(ch):
            code = ord(ch)
            if code <= 0xFF:
                chunks.append(f"\\x{code:02X}")
            elif code <= 0xFFFF:
                chunks.append(f"\\u{code:04X}")
            else:
                chunks.append(f"\\U{code:08X}")
        else:
            chunks.append(ch)
    chunks.append('"')
    return "".join(chunks)


def single_quoted(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def is_plain_safe(text: str) -> bool:
    """Whether ``text`` reads back unchanged when written as a plain scalar."""
    if not text or text != text.strip(" \t"):
        return False
    if _NON_PRINTABLE.search(text) or _LINE_BREAKS.search(text) or "\t" in text:
        return False
    first = text[0]
    if first in _PLAIN_INDICATORS:
        return False
    if first in "-?:" and (len(text) == 1 or text[1] == " "):
        return False
    if text.startswith(("---", "...")):
        return False
    if any(ch in _PLAIN_FORBIDDEN for ch in text):
        return False
    return ": " not in text and " #" not in text and not text.endswith(":")


class Emitter:
    """Walks a tree and pushes its YAML or JSON text into a writer."""

    def __init__(self, tree: Tree, config: Optional[EmitConfig] = None) -> None:
        """Initialize emitter.

        Args:
            tree: Tree to serialize; it is only read
            config: Emit configuration; defaults to YAML output
        """
        init_once()
        self.tree = tree
        self.config = config or EmitConfig()
        self.logger = get_logger(__name__, self.config.correlation_id, "emitter")
        self.metrics = EmitMetrics()
        self._out: Writer = CountingWriter()

    def run(self, writer: Writer, node: Optional[int] = None) -> int:
        """Emit the subtree at ``node`` (default: the whole tree) into ``writer``.

        Returns:
            Number of bytes the output occupies, whether or not a fixed
            writer could hold all of it

        Raises:
            BufferExhausted: If a fixed writer is too small and
                ``error_on_excess`` is set; the tree is left untouched
            EmitError: If JSON output was requested for a tree holding tags,
                anchors or references
        """
        start_time = time.time()
        target = ROOT if node is None else node
        self.tree._check(target)
        self.metrics = EmitMetrics()

        if writer.growable:
            before = writer.position
            self._traverse(writer, target)
            required = writer.position - before
            self.metrics.passes = 1
        else:
            counter = CountingWriter()
            self._traverse(counter, target)
            required = counter.position
            self.logger.debug(
                "Measured output",
                extra={"required_bytes": required, "format": self.config.format.value},
            )
            available = writer.acquire(required, self.config.error_on_excess)
            self._traverse(writer, target)
            self.metrics.passes = 2
            self.metrics.truncated = available < required

        self.metrics.required_bytes = required
        self.metrics.processing_time_ms = (time.time() - start_time) * 1000
        self.logger.debug(
            "Emission completed",
            extra={
                "required_bytes": required,
                "passes": self.metrics.passes,
                "truncated": self.metrics.truncated,
            },
        )
        return required

    def _traverse(self, writer: Writer, node: int) -> None:
        self._out = writer
        if self.config.is_json:
            self._json_top(node)
        else:
            self._yaml_top(node)

    def _w(self, text: str) -> None:
        self._out.write(text.encode("utf-8"))

    def _nl(self) -> None:
        self._out.write_byte(0x0A)

    def _indent(self, columns: int) -> None:
        self._out.write_repeated(0x20, columns)

    # ==================== YAML ====================

    def _yaml_top(self, node: int) -> None:
        tree = self.tree
        node_type = tree.node_type(node)
        if node_type.is_stream():
            for doc in tree.children(node):
                self._document(doc, explicit=True)
        elif node_type.has_key():
            self._map_entry(node, 0)
        else:
            self._document(node, explicit=False)

    def _document(self, node: int, explicit: bool) -> None:
        node_type = self.tree.node_type(node)
        props = self._props(node, key=False)
        if self._is_block_container(node):
            if explicit or props:
                self._w("---" + (" " + props if props else ""))
                self._nl()
            self._block_children(node, 0, inline_first=False)
            return
        if node_type.is_container():
            text = self._flow(node)
        else:
            text = self._scalar_text(node, 0)
        if explicit or props or not text or text.startswith("|"):
            head = "---"
            if props:
                head += " " + props
            if text:
                head += " " + text
            text = head
        self._w(text)
        self._nl()

    def _is_block_container(self, node: int) -> bool:
        tree = self.tree
        node_type = tree.node_type(node)
        return node_type.is_container() and not node_type.is_flow() and tree.has_children(node)

    def _block_children(self, node: int, indent: int, inline_first: bool) -> None:
        """Write the children of block container ``node`` at column ``indent``.

        With ``inline_first`` the cursor already sits at that column.
        """
        tree = self.tree
        is_map = tree.is_map(node)
        first = True
        for child in tree.children(node):
            if not (first and inline_first):
                self._indent(indent)
            first = False
            if is_map:
                self._map_entry(child, indent)
            else:
                self._w("-")
                self._value(child, indent, compact=True)

    def _map_entry(self, node: int, indent: int) -> None:
        self._w(self._key_text(node))
        self._w(":")
        self._value(node, indent, compact=False)

    def _value(self, node: int, indent: int, compact: bool) -> None:
        """Write the value part of an entry; the cursor sits after ``:`` or ``-``."""
        props = self._props(node, key=False)
        if self._is_block_container(node):
            if compact and not props:
                self._w(" ")
                self._block_children(node, indent + 2, inline_first=True)
                return
            if props:
                self._w(" " + props)
            self._nl()
            self._block_children(node, indent + self.config.indent, inline_first=False)
            return
        if self.tree.is_container(node):
            text = self._flow(node)
        else:
            text = self._scalar_text(node, indent)
        if props:
            text = props + (" " + text if text else "")
        if text:
            self._w(" " + text)
        self._nl()

    def _props(self, node: int, key: bool) -> str:
        tree = self.tree
        parts: List[str] = []
        anchor = tree.key_anchor(node) if key else tree.val_anchor(node)
        if anchor is not None:
            parts.append("&" + anchor)
        tag = tree.key_tag(node) if key else tree.val_tag(node)
        if tag is not None:
            parts.append(tag)
        return " ".join(parts)

    def _key_text(self, node: int) -> str:
        tree = self.tree
        ref = tree.key_ref(node)
        if ref is not None:
            return "*" + ref + " "
        node_type = tree.node_type(node)
        text = self._quote(tree.key(node), node_type & NodeType.KEY_STYLE, key=True)
        props = self._props(node, key=True)
        return props + " " + text if props else text

    def _scalar_text(self, node: int, indent: int) -> str:
        """Inline text of a scalar value, or a literal block header plus body."""
        tree = self.tree
        node_type = tree.node_type(node)
        ref = tree.val_ref(node)
        if ref is not None:
            return "*" + ref
        if tree.has_children(node):
            report(ErrorKind.EMIT, f"untyped node {node} has children", node=node)
        if not node_type.has_val():
            return ""
        text = tree.val(node)
        if node_type & (NodeType.VAL_LITERAL | NodeType.VAL_FOLDED) and self._literal_ok(text):
            return self._literal(text, indent)
        return self._quote(text, node_type & NodeType.VAL_STYLE, key=False)

    @staticmethod
    def _literal_ok(text: str) -> bool:
        return not (_NON_PRINTABLE.search(text) or _BREAKS_BUT_NEWLINE.search(text))

    def _literal(self, text: str, indent: int) -> str:
        width = self.config.indent
        header = "|"
        if text[:1] in (" ", "\n"):
            header += str(width)
        if not text.endswith("\n"):
            header += "-"
        elif text.endswith("\n\n") or text == "\n":
            header += "+"
        body = text[:-1] if text.endswith("\n") else text
        pad = " " * (indent + width)
        lines = [pad + line if line else "" for line in body.split("\n")]
        return header + "\n" + "\n".join(lines)

    def _quote(self, text: str, style: NodeType, key: bool, flow: bool = False) -> str:
        needs_double = bool(_NON_PRINTABLE.search(text) or _LINE_BREAKS.search(text))
        if style & (NodeType.KEY_DQUO | NodeType.VAL_DQUO) or needs_double:
            return double_quoted(text)
        if style & (NodeType.KEY_SQUO | NodeType.VAL_SQUO):
            return single_quoted(text)
        if not text:
            # an empty block scalar is an empty string; an empty plain one is null
            if style & (NodeType.KEY_LITERAL | NodeType.KEY_FOLDED
                        | NodeType.VAL_LITERAL | NodeType.VAL_FOLDED):
                return "''"
            return "~" if key or flow else ""
        if is_plain_safe(text):
            return text
        return single_quoted(text)

    def _flow(self, node: int) -> str:
        tree = self.tree
        items: List[str] = []
        is_map = tree.is_map(node)
        for child in tree.children(node):
            props = self._props(child, key=False)
            if tree.is_container(child):
                value = self._flow(child)
            else:
                value = self._flow_scalar(child)
            if props:
                value = props + " " + value
            if is_map:
                items.append(self._key_text(child) + ": " + value)
            else:
                items.append(value)
        if is_map:
            return "{" + ", ".join(items) + "}"
        return "[" + ", ".join(items) + "]"

    def _flow_scalar(self, node: int) -> str:
        tree = self.tree
        ref = tree.val_ref(node)
        if ref is not None:
            return "*" + ref
        node_type = tree.node_type(node)
        text = tree.val(node) if node_type.has_val() else ""
        return self._quote(text, node_type & NodeType.VAL_STYLE, key=False, flow=True)

    # ==================== JSON ====================

    def _json_top(self, node: int) -> None:
        tree = self.tree
        node_type = tree.node_type(node)
        if node_type.is_stream():
            for doc in tree.children(node):
                self._w(self._json(doc))
                self._nl()
            return
        text = self._json(node)
        if node_type.has_key():
            text = "{" + self._json_key(node) + ": " + text + "}"
        self._w(text)
        self._nl()

    def _json_reject(self, node: int) -> None:
        node_type = self.tree.node_type(node)
        what = None
        if node_type & (NodeType.KEYTAG | NodeType.VALTAG):
            what = "tags"
        elif node_type.is_anchor():
            what = "anchors"
        elif node_type.is_ref():
            what = "references"
        if what is not None:
            report(
                ErrorKind.EMIT,
                f"JSON cannot represent {what} (node {node})",
                self.tree._locations.get(node),
                node=node,
            )

    def _json_key(self, node: int) -> str:
        return json.dumps(self.tree.key(node), ensure_ascii=False)

    def _json(self, node: int) -> str:
        tree = self.tree
        self._json_reject(node)
        node_type = tree.node_type(node)
        if node_type.is_map():
            members = [
                self._json_key(child) + ": " + self._json(child)
                for child in tree.children(node)
            ]
            return "{" + ",".join(members) + "}"
        if node_type.is_seq():
            return "[" + ",".join(self._json(child) for child in tree.children(node)) + "]"
        if tree.has_children(node):
            report(ErrorKind.EMIT, f"untyped node {node} has children", node=node)
        if not node_type.has_val():
            return "null"
        text = tree.val(node)
        if not node_type & (NodeType.VAL_QUOTED | NodeType.VAL_LITERAL | NodeType.VAL_FOLDED):
            if text in _JSON_NULLS:
                return "null"
            if text in _JSON_BOOLS:
                return _JSON_BOOLS[text]
            if _JSON_NUMBER.match(text):
                return text
        return json.dumps(text, ensure_ascii=False)


def emit(
    tree: Tree,
    writer: Writer,
    node: Optional[int] = None,
    config: Optional[EmitConfig] = None,
) -> int:
    """Emit ``tree`` (or the subtree at ``node``) into ``writer``.

    Returns:
        Number of bytes the output occupies
    """
    return Emitter(tree, config).run(writer, node)


def emit_yaml(tree: Tree, node: Optional[int] = None, config: Optional[EmitConfig] = None) -> str:
    """Emit as YAML into a fresh growable buffer and return the text."""
    config = (config or EmitConfig()).override(format="yaml")
    writer = GrowableWriter()
    emit(tree, writer, node, config)
    return writer.text()


def emit_json(tree: Tree, node: Optional[int] = None, config: Optional[EmitConfig] = None) -> str:
    """Emit as JSON into a fresh growable buffer and return the text."""
    config = (config or EmitConfig()).override(format="json")
    writer = GrowableWriter()
    emit(tree, writer, node, config)
    return writer.text()
