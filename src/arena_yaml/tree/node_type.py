"""Node type bitset.

A node's kind is never stored separately: it is derived from combinable flags.
A map entry holding a scalar is ``KEY | VAL``; a map entry holding a sequence
is ``KEY | SEQ``; the root of a single-document parse is ``DOC | MAP`` (or
``SEQ``/``VAL``). Style bits are hints for the emitter only and never affect
structure.
"""

from enum import IntFlag
from typing import List


class NodeType(IntFlag):
    """Flags describing a node's kind, payload properties and style hints."""

    NOTYPE = 0
    #: leaf node with a (possibly empty) value
    VAL = 1 << 0
    #: member of a map, carries a key
    KEY = 1 << 1
    #: parent of keyed children
    MAP = 1 << 2
    #: parent of unkeyed children
    SEQ = 1 << 3
    #: a document
    DOC = 1 << 4
    #: a sequence of documents
    STREAM = (1 << 5) | SEQ
    #: the key is an *alias
    KEYREF = 1 << 6
    #: the value is an *alias
    VALREF = 1 << 7
    #: the key has an &anchor
    KEYANCH = 1 << 8
    #: the value has an &anchor
    VALANCH = 1 << 9
    #: the key has an explicit tag
    KEYTAG = 1 << 10
    #: the value has an explicit tag
    VALTAG = 1 << 11

    # style hints
    FLOW = 1 << 14
    BLOCK = 1 << 16
    KEY_LITERAL = 1 << 17
    VAL_LITERAL = 1 << 18
    KEY_FOLDED = 1 << 19
    VAL_FOLDED = 1 << 20
    KEY_SQUO = 1 << 21
    VAL_SQUO = 1 << 22
    KEY_DQUO = 1 << 23
    VAL_DQUO = 1 << 24
    KEY_PLAIN = 1 << 25
    VAL_PLAIN = 1 << 26

    # composites
    KEYVAL = KEY | VAL
    CONTAINER = MAP | SEQ
    KEY_STYLE = KEY_LITERAL | KEY_FOLDED | KEY_SQUO | KEY_DQUO | KEY_PLAIN
    VAL_STYLE = VAL_LITERAL | VAL_FOLDED | VAL_SQUO | VAL_DQUO | VAL_PLAIN
    CONTAINER_STYLE = FLOW | BLOCK
    STYLE = KEY_STYLE | VAL_STYLE | CONTAINER_STYLE
    KEY_QUOTED = KEY_SQUO | KEY_DQUO
    VAL_QUOTED = VAL_SQUO | VAL_DQUO

    # queries -----------------------------------------------------------

    def is_stream(self) -> bool:
        return (self & NodeType.STREAM) == NodeType.STREAM

    def is_doc(self) -> bool:
        return bool(self & NodeType.DOC)

    def is_container(self) -> bool:
        return bool(self & (NodeType.MAP | NodeType.SEQ | NodeType.STREAM))

    def is_map(self) -> bool:
        return bool(self & NodeType.MAP)

    def is_seq(self) -> bool:
        return bool(self & NodeType.SEQ)

    def has_key(self) -> bool:
        return bool(self & NodeType.KEY)

    def has_val(self) -> bool:
        return bool(self & NodeType.VAL)

    def is_val(self) -> bool:
        """Unkeyed scalar (a sequence item or a document scalar)."""
        return (self & NodeType.KEYVAL) == NodeType.VAL

    def is_keyval(self) -> bool:
        return (self & NodeType.KEYVAL) == NodeType.KEYVAL

    def has_key_tag(self) -> bool:
        return bool(self & NodeType.KEYTAG)

    def has_val_tag(self) -> bool:
        return bool(self & NodeType.VALTAG)

    def has_key_anchor(self) -> bool:
        return bool(self & NodeType.KEYANCH)

    def has_val_anchor(self) -> bool:
        return bool(self & NodeType.VALANCH)

    def is_anchor(self) -> bool:
        return bool(self & (NodeType.KEYANCH | NodeType.VALANCH))

    def is_key_ref(self) -> bool:
        return bool(self & NodeType.KEYREF)

    def is_val_ref(self) -> bool:
        return bool(self & NodeType.VALREF)

    def is_ref(self) -> bool:
        return bool(self & (NodeType.KEYREF | NodeType.VALREF))

    def is_anchor_or_ref(self) -> bool:
        return self.is_anchor() or self.is_ref()

    def is_key_quoted(self) -> bool:
        return bool(self & NodeType.KEY_QUOTED)

    def is_val_quoted(self) -> bool:
        return bool(self & NodeType.VAL_QUOTED)

    def is_quoted(self) -> bool:
        return self.is_key_quoted() or self.is_val_quoted()

    def is_flow(self) -> bool:
        return bool(self & NodeType.FLOW)

    def structural(self) -> "NodeType":
        """The flags with every style hint removed."""
        return NodeType(int(self) & ~int(NodeType.STYLE))

    def type_str(self) -> str:
        """Human readable kind, e.g. ``"KEYMAP"`` or ``"DOCSEQ"``."""
        parts: List[str] = []
        if self.is_stream():
            parts.append("STREAM")
        elif self.is_doc():
            parts.append("DOC")
        if self.has_key():
            parts.append("KEY")
        if self.is_map():
            parts.append("MAP")
        elif self.is_seq() and not self.is_stream():
            parts.append("SEQ")
        elif self.has_val():
            parts.append("VAL")
        if self.is_ref():
            parts.append("REF")
        if self.is_anchor():
            parts.append("ANCH")
        return "".join(parts) or "NOTYPE"
