"""Tests for node type flags and node records."""

import pytest

from arena_yaml.tree.node import NONE, NodeData, NodeScalar, Span
from arena_yaml.tree.node_type import NodeType


class TestNodeType:
    """Test suite for NodeType predicates."""

    def test_keyval_predicates(self) -> None:
        """Test a map entry holding a scalar."""
        node_type = NodeType.KEY | NodeType.VAL

        assert node_type == NodeType.KEYVAL
        assert node_type.is_keyval()
        assert node_type.has_key()
        assert node_type.has_val()
        assert not node_type.is_val()
        assert not node_type.is_container()

    def test_unkeyed_scalar(self) -> None:
        """Test a sequence item or document scalar."""
        assert NodeType.VAL.is_val()
        assert not NodeType.VAL.is_keyval()
        assert (NodeType.DOC | NodeType.VAL).is_val()

    def test_containers(self) -> None:
        """Test map, sequence and stream container predicates."""
        assert NodeType.MAP.is_container()
        assert NodeType.MAP.is_map()
        assert NodeType.SEQ.is_seq()
        assert not NodeType.SEQ.is_map()

        assert NodeType.STREAM.is_stream()
        assert NodeType.STREAM.is_seq()
        assert NodeType.STREAM.is_container()
        assert not NodeType.SEQ.is_stream()

    def test_document_flag(self) -> None:
        """Test documents combine with their content kind."""
        node_type = NodeType.DOC | NodeType.MAP

        assert node_type.is_doc()
        assert node_type.is_map()
        assert not NodeType.MAP.is_doc()

    def test_anchor_and_reference_predicates(self) -> None:
        """Test anchors and references on either side."""
        assert NodeType.KEYANCH.has_key_anchor()
        assert NodeType.VALANCH.has_val_anchor()
        assert NodeType.VALANCH.is_anchor()
        assert NodeType.KEYREF.is_key_ref()
        assert NodeType.VALREF.is_val_ref()
        assert NodeType.VALREF.is_ref()
        assert NodeType.KEYANCH.is_anchor_or_ref()
        assert NodeType.VALREF.is_anchor_or_ref()
        assert not NodeType.KEYVAL.is_anchor_or_ref()

    def test_tag_and_quote_predicates(self) -> None:
        """Test explicit tags and quoting styles."""
        assert NodeType.KEYTAG.has_key_tag()
        assert NodeType.VALTAG.has_val_tag()
        assert NodeType.KEY_SQUO.is_key_quoted()
        assert NodeType.VAL_DQUO.is_val_quoted()
        assert NodeType.VAL_SQUO.is_quoted()
        assert not NodeType.VAL_PLAIN.is_quoted()
        assert NodeType.FLOW.is_flow()

    def test_structural_strips_styles(self) -> None:
        """Test style hints never affect the structural view."""
        node_type = NodeType.KEYVAL | NodeType.KEY_DQUO | NodeType.VAL_LITERAL | NodeType.VALANCH

        assert node_type.structural() == NodeType.KEYVAL | NodeType.VALANCH
        assert (NodeType.MAP | NodeType.FLOW).structural() == NodeType.MAP

    def test_type_str(self) -> None:
        """Test human readable kind names."""
        assert NodeType.NOTYPE.type_str() == "NOTYPE"
        assert NodeType.VAL.type_str() == "VAL"
        assert NodeType.KEYVAL.type_str() == "KEYVAL"
        assert (NodeType.KEY | NodeType.MAP).type_str() == "KEYMAP"
        assert (NodeType.KEY | NodeType.SEQ).type_str() == "KEYSEQ"
        assert (NodeType.DOC | NodeType.MAP).type_str() == "DOCMAP"
        assert NodeType.STREAM.type_str() == "STREAM"
        assert (NodeType.VAL | NodeType.VALREF).type_str() == "VALREF"
        assert (NodeType.KEYVAL | NodeType.VALANCH).type_str() == "KEYVALANCH"


class TestSpan:
    """Test suite for Span."""

    def test_length(self) -> None:
        """Test a span's length is its byte count."""
        assert len(Span(3, 8)) == 5
        assert len(Span(4, 4)) == 0
        assert Span(0, 1, borrowed=True).borrowed

    def test_invalid_bounds_rejected(self) -> None:
        """Test negative or reversed ranges are rejected."""
        with pytest.raises(ValueError):
            Span(-1, 2)
        with pytest.raises(ValueError):
            Span(5, 2)


class TestNodeData:
    """Test suite for NodeData records."""

    def test_defaults(self) -> None:
        """Test a fresh record is untyped and unlinked."""
        data = NodeData()

        assert data.node_type == NodeType.NOTYPE
        assert data.parent == NONE
        assert data.first_child == NONE
        assert data.last_child == NONE
        assert data.next_sibling == NONE
        assert data.prev_sibling == NONE
        assert not data.freed

    def test_copy_is_detached(self) -> None:
        """Test copies do not share scalar holders with the original."""
        data = NodeData(node_type=NodeType.KEYVAL, key=NodeScalar(scalar=Span(0, 1)))
        copy = data.copy()
        copy.key.scalar = Span(5, 6)
        copy.parent = 3

        assert data.key.scalar == Span(0, 1)
        assert data.parent == NONE

    def test_clear_helpers(self) -> None:
        """Test links and payload can be reset separately."""
        data = NodeData(
            node_type=NodeType.VAL,
            val=NodeScalar(scalar=Span(0, 2)),
            parent=1,
            next_sibling=4,
        )
        data.clear_links()
        assert data.parent == NONE
        assert data.next_sibling == NONE
        assert data.node_type == NodeType.VAL

        data.clear_payload()
        assert data.node_type == NodeType.NOTYPE
        assert data.val.scalar is None

    def test_scalar_spans(self) -> None:
        """Test only present spans are listed."""
        scalar = NodeScalar(tag=Span(0, 3), anchor=Span(3, 4))
        assert list(scalar.spans()) == [Span(0, 3), Span(3, 4)]
        assert list(NodeScalar().spans()) == []
