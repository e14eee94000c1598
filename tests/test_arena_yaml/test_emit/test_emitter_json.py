"""Tests for JSON emission."""

import json

import pytest

from arena_yaml import parse
from arena_yaml.emit import emit_json
from arena_yaml.shared.errors import EmitError
from arena_yaml.tree import ROOT, NodeType, Tree


class TestJsonEmission:
    """Test suite for emitting trees as JSON."""

    def test_map_and_sequence(self) -> None:
        """Test compact JSON for nested containers."""
        assert emit_json(parse("a: 1\nb: [2, 3]\n")) == '{"a": 1,"b": [2,3]}\n'

    def test_scalar_resolution(self) -> None:
        """Test plain scalars map to JSON nulls, booleans and numbers."""
        tree = parse("a: ~\nb: true\nc: False\nd:\ne: 'true'\nf: 1.5\ng: 0x1F\n")

        assert emit_json(tree) == (
            '{"a": null,"b": true,"c": false,"d": null,"e": "true","f": 1.5,"g": "0x1F"}\n'
        )

    def test_output_is_valid_json(self) -> None:
        """Test the output loads with the standard JSON parser."""
        tree = parse("name: arena\nitems:\n  - 1\n  - two\n  - {k: -3.5e2}\nflag: no\n")

        assert json.loads(emit_json(tree)) == {
            "name": "arena",
            "items": [1, "two", {"k": -350.0}],
            "flag": "no",
        }

    def test_strings_are_escaped(self) -> None:
        """Test quotes, control characters and unicode in strings."""
        tree = parse('a: "say \\"hi\\"\\n"\nb: ünï\n')

        assert emit_json(tree) == '{"a": "say \\"hi\\"\\n","b": "ünï"}\n'

    def test_block_scalars_stay_strings(self) -> None:
        """Test literal scalars are never reinterpreted as numbers."""
        tree = parse("n: |\n  42\n")
        assert emit_json(tree) == '{"n": "42\\n"}\n'

    def test_stream_emits_one_document_per_line(self) -> None:
        """Test each document of a stream becomes its own line."""
        assert emit_json(parse("--- 1\n--- [2]\n")) == "1\n[2]\n"

    def test_keyed_subtree(self) -> None:
        """Test a map entry is wrapped as a one-member object."""
        tree = parse("a: 1\nb: {c: [x]}\n")

        assert emit_json(tree, tree.find_child(ROOT, "b")) == '{"b": {"c": ["x"]}}\n'
        assert emit_json(tree, tree.find_child(ROOT, "a")) == '{"a": 1}\n'

    def test_empty_containers(self) -> None:
        """Test empty maps and sequences."""
        tree = Tree()
        tree.to_map(ROOT)
        tree.to_map(tree.append_child(ROOT), "m")
        tree.to_seq(tree.append_child(ROOT), "s")
        tree.to_keyval(tree.append_child(ROOT), "v", "")

        assert emit_json(tree) == '{"m": {},"s": [],"v": null}\n'

    def test_untyped_root(self) -> None:
        """Test a tree with only an untyped root emits null."""
        assert emit_json(Tree()) == "null\n"

    def test_quoted_numbers_stay_strings(self) -> None:
        """Test explicit quoting keeps numeric-looking text a string."""
        tree = Tree()
        tree.to_seq(ROOT)
        tree.to_val(tree.append_child(ROOT), "7", NodeType.VAL_DQUO)
        tree.to_val(tree.append_child(ROOT), "7")

        assert emit_json(tree) == '["7",7]\n'


class TestJsonRejections:
    """Test suite for constructs JSON cannot express."""

    @pytest.mark.parametrize(
        ("source", "what"),
        [
            ("a: !!str 1\n", "tags"),
            ("a: &x 1\n", "anchors"),
            ("a: &x 1\nb: *x\n", "anchors"),
            ("- &x 1\n", "anchors"),
        ],
    )
    def test_rejected_constructs(self, source: str, what: str) -> None:
        """Test tags, anchors and references raise EmitError."""
        with pytest.raises(EmitError, match=what):
            emit_json(parse(source))

    def test_reference_rejected(self) -> None:
        """Test an alias without its anchor in the emitted subtree."""
        tree = parse("a: &x 1\nb: *x\n")

        with pytest.raises(EmitError, match="references"):
            emit_json(tree, tree.find_child(ROOT, "b"))

    def test_rejection_carries_location(self) -> None:
        """Test the error points at the offending node in the source."""
        tree = parse("ok: 1\nbad: !!int 2\n")

        with pytest.raises(EmitError) as exc_info:
            emit_json(tree)
        assert exc_info.value.location is not None
        assert exc_info.value.location.line == 2
