"""End-to-end tests: parse, edit the tree, emit."""

import yaml

from arena_yaml import emit_json, emit_yaml, parse, parse_in_place
from arena_yaml.tree import NONE, ROOT, NodeType


class TestEditWorkflows:
    """Test suite for typical edit-and-emit sessions."""

    def test_update_values(self) -> None:
        """Test changing values and adding entries before emitting."""
        tree = parse("server:\n  host: localhost\n  port: 80\n")
        server = tree.find_child(ROOT, "server")
        tree.set_val(tree.find_child(server, "port"), "8080")
        tls = tree.append_child(server)
        tree.to_keyval(tls, "tls", "true")

        assert emit_yaml(tree) == "server:\n  host: localhost\n  port: 8080\n  tls: true\n"

    def test_restructure_and_compact(self) -> None:
        """Test moves and removals followed by compaction."""
        tree = parse("old:\n  keep: 1\n  drop: 2\nnew: {}\n")
        old = tree.find_child(ROOT, "old")
        new = tree.find_child(ROOT, "new")
        keep = tree.find_child(old, "keep")

        tree.move_to_parent(keep, new, NONE)
        tree.remove(old)
        mapping = tree.reorder()

        assert mapping[keep] == 2
        assert emit_yaml(tree) == "new: {keep: 1}\n"
        tree.check()

    def test_merge_documents_across_trees(self) -> None:
        """Test building one tree out of parts of others."""
        base = parse("a: 1\nshared: {x: 1}\n")
        overlay = parse_in_place(bytearray(b"shared: {x: 2, y: 3}\n"))

        target = base.find_child(ROOT, "shared")
        copied = base.move_from(overlay, overlay.first_child(ROOT), ROOT, NONE)
        base.duplicate_children_no_rep(copied, target, base.last_child(target))
        base.remove(copied)

        assert emit_yaml(base) == "a: 1\nshared: {x: 2, y: 3}\n"

    def test_convert_yaml_to_json(self) -> None:
        """Test YAML with styles converts to equivalent JSON."""
        source = "name: demo\ntags: [a, 'b']\nnested:\n  ratio: 0.5\n  enabled: false\n"
        text = emit_json(parse(source))

        assert yaml.safe_load(text) == yaml.safe_load(source)

    def test_emitted_yaml_matches_pyyaml_reading(self) -> None:
        """Test emitted text loads to the same data as the source."""
        source = (
            "list:\n- 1\n- two\n- {three: 3}\n"
            "quoted: \"multi\\nline\"\n"
            "block: |\n  keep\n   indent\n"
            "empty:\n"
        )
        emitted = emit_yaml(parse(source))

        assert yaml.safe_load(emitted) == yaml.safe_load(source)

    def test_build_from_scratch(self) -> None:
        """Test a document created entirely in code."""
        tree = parse("")
        doc = tree.append_child(ROOT)
        tree.to_doc(doc, NodeType.SEQ)
        for value in ("1", "x y", ""):
            tree.to_val(tree.append_child(doc), value)

        assert emit_yaml(tree) == "---\n- 1\n- x y\n-\n"
        assert emit_json(tree) == '[1,"x y",null]\n'
