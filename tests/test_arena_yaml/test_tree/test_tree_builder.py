"""Tests for building trees from YAML source text."""

import logging

import pytest

from arena_yaml.shared.config import ParseConfig
from arena_yaml.shared.errors import MalformedInput
from arena_yaml.tree import NONE, ROOT, NodeType, TreeBuilder, shorten_tag


class TestTreeBuilderStructure:
    """Test suite for the shape of built trees."""

    def test_single_document_root(self) -> None:
        """Test a single document becomes the root itself."""
        tree = TreeBuilder().build("a: 1\nb: [2, 3]\n")

        assert tree.is_doc(ROOT)
        assert tree.is_map(ROOT)
        assert not tree.is_stream(ROOT)
        a = tree.find_child(ROOT, "a")
        b = tree.find_child(ROOT, "b")
        assert tree.val(a) == "1"
        assert [tree.val(c) for c in tree.children(b)] == ["2", "3"]
        tree.check()

    def test_multiple_documents_form_stream(self) -> None:
        """Test several documents hang under a stream root."""
        tree = TreeBuilder().build("--- a\n--- [b]\n")

        assert tree.is_stream(ROOT)
        docs = list(tree.children(ROOT))
        assert len(docs) == 2
        assert tree.is_doc(docs[0])
        assert tree.val(docs[0]) == "a"
        assert tree.is_doc(docs[1])
        assert tree.is_seq(docs[1])

    def test_empty_source(self) -> None:
        """Test empty text gives an empty stream."""
        tree = TreeBuilder().build("")

        assert tree.is_stream(ROOT)
        assert tree.num_children(ROOT) == 0

    def test_empty_document(self) -> None:
        """Test an explicit empty document holds an empty scalar."""
        tree = TreeBuilder().build("---\n")

        assert tree.is_doc(ROOT)
        assert tree.has_val(ROOT)
        assert tree.val(ROOT) == ""

    def test_nested_block_collections(self) -> None:
        """Test nesting and container styles."""
        tree = TreeBuilder().build("a:\n  b:\n    - 1\n    - x: 2\n")
        a = tree.first_child(ROOT)
        b = tree.first_child(a)
        item = tree.last_child(b)

        assert tree.is_map(a)
        assert tree.is_seq(b)
        assert tree.node_type(b) & NodeType.BLOCK
        assert tree.is_map(item)
        assert tree.val(tree.find_child(item, "x")) == "2"
        assert tree.depth(item) == 3

    def test_flow_style_recorded(self) -> None:
        """Test flow collections carry the FLOW hint."""
        tree = TreeBuilder().build("a: {b: [1]}\n")
        a = tree.first_child(ROOT)

        assert tree.node_type(a).is_flow()
        assert tree.node_type(tree.first_child(a)).is_flow()

    def test_json_input(self) -> None:
        """Test JSON text is accepted as YAML."""
        tree = TreeBuilder().build('{"a": [1, true, null], "b": "s"}')

        a = tree.find_child(ROOT, "a")
        assert [tree.val(c) for c in tree.children(a)] == ["1", "true", "null"]
        b = tree.find_child(ROOT, "b")
        assert tree.val(b) == "s"
        assert tree.is_val_quoted(b)
        assert tree.is_key_quoted(b)


class TestTreeBuilderScalars:
    """Test suite for scalar styles and properties."""

    def test_scalar_styles(self) -> None:
        """Test quoting and block styles are kept as hints."""
        tree = TreeBuilder().build("p: plain\ns: 'single'\nd: \"double\"\nl: |\n  lit\nf: >\n  fold\n")

        def style(key):
            return tree.node_type(tree.find_child(ROOT, key)) & NodeType.VAL_STYLE

        assert style("p") == NodeType.VAL_PLAIN
        assert style("s") == NodeType.VAL_SQUO
        assert style("d") == NodeType.VAL_DQUO
        assert style("l") == NodeType.VAL_LITERAL
        assert style("f") == NodeType.VAL_FOLDED
        assert tree.val(tree.find_child(ROOT, "l")) == "lit\n"
        assert tree.val(tree.find_child(ROOT, "f")) == "fold\n"

    def test_escaped_scalars_are_decoded(self) -> None:
        """Test escapes are resolved into the stored text."""
        tree = TreeBuilder().build('a: "x\\ty"\nb: \'it\'\'s\'\n')

        assert tree.val(tree.find_child(ROOT, "a")) == "x\ty"
        assert tree.val(tree.find_child(ROOT, "b")) == "it's"

    def test_unicode_text(self) -> None:
        """Test non-ASCII keys and values map to correct byte ranges."""
        tree = TreeBuilder().build("名前: 値\nnext: ünïcode\n")

        assert tree.val(tree.find_child(ROOT, "名前")) == "値"
        assert tree.val(tree.find_child(ROOT, "next")) == "ünïcode"

    def test_tags(self) -> None:
        """Test explicit tags are kept and core tags shortened."""
        tree = TreeBuilder().build("a: !!str 1\nb: !custom x\nc: !!map {}\n")

        assert tree.val_tag(tree.find_child(ROOT, "a")) == "!!str"
        assert tree.val_tag(tree.find_child(ROOT, "b")) == "!custom"
        c = tree.find_child(ROOT, "c")
        assert tree.val_tag(c) == "!!map"
        assert tree.is_map(c)

    def test_anchors_and_aliases(self) -> None:
        """Test anchors and aliases on values and keys."""
        tree = TreeBuilder().build("a: &x 1\nb: *x\n&k key: v\n*k : w\n")
        a, b, keyed, aliased = tree.children(ROOT)

        assert tree.val_anchor(a) == "x"
        assert tree.is_val_ref(b)
        assert tree.val_ref(b) == "x"
        assert tree.val(b) == "*x"
        assert tree.key_anchor(keyed) == "k"
        assert tree.key(keyed) == "key"
        assert tree.is_key_ref(aliased)
        assert tree.key_ref(aliased) == "k"
        assert tree.val(aliased) == "w"

    def test_container_anchor(self) -> None:
        """Test anchors on collections."""
        tree = TreeBuilder().build("base: &b\n  x: 1\nother: *b\n")
        base = tree.find_child(ROOT, "base")

        assert tree.val_anchor(base) == "b"
        assert tree.is_map(base)
        assert tree.val_ref(tree.find_child(ROOT, "other")) == "b"

    def test_shorten_tag(self) -> None:
        """Test core schema tags use the ``!!`` shorthand."""
        assert shorten_tag("tag:yaml.org,2002:int") == "!!int"
        assert shorten_tag("!local") == "!local"


class TestTreeBuilderText:
    """Test suite for borrowed and copied text."""

    def test_copy_mode_owns_text(self) -> None:
        """Test copy mode never borrows from the caller."""
        builder = TreeBuilder()
        tree = builder.build(b"a: 1\n")

        assert tree.source is None
        assert not tree.is_borrowed(tree.first_child(ROOT))
        assert tree.arena_size == 5

    def test_in_place_borrows_verbatim_scalars(self) -> None:
        """Test verbatim scalars view the caller's buffer."""
        buf = bytearray(b"k: value\nq: \"a\\nb\"\n")
        builder = TreeBuilder()
        tree = builder.build_in_place(buf)
        k = tree.find_child(ROOT, "k")
        q = tree.find_child(ROOT, "q")

        assert tree.source is not None
        assert tree.is_borrowed(k)
        assert tree.val(q) == "a\nb"
        assert builder.metrics.copied_scalars == 1
        assert builder.metrics.borrowed_scalars == 3

        buf[3:8] = b"VALUE"
        assert tree.val(k) == "VALUE"

    def test_in_place_requires_writable_buffer(self) -> None:
        """Test read-only buffers are refused."""
        with pytest.raises(TypeError):
            TreeBuilder().build_in_place(b"a: 1\n")  # type: ignore[arg-type]

    def test_invalid_utf8(self) -> None:
        """Test undecodable bytes are malformed input."""
        with pytest.raises(MalformedInput, match="not valid UTF-8"):
            TreeBuilder().build(b"a: \xff\n")


class TestTreeBuilderErrors:
    """Test suite for rejected input."""

    def test_malformed_yaml(self) -> None:
        """Test grammar errors report a located MalformedInput."""
        config = ParseConfig(source_name="bad.yaml")
        with pytest.raises(MalformedInput) as exc_info:
            TreeBuilder(config).build("a: [1, 2\nb: 3\n")

        assert exc_info.value.location is not None
        assert exc_info.value.location.name == "bad.yaml"
        assert exc_info.value.location.line >= 1

    def test_collection_keys_rejected(self) -> None:
        """Test complex mapping keys are not representable."""
        with pytest.raises(MalformedInput, match="mapping keys must be scalars"):
            TreeBuilder().build("? [a, b]\n: c\n")

    def test_max_depth(self) -> None:
        """Test nesting beyond the configured limit is rejected."""
        builder = TreeBuilder(ParseConfig(max_depth=2))

        assert builder.build("[[1]]").num_children(ROOT) == 1
        with pytest.raises(MalformedInput, match="max_depth=2"):
            builder.build("[[[1]]]")

    def test_builder_reusable_after_error(self) -> None:
        """Test a failed build does not poison the builder."""
        builder = TreeBuilder()
        with pytest.raises(MalformedInput):
            builder.build("{a: 1")

        tree = builder.build("a: 1\n")
        assert tree.val(tree.first_child(ROOT)) == "1"


class TestTreeBuilderMetadata:
    """Test suite for locations, metrics and logging."""

    def test_locations_recorded(self) -> None:
        """Test nodes remember their 1-based source position."""
        tree = TreeBuilder(ParseConfig(source_name="doc.yaml")).build("a: 1\nb:\n  - x\n")
        b = tree.find_child(ROOT, "b")
        x = tree.first_child(b)

        assert str(tree.location(b)) == "doc.yaml:2:1"
        assert tree.location(x).line == 3
        assert tree.location(x).column == 5

    def test_locations_can_be_disabled(self) -> None:
        """Test location tracking is optional."""
        tree = TreeBuilder(ParseConfig(track_locations=False)).build("a: 1\n")

        assert tree.location(tree.first_child(ROOT)) is None
        assert tree.location(ROOT) is None

    def test_metrics(self) -> None:
        """Test counters describing the last build."""
        builder = TreeBuilder()
        builder.build("a: 1\n")
        metrics = builder.metrics

        assert metrics.events_consumed == 8
        assert metrics.nodes_created == 2
        assert metrics.borrowed_scalars == 2
        assert metrics.copied_scalars == 0
        assert metrics.characters_processed == 5
        assert metrics.arena_bytes == 5
        assert metrics.processing_time_ms >= 0

    def test_completion_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a completed build is logged with its node count."""
        config = ParseConfig(correlation_id="build-1")
        with caplog.at_level(logging.INFO, logger="arena_yaml.tree.builder"):
            TreeBuilder(config).build("a: 1\n")

        records = [r for r in caplog.records if r.getMessage() == "Tree building completed"]
        assert len(records) == 1
        assert records[0].node_count == 2
        assert records[0].correlation_id == "build-1"

    def test_capacity_hints(self) -> None:
        """Test configured capacities are reserved up front."""
        tree = TreeBuilder(ParseConfig(node_capacity=64, arena_capacity=256)).build("a: 1\n")

        assert tree.capacity >= 64
        assert tree.arena_capacity >= 256
        assert tree.first_child(tree.first_child(ROOT)) == NONE
