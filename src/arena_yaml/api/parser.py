"""Entry points for parsing into and emitting from arena trees.

Module-level functions cover the common cases; :class:`ArenaYamlParser`
keeps a configuration and usage statistics across many parses.
"""

import time
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Union

from arena_yaml.emit import BufferWriter, GrowableWriter, StreamWriter, Writer
from arena_yaml.emit import emit as _emit
from arena_yaml.emit import emit_json, emit_yaml
from arena_yaml.shared import EmitConfig, EmitFormat, ParseConfig, get_logger, init_once
from arena_yaml.tree import Tree, TreeBuilder

SourceType = Union[str, bytes]

MS_PER_SECOND = 1000  # Milliseconds per second conversion


def parse(source: SourceType, config: Optional[ParseConfig] = None) -> Tree:
    """Parse YAML (or JSON) text into a tree that owns all of its text.

    Args:
        source: Document text as ``str`` or UTF-8 ``bytes``
        config: Optional parse configuration

    Returns:
        The populated tree

    Raises:
        MalformedInput: If the text is not well-formed; no tree is returned

    Examples:
        >>> tree = parse("a: 1\\nb: [2, 3]\\n")
        >>> tree.num_children(tree.root_id())
        2
        >>> tree.val(tree.find_child(tree.root_id(), "a"))
        '1'
    """
    init_once()
    return TreeBuilder(config).build(source)


def parse_in_place(
    buffer: Union[bytearray, memoryview], config: Optional[ParseConfig] = None
) -> Tree:
    """Parse a writable buffer, borrowing scalar text from it where possible.

    The returned tree views ``buffer``; the caller must keep it alive and
    unchanged for as long as the tree is used.

    Examples:
        >>> buf = bytearray(b"name: arena\\n")
        >>> tree = parse_in_place(buf)
        >>> tree.is_borrowed(tree.first_child(tree.root_id()))
        True
    """
    init_once()
    return TreeBuilder(config).build_in_place(buffer)


def parse_file(file_path: Union[str, Path], config: Optional[ParseConfig] = None) -> Tree:
    """Parse the file at ``file_path`` in copy mode.

    Locations recorded in the tree and in errors carry the file path as
    their source name unless ``config`` names another.

    Raises:
        OSError: If the file cannot be read
        MalformedInput: If the content is not well-formed
    """
    path_obj = Path(file_path) if isinstance(file_path, str) else file_path
    logger = get_logger(__name__, config.correlation_id if config else None, "parse_file")
    logger.info("Starting file parse operation", extra={"file_path": str(path_obj)})

    with path_obj.open("rb") as file:
        raw_data = file.read()
    if config is None:
        config = ParseConfig(source_name=str(path_obj))
    elif config.source_name == ParseConfig().source_name:
        config = config.override(source_name=str(path_obj))
    return parse(raw_data, config)


def emit(
    tree: Tree,
    writer: Writer,
    node: Optional[int] = None,
    config: Optional[EmitConfig] = None,
) -> int:
    """Emit ``tree`` (or the subtree at ``node``) through ``writer``.

    Fixed-size writers are measured first and then written, so the returned
    byte count is exact even when the writer could not hold it all.

    Returns:
        Number of bytes the output occupies

    Raises:
        BufferExhausted: If a fixed writer is too small and the config's
            ``error_on_excess`` is set
        EmitError: If the tree holds constructs JSON cannot express
    """
    return _emit(tree, writer, node, config)


def emit_to_buffer(
    tree: Tree,
    buffer: Union[bytearray, memoryview],
    node: Optional[int] = None,
    config: Optional[EmitConfig] = None,
) -> int:
    """Emit into the caller's fixed-size ``buffer``.

    Returns:
        Number of bytes the output occupies; larger than ``len(buffer)``
        only when ``error_on_excess`` is off and the output was truncated

    Raises:
        BufferExhausted: If ``buffer`` is too small and ``error_on_excess`` is set
    """
    writer = BufferWriter(buffer)
    try:
        return _emit(tree, writer, node, config)
    finally:
        writer.release()


def emit_to_stream(
    tree: Tree,
    stream: BinaryIO,
    node: Optional[int] = None,
    config: Optional[EmitConfig] = None,
) -> int:
    """Emit into a binary file-like object and return the byte count."""
    writer = StreamWriter(stream)
    required = _emit(tree, writer, node, config)
    writer.flush()
    return required


class ArenaYamlParser:
    """Reusable parser holding configurations and usage statistics.

    Examples:
        >>> parser = ArenaYamlParser(emit_config=EmitConfig.json())
        >>> parser.dumps(parser.loads("[1, 2]"))
        '[1,2]\\n'
        >>> parser.statistics["total_parses"]
        1
    """

    def __init__(
        self,
        config: Optional[ParseConfig] = None,
        emit_config: Optional[EmitConfig] = None,
    ) -> None:
        """Initialize parser.

        Args:
            config: Parse configuration (defaults to :class:`ParseConfig()`)
            emit_config: Emit configuration (defaults to YAML)
        """
        init_once()
        self.config = config or ParseConfig()
        self.emit_config = emit_config or EmitConfig()
        self.logger = get_logger(__name__, self.config.correlation_id, "arena_yaml_parser")
        self._builder = TreeBuilder(self.config)

        self._parse_count = 0
        self._total_processing_time = 0.0
        self._characters_processed = 0
        self._nodes_created = 0

    def loads(self, source: SourceType) -> Tree:
        """Parse ``source`` in copy mode with the held configuration."""
        return self._track(lambda: self._builder.build(source))

    def loads_in_place(self, buffer: Union[bytearray, memoryview]) -> Tree:
        """Parse ``buffer`` in place with the held configuration."""
        return self._track(lambda: self._builder.build_in_place(buffer))

    def dumps(self, tree: Tree, node: Optional[int] = None) -> str:
        """Emit ``tree`` as text in the held output format."""
        writer = GrowableWriter()
        _emit(tree, writer, node, self.emit_config)
        return writer.text()

    def _track(self, build: Any) -> Tree:
        start_time = time.time()
        tree = build()
        processing_time = (time.time() - start_time) * MS_PER_SECOND
        self._parse_count += 1
        self._total_processing_time += processing_time
        self._characters_processed += self._builder.metrics.characters_processed
        self._nodes_created += self._builder.metrics.nodes_created
        return tree

    def reconfigure(
        self,
        config: Optional[ParseConfig] = None,
        emit_config: Optional[EmitConfig] = None,
    ) -> None:
        """Replace the held configurations."""
        if config:
            self.config = config
            self._builder = TreeBuilder(config)
        if emit_config:
            self.emit_config = emit_config
        self.logger.info(
            "Parser reconfigured",
            extra={
                "config_updated": config is not None,
                "emit_format": self.emit_config.format.value,
            },
        )

    @property
    def output_format(self) -> EmitFormat:
        return self.emit_config.format

    @property
    def statistics(self) -> Dict[str, Any]:
        """Usage statistics accumulated since creation or the last reset."""
        return {
            "total_parses": self._parse_count,
            "characters_processed": self._characters_processed,
            "nodes_created": self._nodes_created,
            "total_processing_time_ms": self._total_processing_time,
            "average_processing_time_ms": (
                self._total_processing_time / self._parse_count
                if self._parse_count > 0 else 0.0
            ),
            "correlation_id": self.config.correlation_id,
        }

    def reset_statistics(self) -> None:
        """Reset parser usage statistics."""
        self._parse_count = 0
        self._total_processing_time = 0.0
        self._characters_processed = 0
        self._nodes_created = 0
        self.logger.info("Parser statistics reset")
