"""Memory reporting for arena trees.

Summarizes how a tree uses its slot array and text arena, and samples the
process's memory through ``psutil`` so the two can be compared when tuning
``node_capacity``/``arena_capacity`` or deciding when to :meth:`Tree.reorder`.
"""

import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

import psutil

from arena_yaml.shared.logging import get_logger
from arena_yaml.tree.arena import Tree

logger = get_logger(__name__, component="memory")

BYTES_PER_MB = 1024 * 1024


class MemoryLevel(Enum):
    """How much of the slot array is wasted on freed nodes."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class ArenaMemoryReport:
    """Memory usage of one tree plus a process sample."""

    # Slot array
    live_nodes: int = 0
    freed_slots: int = 0
    node_capacity: int = 0
    record_bytes: int = 0

    # Text
    arena_bytes: int = 0
    arena_capacity: int = 0
    borrowed_bytes: int = 0

    # Process memory information
    resident_memory_mb: float = 0.0
    virtual_memory_mb: float = 0.0
    memory_percent: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def fragmentation(self) -> float:
        """Fraction of used slots that hold freed nodes."""
        used = self.live_nodes + self.freed_slots
        if used == 0:
            return 0.0
        return self.freed_slots / used

    @property
    def level(self) -> MemoryLevel:
        if self.fragmentation >= 0.5:
            return MemoryLevel.HIGH
        if self.fragmentation >= 0.25:
            return MemoryLevel.NORMAL
        return MemoryLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        """Convert memory report to dictionary representation."""
        return {
            "live_nodes": self.live_nodes,
            "freed_slots": self.freed_slots,
            "node_capacity": self.node_capacity,
            "record_bytes": self.record_bytes,
            "arena_bytes": self.arena_bytes,
            "arena_capacity": self.arena_capacity,
            "borrowed_bytes": self.borrowed_bytes,
            "fragmentation": self.fragmentation,
            "level": self.level.value,
            "resident_memory_mb": self.resident_memory_mb,
            "virtual_memory_mb": self.virtual_memory_mb,
            "memory_percent": self.memory_percent,
            "timestamp": self.timestamp,
        }


def measure_tree(tree: Tree) -> ArenaMemoryReport:
    """Build an :class:`ArenaMemoryReport` for ``tree``.

    Borrowed bytes count the distinct caller-buffer text referenced by live
    nodes; record bytes are a shallow estimate of the Python node records.
    """
    report = ArenaMemoryReport(
        live_nodes=tree.size,
        freed_slots=tree.slot_count - tree.size,
        node_capacity=tree.capacity,
        arena_bytes=tree.arena_size,
        arena_capacity=tree.arena_capacity,
    )

    borrowed = set()
    record_bytes = 0
    for node in tree.walk():
        data = tree.get(node)
        record_bytes += sys.getsizeof(data) + sys.getsizeof(data.key) + sys.getsizeof(data.val)
        for span in list(data.key.spans()) + list(data.val.spans()):
            if span.borrowed:
                borrowed.add((span.start, span.end))
    report.record_bytes = record_bytes
    report.borrowed_bytes = sum(end - start for start, end in borrowed)

    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        report.resident_memory_mb = memory_info.rss / BYTES_PER_MB
        report.virtual_memory_mb = memory_info.vms / BYTES_PER_MB
        report.memory_percent = process.memory_percent()
    except psutil.Error as e:
        logger.warning("Failed to get process memory info", extra={"error": str(e)})

    if report.level is MemoryLevel.HIGH:
        logger.warning(
            "Tree slot array is heavily fragmented",
            extra={"fragmentation": report.fragmentation, "freed_slots": report.freed_slots},
        )
    return report
