"""Developer tools for arena trees.

This module provides memory reporting for trees and their host process.
"""

from .memory import ArenaMemoryReport, MemoryLevel, measure_tree

__all__ = [
    "ArenaMemoryReport",
    "MemoryLevel",
    "measure_tree",
]
