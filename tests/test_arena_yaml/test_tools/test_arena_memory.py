"""Tests for arena memory reporting."""

import logging

import psutil
import pytest

from arena_yaml import parse, parse_in_place
from arena_yaml.tools import memory
from arena_yaml.tools.memory import ArenaMemoryReport, MemoryLevel, measure_tree
from arena_yaml.tree import ROOT, Tree


class TestArenaMemoryReport:
    """Test suite for ArenaMemoryReport."""

    def test_fragmentation_levels(self) -> None:
        """Test the level follows the share of freed slots."""
        assert ArenaMemoryReport().fragmentation == 0.0
        assert ArenaMemoryReport(live_nodes=9, freed_slots=1).level is MemoryLevel.LOW
        assert ArenaMemoryReport(live_nodes=3, freed_slots=1).level is MemoryLevel.NORMAL
        assert ArenaMemoryReport(live_nodes=1, freed_slots=1).level is MemoryLevel.HIGH

    def test_to_dict(self) -> None:
        """Test dictionary export includes derived fields."""
        data = ArenaMemoryReport(live_nodes=3, freed_slots=1, arena_bytes=12).to_dict()

        assert data["live_nodes"] == 3
        assert data["fragmentation"] == 0.25
        assert data["level"] == "normal"
        assert data["arena_bytes"] == 12
        assert "timestamp" in data


class TestMeasureTree:
    """Test suite for measure_tree."""

    def test_counts_slots_and_text(self) -> None:
        """Test slot and arena figures come from the tree."""
        tree = parse("a: 1\nb: [2, 3]\n")
        tree.remove(tree.find_child(ROOT, "b"))

        report = measure_tree(tree)

        assert report.live_nodes == 2
        assert report.freed_slots == 3
        assert report.node_capacity == tree.capacity
        assert report.arena_bytes == tree.arena_size
        assert report.record_bytes > 0
        assert report.borrowed_bytes == 0
        assert report.level is MemoryLevel.HIGH

    def test_borrowed_bytes(self) -> None:
        """Test borrowed text is counted once per distinct range."""
        tree = parse_in_place(bytearray(b"key: value\n"))
        report = measure_tree(tree)

        assert report.borrowed_bytes == len("key") + len("value")
        assert report.arena_bytes == 0

    def test_process_memory_sampled(self) -> None:
        """Test process memory figures are filled in."""
        report = measure_tree(Tree())

        assert report.resident_memory_mb > 0
        assert report.virtual_memory_mb > 0

    def test_process_errors_are_logged(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test psutil failures leave process fields at zero and log a warning."""

        def denied(*args, **kwargs):
            raise psutil.AccessDenied()

        monkeypatch.setattr(memory.psutil, "Process", denied)
        with caplog.at_level(logging.WARNING, logger="arena_yaml.tools.memory"):
            report = measure_tree(Tree())

        assert report.resident_memory_mb == 0.0
        assert any(r.getMessage() == "Failed to get process memory info" for r in caplog.records)

    def test_fragmentation_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test heavily fragmented trees are reported."""
        tree = parse("- 1\n- 2\n- 3\n")
        tree.remove_children(ROOT)

        with caplog.at_level(logging.WARNING, logger="arena_yaml.tools.memory"):
            measure_tree(tree)

        assert any(r.getMessage() == "Tree slot array is heavily fragmented" for r in caplog.records)
