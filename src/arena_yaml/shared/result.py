"""Metrics gathered while building and emitting trees."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class ParseMetrics:
    """Performance and arena statistics for one parse."""

    processing_time_ms: float = 0.0
    characters_processed: int = 0
    events_consumed: int = 0
    nodes_created: int = 0
    arena_bytes: int = 0
    borrowed_scalars: int = 0
    copied_scalars: int = 0

    @property
    def characters_per_second(self) -> float:
        """Calculate characters processed per second."""
        if self.processing_time_ms <= 0:
            return 0.0
        return (self.characters_processed * 1000.0) / self.processing_time_ms

    @property
    def borrow_rate(self) -> float:
        """Fraction of scalars that reference source text instead of new arena text."""
        total = self.borrowed_scalars + self.copied_scalars
        if total == 0:
            return 0.0
        return self.borrowed_scalars / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processing_time_ms": self.processing_time_ms,
            "characters_processed": self.characters_processed,
            "events_consumed": self.events_consumed,
            "nodes_created": self.nodes_created,
            "arena_bytes": self.arena_bytes,
            "borrowed_scalars": self.borrowed_scalars,
            "copied_scalars": self.copied_scalars,
        }


@dataclass
class EmitMetrics:
    """Outcome of one emission."""

    required_bytes: int = 0
    passes: int = 0
    truncated: bool = False
    processing_time_ms: float = 0.0
