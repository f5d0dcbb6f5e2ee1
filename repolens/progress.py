"""Weighted multi-stage progress reporting."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from .logging import get_logger
from .models import ProgressStage

ProgressCallback = Callable[[str, int], None]

DEFAULT_STAGE_WEIGHTS: Tuple[Tuple[str, int], ...] = (
    ("init", 1),
    ("repoInfo", 4),
    ("commits", 15),
    ("files", 30),
    ("quality", 10),
    ("architecture", 10),
    ("dependencies", 5),
    ("pr", 5),
    ("contributors", 5),
    ("finalizing", 15),
)

logger = get_logger("progress")


class ProgressTracker:
    """Aggregates per-stage completion into a single monotonic percentage.

    Each stage reports its own 0-100 completion. The aggregate is the
    weight-scaled sum, rounded; the callback only fires when the rounded
    aggregate strictly exceeds the last value emitted.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        stages: Sequence[Tuple[str, int]] = DEFAULT_STAGE_WEIGHTS,
    ) -> None:
        total = sum(weight for _, weight in stages)
        if total != 100:
            raise ValueError(f"Stage weights must sum to 100, got {total}")
        self._callback = callback
        self._stages: Dict[str, ProgressStage] = {
            name: ProgressStage(name=name, weight=weight) for name, weight in stages
        }
        self._lock = threading.Lock()
        self._last_emitted = 0

    @property
    def stages(self) -> Mapping[str, ProgressStage]:
        return self._stages

    @property
    def last_emitted(self) -> int:
        return self._last_emitted

    def update(self, stage: str, label: str, stage_progress: float) -> int:
        """Record a stage's completion and return the current aggregate."""
        with self._lock:
            entry = self._stages.get(stage)
            if entry is None:
                raise KeyError(f"Unknown progress stage: {stage}")
            entry.current_progress = max(0.0, min(100.0, float(stage_progress)))
            aggregate = self._aggregate()
            if aggregate > self._last_emitted:
                self._last_emitted = aggregate
                if self._callback is not None:
                    self._callback(label, aggregate)
            elif aggregate < self._last_emitted:
                logger.debug(
                    "Progress decrease ignored (%d%% -> %d%%) for step %r",
                    self._last_emitted,
                    aggregate,
                    label,
                )
            return self._last_emitted

    def complete(self, stage: str, label: str) -> int:
        return self.update(stage, label, 100)

    def _aggregate(self) -> int:
        total = 0.0
        for entry in self._stages.values():
            total += entry.weight * (entry.current_progress / 100.0)
        return int(round(total))


__all__ = ["DEFAULT_STAGE_WEIGHTS", "ProgressCallback", "ProgressTracker"]
