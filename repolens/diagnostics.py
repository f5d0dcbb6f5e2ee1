"""Per-run collection of recoverable analysis warnings."""

from __future__ import annotations

import threading
from typing import List, Optional

from .logging import get_logger
from .models import AnalysisWarning

logger = get_logger("diagnostics")


class WarningCollector:
    """Append-only warning log owned by a single analysis run.

    A fresh collector is created for every run and passed explicitly to the
    stages that need it, so concurrent runs never share warnings.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._warnings: List[AnalysisWarning] = []

    def add(self, step: str, message: str, error: BaseException | str | None = None) -> AnalysisWarning:
        detail: Optional[str]
        if error is None:
            detail = None
        elif isinstance(error, BaseException):
            detail = str(error) or error.__class__.__name__
        else:
            detail = str(error)
        warning = AnalysisWarning(step=step, message=message, error_detail=detail)
        with self._lock:
            self._warnings.append(warning)
        if detail:
            logger.warning("[%s] %s (%s)", step, message, detail)
        else:
            logger.warning("[%s] %s", step, message)
        return warning

    def for_step(self, step: str) -> List[AnalysisWarning]:
        with self._lock:
            return [warning for warning in self._warnings if warning.step == step]

    def snapshot(self) -> List[AnalysisWarning]:
        """Return a copy of the warnings recorded so far."""
        with self._lock:
            return list(self._warnings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._warnings)


__all__ = ["WarningCollector"]
