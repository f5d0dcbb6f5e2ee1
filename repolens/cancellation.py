"""Deadline-aware cancellation tokens for expensive stages."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .errors import StageTimeout


class CancellationToken:
    """Cooperative cancellation with an optional deadline.

    Stages call :meth:`raise_if_cancelled` at natural iteration boundaries;
    once the deadline passes (or :meth:`cancel` is called) it raises
    :class:`StageTimeout` so the stage unwinds through its own cleanup.
    """

    def __init__(
        self,
        stage: str = "stage",
        timeout: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stage = stage
        self.timeout = timeout
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._cancelled.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise StageTimeout(self.stage, self.timeout)


__all__ = ["CancellationToken"]
