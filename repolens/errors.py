"""Exception types raised by repolens."""

from __future__ import annotations


class RepolensError(Exception):
    """Base class for repolens errors."""


class InvalidRepositoryError(RepolensError, ValueError):
    """Raised when a repository snapshot fails input validation.

    This is the only failure that aborts an analysis run; everything else is
    recorded as a warning.
    """


class ConfigError(RepolensError, RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class StageTimeout(RepolensError, TimeoutError):
    """Raised inside a stage once its cancellation token has expired."""

    def __init__(self, stage: str, timeout: float | None = None) -> None:
        self.stage = stage
        self.timeout = timeout
        if timeout is not None:
            message = f"{stage} exceeded its {timeout:g}s deadline"
        else:
            message = f"{stage} was cancelled"
        super().__init__(message)


__all__ = ["ConfigError", "InvalidRepositoryError", "RepolensError", "StageTimeout"]
