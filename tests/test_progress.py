"""Tests for weighted progress reporting."""

from __future__ import annotations

import pytest

from repolens.progress import DEFAULT_STAGE_WEIGHTS, ProgressTracker


def test_default_weights_sum_to_one_hundred() -> None:
    assert sum(weight for _, weight in DEFAULT_STAGE_WEIGHTS) == 100


def test_callback_fires_only_on_strict_increase() -> None:
    events = []
    tracker = ProgressTracker(lambda label, pct: events.append((label, pct)))

    tracker.complete("init", "init")
    tracker.update("files", "files half", 50)
    tracker.update("files", "files half again", 50)
    tracker.update("files", "files regress", 10)
    tracker.complete("files", "files done")

    assert events == [("init", 1), ("files half", 16), ("files done", 31)]
    assert tracker.last_emitted == 31


def test_progress_is_clamped() -> None:
    events = []
    tracker = ProgressTracker(lambda label, pct: events.append(pct))

    tracker.update("commits", "over", 250)
    tracker.update("quality", "under", -40)

    assert events == [15]
    assert tracker.stages["commits"].current_progress == 100
    assert tracker.stages["quality"].current_progress == 0


def test_completing_every_stage_reaches_one_hundred() -> None:
    events = []
    tracker = ProgressTracker(lambda label, pct: events.append(pct))

    for name, _ in DEFAULT_STAGE_WEIGHTS:
        tracker.complete(name, name)

    assert events[-1] == 100
    assert events == sorted(set(events))


def test_unknown_stage_raises() -> None:
    tracker = ProgressTracker()
    with pytest.raises(KeyError):
        tracker.update("deploy", "deploy", 10)


def test_weights_must_sum_to_one_hundred() -> None:
    with pytest.raises(ValueError):
        ProgressTracker(stages=(("a", 50), ("b", 40)))


def test_custom_stage_table() -> None:
    events = []
    tracker = ProgressTracker(lambda label, pct: events.append(pct), stages=(("a", 30), ("b", 70)))

    tracker.update("b", "b", 50)
    tracker.complete("a", "a")

    assert events == [35, 65]
