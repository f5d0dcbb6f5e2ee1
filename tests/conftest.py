from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from repolens.classifier import FileClassifier
from repolens.diagnostics import WarningCollector
from repolens.parsing import SourceParser
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def classifier() -> FileClassifier:
    return FileClassifier()


@pytest.fixture(scope="session")
def parser() -> SourceParser:
    """Share one parser across the session; grammars are loaded lazily."""
    return SourceParser()


@pytest.fixture
def collector() -> WarningCollector:
    return WarningCollector()


@pytest.fixture(autouse=True)
def _reset_repolens_logging() -> Iterator[None]:
    """Undo configure_logging() so caplog keeps seeing repolens records."""
    yield
    logger = logging.getLogger("repolens")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
