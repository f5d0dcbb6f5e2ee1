"""Base classes for signal analyzer plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from ..classifier import FileClassifier
from ..config import AnalysisConfig
from ..diagnostics import WarningCollector
from ..models import CommitRecord, CouplingPair, DependencyGraph, FileRecord, QualityMetric
from ..parsing import SourceParser


@dataclass
class AnalysisContext:
    """Everything an analyzer may read during one run.

    ``files`` holds only analyzable files with oversized content already
    blanked out; ``commits`` are sorted newest first.
    """

    files: List[FileRecord]
    commits: List[CommitRecord]
    classifier: FileClassifier
    parser: SourceParser
    config: AnalysisConfig
    warnings: WarningCollector
    quality_metrics: Dict[str, QualityMetric] = field(default_factory=dict)
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)
    temporal_coupling: List[CouplingPair] = field(default_factory=list)


class Analyzer(ABC):
    """Contract for analyzers that turn a run's context into findings.

    ``phase`` 1 analyzers only read files and commits and run alongside the
    quality and architecture stages; phase 2 analyzers run afterwards and
    may read their results.
    """

    name: str = ""
    phase: int = 2

    @abstractmethod
    def supports(self, context: AnalysisContext) -> bool:
        """Return True when this analyzer should run for the repository."""

    @abstractmethod
    def analyze(self, context: AnalysisContext) -> Iterable[Any]:
        """Produce findings stored under ``AnalysisResult.findings[name]``."""
