"""Analysis pipeline orchestration."""

from __future__ import annotations

import fnmatch
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, TypeVar

from .analyzers import AnalysisContext, Analyzer, discover_analyzers
from .analyzers.complexity import ComplexityAnalyzer
from .analyzers.coupling import TemporalCouplingEngine, commit_sort_key
from .analyzers.graph import DependencyGraphBuilder
from .analyzers.imports import ImportScanner
from .analyzers.manifests import collect_declared_dependencies
from .cancellation import CancellationToken
from .classifier import FileClassifier
from .config import AnalysisConfig
from .diagnostics import WarningCollector
from .errors import InvalidRepositoryError, StageTimeout
from .logging import get_logger
from .metrics import derive_metrics, summarize_contributors
from .models import (
    AnalysisResult,
    CommitRecord,
    ContributorSummary,
    CouplingPair,
    DeclaredDependencies,
    DependencyGraph,
    FileRecord,
    QualityMetric,
    Repository,
)
from .parsing import SourceParser
from .progress import ProgressCallback, ProgressTracker

T = TypeVar("T")

_FULL_NAME = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_REPO_URL = re.compile(
    r"^https?://[^/\s]+/(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+?)(?:\.git)?/?$"
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a senior engineer writing a concise executive summary of a code repository. "
    "Only describe what the supplied facts support."
)


class SummaryRunner(Protocol):
    """Optional text generator used to summarise a repository."""

    def run(self, prompt: str, *, system: Optional[str] = None) -> str:  # pragma: no cover - protocol
        ...


def validate_repository(repository: Repository) -> None:
    """Reject snapshots no stage can work with; raises :class:`InvalidRepositoryError`."""
    if not repository.files:
        raise InvalidRepositoryError("Repository snapshot contains no files")

    seen = set()
    duplicates: List[str] = []
    for file in repository.files:
        path = normalize_path(file.path)
        if not path:
            raise InvalidRepositoryError("Repository snapshot contains a file with an empty path")
        if path in seen:
            duplicates.append(path)
        seen.add(path)
    if duplicates:
        listed = ", ".join(sorted(set(duplicates))[:5])
        raise InvalidRepositoryError(f"Repository snapshot contains duplicate paths: {listed}")

    full_name = repository.metadata.get("full_name")
    if full_name is not None and not (isinstance(full_name, str) and _FULL_NAME.match(full_name)):
        raise InvalidRepositoryError(f"Invalid repository identifier: {full_name!r}")
    url = repository.metadata.get("url")
    if url is not None and not (isinstance(url, str) and _REPO_URL.match(url.strip())):
        raise InvalidRepositoryError(f"Invalid repository URL: {url!r}")


def normalize_path(path: str) -> str:
    path = path.replace("\\", "/").strip()
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


class AnalysisOrchestrator:
    """Sequences the analysis stages behind a weighted progress model.

    Every stage is wrapped at its boundary: a failure becomes a warning and
    the stage contributes a neutral default, so a run only aborts on invalid
    input. Each call to :meth:`analyze` owns its own warning collector and
    progress tracker.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        *,
        classifier: FileClassifier | None = None,
        parser: SourceParser | None = None,
        complexity_analyzer: ComplexityAnalyzer | None = None,
        graph_builder: DependencyGraphBuilder | None = None,
        coupling_engine: TemporalCouplingEngine | None = None,
        analyzers: Optional[Iterable[Analyzer]] = None,
        summarizer: SummaryRunner | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.classifier = classifier or FileClassifier()
        self.parser = parser or SourceParser()
        self.complexity_analyzer = complexity_analyzer or ComplexityAnalyzer(self.classifier, self.parser)
        self.graph_builder = graph_builder or DependencyGraphBuilder(
            self.classifier, ImportScanner(parser=self.parser), self.config
        )
        self.coupling_engine = coupling_engine or TemporalCouplingEngine(self.classifier, self.config.coupling)
        self._analyzer_overrides = list(analyzers) if analyzers is not None else None
        self.summarizer = summarizer
        self.max_workers = max(1, max_workers or self.config.max_workers)
        self.logger = get_logger("orchestrator")

    def analyze(
        self,
        repository: Repository,
        *,
        on_progress: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Run every stage over ``repository`` and assemble the result."""
        validate_repository(repository)
        warnings = WarningCollector()
        progress = ProgressTracker(on_progress)
        label = repository.metadata.get("full_name") or "repository"
        self.logger.info("Starting analysis of %s (%d files)", label, len(repository.files))
        progress.complete("init", "Initializing analysis")

        progress.update("repoInfo", "Reading repository metadata", 25)
        progress.complete("repoInfo", f"Read metadata for {label}")

        files = self._stage("files", warnings, lambda: self._prepare_files(repository.files, warnings),
                            lambda: list(repository.files))
        analyzable = [file for file in files if self.classifier.is_analyzable(file.path)]
        self.logger.info("%d of %d files are analyzable", len(analyzable), len(files))
        progress.complete("files", f"Prepared {len(files)} files")

        commits = self._stage("commits", warnings, lambda: self._prepare_commits(repository.commits), list)
        progress.complete("commits", f"Loaded {len(commits)} commits")

        contributors: List[ContributorSummary] = self._stage(
            "contributors", warnings, lambda: summarize_contributors(commits), list
        )
        progress.complete("contributors", f"Summarised {len(contributors)} contributors")
        progress.complete("pr", "No pull request data in snapshot")

        declared: DeclaredDependencies = self._stage(
            "dependencies", warnings, lambda: collect_declared_dependencies(files, warnings), DeclaredDependencies
        )
        progress.complete("dependencies", f"Found {declared.total} declared dependencies")

        analyzers = self._stage("analyzers", warnings, self._select_analyzers, list)
        context = AnalysisContext(
            files=analyzable,
            commits=commits,
            classifier=self.classifier,
            parser=self.parser,
            config=self.config,
            warnings=warnings,
        )
        findings: Dict[str, List[Any]] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="repolens") as pool:
            quality_future = pool.submit(self._run_quality, analyzable, warnings, progress)
            architecture_future = pool.submit(self._run_architecture, analyzable, warnings, progress)
            coupling_future = pool.submit(self._run_coupling, commits, files, warnings)
            early = [
                (analyzer, pool.submit(self._run_analyzer, analyzer, context))
                for analyzer in analyzers
                if analyzer.phase <= 1
            ]
            quality: Dict[str, QualityMetric] = quality_future.result()
            graph: DependencyGraph = architecture_future.result()
            coupling: List[CouplingPair] = coupling_future.result()
            for analyzer, future in early:
                findings[analyzer.name] = future.result()
            progress.update("finalizing", "Computed structural signals", 25)

            context.quality_metrics = quality
            context.dependency_graph = graph
            context.temporal_coupling = coupling
            late = [
                (analyzer, pool.submit(self._run_analyzer, analyzer, context))
                for analyzer in analyzers
                if analyzer.phase > 1
            ]
            for analyzer, future in late:
                findings[analyzer.name] = future.result()
        progress.update("finalizing", "Generated findings", 60)

        summary = self._summarize(repository, analyzable, graph, quality, warnings)
        if summary is not None:
            progress.update("finalizing", "Generated summary", 85)

        derived = self._stage(
            "finalizing",
            warnings,
            lambda: derive_metrics(
                files=files,
                analyzable=analyzable,
                commits=commits,
                contributors=contributors,
                quality_metrics=quality,
                dependency_graph=graph,
                findings=findings,
                classifier=self.classifier,
                now=now,
            ),
            dict,
        )
        progress.complete("finalizing", "Analysis complete")
        result_warnings = warnings.snapshot()
        self.logger.info(
            "Analysis of %s finished: %d nodes, %d edges, %d warnings",
            label,
            len(graph.nodes),
            len(graph.edges),
            len(result_warnings),
        )
        return AnalysisResult(
            dependency_graph=graph,
            quality_metrics=quality,
            temporal_coupling=coupling,
            warnings=result_warnings,
            derived_metrics=derived,
            findings=findings,
            contributors=contributors,
            declared_dependencies=declared,
            summary=summary,
        )

    # Stages

    def _prepare_files(self, files: Sequence[FileRecord], warnings: WarningCollector) -> List[FileRecord]:
        limit = self.config.limits.max_file_size
        patterns = self.config.exclude_paths
        prepared: List[FileRecord] = []
        oversized: List[str] = []
        for file in files:
            path = normalize_path(file.path)
            if patterns and any(fnmatch.fnmatch(path, pattern) for pattern in patterns):
                self.logger.debug("Excluded by configuration: %s", path)
                continue
            content = file.content
            size = file.size
            if content is not None:
                encoded = len(content.encode("utf-8"))
                size = size or encoded
                if encoded > limit:
                    oversized.append(path)
                    content = None
                else:
                    content = content.replace("\r\n", "\n")
            prepared.append(replace(file, path=path, content=content, size=size))
        if oversized:
            warnings.add(
                "files",
                f"{len(oversized)} files exceed the {limit} byte size limit; their content was skipped",
                ", ".join(oversized[:10]),
            )
        return prepared

    def _prepare_commits(self, commits: Sequence[CommitRecord]) -> List[CommitRecord]:
        ordered = sorted(
            commits,
            key=lambda commit: commit_sort_key(commit.date),
            reverse=True,
        )
        return [
            replace(
                commit,
                changed_files=tuple(
                    path for path in (normalize_path(name) for name in commit.changed_files) if path
                ),
            )
            for commit in ordered[: self.config.limits.max_commits]
        ]

    def _run_quality(
        self, files: Sequence[FileRecord], warnings: WarningCollector, progress: ProgressTracker
    ) -> Dict[str, QualityMetric]:
        def _on_batch(done: int, total: int) -> None:
            progress.update("quality", f"Scored {done}/{total} files", done / total * 100)

        def _compute() -> Dict[str, QualityMetric]:
            self.logger.info("Calculating quality metrics for %d files", len(files))
            metrics = self.complexity_analyzer.analyze_batch(
                files,
                warnings,
                batch_size=self.config.limits.quality_batch_size,
                on_batch=_on_batch,
            )
            self.logger.info("Calculated quality metrics for %d files", len(metrics))
            return metrics

        metrics = self._stage("quality", warnings, _compute, dict)
        progress.complete("quality", "Calculated quality metrics")
        return metrics

    def _run_architecture(
        self, files: Sequence[FileRecord], warnings: WarningCollector, progress: ProgressTracker
    ) -> DependencyGraph:
        timeout = self.config.limits.architecture_timeout
        token = CancellationToken("architecture", timeout)

        def _on_file(done: int, total: int) -> None:
            progress.update("architecture", "Detecting architecture patterns", done / total * 100)

        try:
            graph = self.graph_builder.build(files, warnings, token=token, on_progress=_on_file)
        except StageTimeout as exc:
            self.logger.warning("Architecture detection timed out after %.0fs", timeout)
            graph = self._fallback_graph(files, warnings, "Architecture analysis timed out; using fallback architecture", exc)
        except Exception as exc:
            self._log_exception("Architecture detection failed", exc)
            graph = self._fallback_graph(files, warnings, "Architecture analysis failed; using fallback architecture", exc)
        progress.complete("architecture", "Detected architecture patterns")
        return graph

    def _fallback_graph(
        self, files: Sequence[FileRecord], warnings: WarningCollector, reason: str, error: BaseException
    ) -> DependencyGraph:
        try:
            return self.graph_builder.build_fallback(files, warnings, reason=reason, error=error)
        except Exception as exc:
            self._log_exception("Fallback architecture failed", exc)
            warnings.add("architecture", "Fallback architecture failed; returning an empty graph", exc)
            return DependencyGraph(fallback=True)

    def _run_coupling(
        self, commits: Sequence[CommitRecord], files: Sequence[FileRecord], warnings: WarningCollector
    ) -> List[CouplingPair]:
        return self._stage(
            "coupling",
            warnings,
            lambda: self.coupling_engine.compute_coupling(commits, files),
            list,
        )

    def _run_analyzer(self, analyzer: Analyzer, context: AnalysisContext) -> List[Any]:
        def _compute() -> List[Any]:
            if not analyzer.supports(context):
                self.logger.debug("Analyzer %s skipped: not applicable", analyzer.name)
                return []
            self.logger.debug("Running analyzer %s", analyzer.__class__.__name__)
            return list(analyzer.analyze(context))

        return self._stage(analyzer.name, context.warnings, _compute, list)

    def _select_analyzers(self) -> List[Analyzer]:
        if self._analyzer_overrides is not None:
            return list(self._analyzer_overrides)
        enabled = self.config.analyzers.enabled or None
        return discover_analyzers(enabled)

    def _summarize(
        self,
        repository: Repository,
        files: Sequence[FileRecord],
        graph: DependencyGraph,
        quality: Dict[str, QualityMetric],
        warnings: WarningCollector,
    ) -> Optional[str]:
        if self.summarizer is None:
            return None
        prompt = build_summary_prompt(repository, files, graph, quality)
        try:
            text = self.summarizer.run(prompt, system=SUMMARY_SYSTEM_PROMPT)
        except Exception as exc:
            self._log_exception("Summary generation failed", exc)
            warnings.add("summary", "Failed to generate repository summary", exc)
            return None
        text = (text or "").strip()
        return text or None

    # Helpers

    def _stage(
        self,
        step: str,
        warnings: WarningCollector,
        compute: Callable[[], T],
        default: Callable[[], T],
    ) -> T:
        try:
            return compute()
        except Exception as exc:
            self._log_exception(f"Stage {step} failed", exc)
            warnings.add(step, f"{step} stage failed; continuing with defaults", exc)
            return default()

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


def build_summary_prompt(
    repository: Repository,
    files: Sequence[FileRecord],
    graph: DependencyGraph,
    quality: Dict[str, QualityMetric],
) -> str:
    metadata = repository.metadata
    lines = [
        "Analyze the following repository and provide a concise executive summary.",
        f"Repository: {metadata.get('full_name') or metadata.get('name') or 'unknown'}",
        f"Description: {metadata.get('description') or 'n/a'}",
        f"Default branch: {repository.default_branch}",
        f"Analyzable files: {len(files)}; dependency edges: {len(graph.edges)}",
        "Key files:",
    ]
    ranked = sorted(files, key=lambda file: -(quality[file.path].complexity if file.path in quality else 0))
    for file in ranked[:10]:
        metric = quality.get(file.path)
        detail = f"complexity {metric.complexity}" if metric else f"{file.size} bytes"
        lines.append(f"- {file.path} ({detail})")
    lines.append("Based on this information, what is the primary purpose of this repository?")
    return "\n".join(lines)


__all__ = [
    "AnalysisOrchestrator",
    "SUMMARY_SYSTEM_PROMPT",
    "SummaryRunner",
    "build_summary_prompt",
    "normalize_path",
    "validate_repository",
]
