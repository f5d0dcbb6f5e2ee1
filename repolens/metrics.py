"""Repository-level metrics derived from the per-stage results."""

from __future__ import annotations

import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .analyzers.coupling import commit_sort_key, parse_commit_date
from .classifier import FileClassifier
from .models import (
    CommitRecord,
    ContributorSummary,
    DependencyGraph,
    FileRecord,
    QualityMetric,
)

RECENT_ACTIVITY_DAYS = 30
BUS_FACTOR_CAP = 10
TEST_COVERAGE_CAP = 90.0

_TEST_CALL = re.compile(r"\b(?:test|it|describe|should|expect|assert)\s*\(", re.IGNORECASE)


def summarize_contributors(commits: Iterable[CommitRecord]) -> List[ContributorSummary]:
    """Aggregate commit authorship, most active contributor first."""
    counts: Dict[str, int] = defaultdict(int)
    dates: Dict[str, List[str]] = defaultdict(list)
    for commit in commits:
        author = commit.author or "unknown"
        counts[author] += 1
        if commit.date:
            dates[author].append(commit.date)
    summaries = [
        ContributorSummary(
            author=author,
            commits=count,
            first_commit=min(dates[author], key=commit_sort_key) if dates[author] else None,
            last_commit=max(dates[author], key=commit_sort_key) if dates[author] else None,
        )
        for author, count in counts.items()
    ]
    summaries.sort(key=lambda item: (-item.commits, item.author))
    return summaries


def bus_factor(contributors: Sequence[ContributorSummary]) -> int:
    """Smallest number of top contributors accounting for half of all commits."""
    total = sum(item.commits for item in contributors)
    if not contributors or total <= 0:
        return 0
    cumulative = 0.0
    factor = 0
    for contributor in sorted(contributors, key=lambda item: -item.commits):
        cumulative += contributor.commits / total * 100
        factor += 1
        if cumulative >= 50 or factor >= BUS_FACTOR_CAP:
            break
    return min(factor, len(contributors))


def estimate_test_coverage(files: Sequence[FileRecord], classifier: FileClassifier) -> float:
    """Rough coverage estimate from the test/source file ratio and test call density."""
    tests = [file for file in files if classifier.is_test(file.path)]
    sources = [
        file
        for file in files
        if classifier.is_analyzable(file.path) and not classifier.is_test(file.path)
    ]
    if not sources or not tests:
        return 0.0
    ratio = len(tests) / len(sources)
    calls = sum(len(_TEST_CALL.findall(file.content)) for file in tests if file.content)
    estimate = min(TEST_COVERAGE_CAP, ratio * 50 + calls / len(sources) * 40)
    return round(estimate, 1)


def language_distribution(files: Iterable[FileRecord], classifier: FileClassifier) -> Dict[str, int]:
    """Bytes of content per detected language."""
    languages: Dict[str, int] = defaultdict(int)
    for file in files:
        language = file.language or classifier.language_for(file.path)
        if language:
            languages[language] += _file_size(file)
    return dict(sorted(languages.items(), key=lambda item: (-item[1], item[0])))


def repository_size(files: Iterable[FileRecord]) -> int:
    return sum(_file_size(file) for file in files)


def recent_activity(
    commits: Iterable[CommitRecord],
    now: Optional[datetime] = None,
    days: int = RECENT_ACTIVITY_DAYS,
) -> int:
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)
    count = 0
    for commit in commits:
        moment = parse_commit_date(commit.date)
        if moment is not None and moment > cutoff:
            count += 1
    return count


def quality_score(
    avg_maintainability: float,
    avg_complexity: float,
    test_coverage: float,
    security_score: float,
    technical_debt_score: float,
) -> float:
    """Weighted overall quality on a 0-10 scale."""
    normalized_complexity = max(0.0, 100 - avg_complexity * 5)
    score = (
        avg_maintainability * 0.3
        + normalized_complexity * 0.25
        + test_coverage * 0.2
        + security_score * 0.15
        + technical_debt_score * 0.1
    ) / 10
    return round(score, 1)


def derive_metrics(
    *,
    files: Sequence[FileRecord],
    analyzable: Sequence[FileRecord],
    commits: Sequence[CommitRecord],
    contributors: Sequence[ContributorSummary],
    quality_metrics: Mapping[str, QualityMetric],
    dependency_graph: DependencyGraph,
    findings: Mapping[str, Sequence[Any]],
    classifier: FileClassifier,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    metrics = list(quality_metrics.values())
    avg_complexity = sum(item.complexity for item in metrics) / len(metrics) if metrics else 0.0
    avg_maintainability = (
        sum(item.maintainability for item in metrics) / len(metrics) if metrics else 0.0
    )
    lines_of_code = 0
    for file in analyzable:
        metric = quality_metrics.get(file.path)
        if metric is not None:
            lines_of_code += metric.lines_of_code
        elif file.content:
            lines_of_code += len(file.content.splitlines())

    coverage = estimate_test_coverage(files, classifier)
    security_score = max(0, 100 - len(findings.get("security", ())) * 5)
    debt_score = max(0, 100 - len(findings.get("technical_debt", ())) * 2)

    return {
        "avg_complexity": round(avg_complexity, 2),
        "avg_maintainability": round(avg_maintainability, 2),
        "file_count": len(files),
        "analyzable_file_count": len(analyzable),
        "files_with_metrics": len(quality_metrics),
        "lines_of_code": lines_of_code,
        "total_commits": len(commits),
        "total_contributors": len(contributors),
        "bus_factor": bus_factor(contributors),
        "test_coverage": coverage,
        "language_distribution": language_distribution(files, classifier),
        "repository_size": repository_size(files),
        "recent_activity": recent_activity(commits, now),
        "security_score": security_score,
        "technical_debt_score": debt_score,
        "code_quality": quality_score(
            avg_maintainability, avg_complexity, coverage, security_score, debt_score
        ),
        "dependency_edge_count": len(dependency_graph.edges),
        "fallback_architecture": dependency_graph.fallback,
    }


def _file_size(file: FileRecord) -> int:
    if file.size:
        return file.size
    if file.content:
        return len(file.content.encode("utf-8"))
    return 0


__all__ = [
    "bus_factor",
    "derive_metrics",
    "estimate_test_coverage",
    "language_distribution",
    "quality_score",
    "recent_activity",
    "repository_size",
    "summarize_contributors",
]
