"""Tests for repository-level derived metrics."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from repolens.metrics import (
    bus_factor,
    derive_metrics,
    estimate_test_coverage,
    language_distribution,
    quality_score,
    recent_activity,
    summarize_contributors,
)
from repolens.models import ContributorSummary, DependencyEdge, DependencyGraph, QualityMetric
from tests._fixtures.repo_builder import make_commit, make_file

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_summarize_contributors_orders_by_activity() -> None:
    commits = [
        make_commit("1", ["a"], author="bob", date="2024-05-01T00:00:00Z"),
        make_commit("2", ["a"], author="alice", date="2024-05-02T00:00:00Z"),
        make_commit("3", ["a"], author="bob", date="2024-05-03T00:00:00Z"),
    ]

    contributors = summarize_contributors(commits)

    assert contributors == [
        ContributorSummary("bob", 2, "2024-05-01T00:00:00Z", "2024-05-03T00:00:00Z"),
        ContributorSummary("alice", 1, "2024-05-02T00:00:00Z", "2024-05-02T00:00:00Z"),
    ]


def test_contributor_dates_compare_instants_across_offsets() -> None:
    commits = [
        make_commit("1", ["a"], date="2024-05-01T23:00:00-05:00"),
        make_commit("2", ["a"], date="2024-05-02T01:00:00+00:00"),
    ]

    (contributor,) = summarize_contributors(commits)

    assert contributor.first_commit == "2024-05-02T01:00:00+00:00"
    assert contributor.last_commit == "2024-05-01T23:00:00-05:00"


@pytest.mark.parametrize(
    ("counts", "expected"),
    [
        ([], 0),
        ([10], 1),
        ([6, 3, 1], 1),
        ([4, 4, 2], 2),
        ([1] * 30, 10),
    ],
)
def test_bus_factor(counts, expected) -> None:
    contributors = [ContributorSummary(f"dev{index}", count) for index, count in enumerate(counts)]
    assert bus_factor(contributors) == expected


def test_estimate_test_coverage(classifier) -> None:
    files = [
        make_file("src/a.ts", "export const a = 1;"),
        make_file("src/b.ts", "export const b = 1;"),
        make_file("src/a.test.ts", "describe('a', () => { it('works', () => { expect(a).toBe(1); }); });"),
    ]

    # ratio 1/2 -> 25, three test calls over two sources -> 60, capped at 90
    assert estimate_test_coverage(files, classifier) == 85.0
    assert estimate_test_coverage(files[:2], classifier) == 0.0


def test_language_distribution_uses_sizes(classifier) -> None:
    files = [make_file("a.ts", "12345"), make_file("b.py", "12"), make_file("c.ts", "1"), make_file("LICENSE", "x")]
    assert language_distribution(files, classifier) == {"typescript": 6, "python": 2}


def test_recent_activity_counts_last_thirty_days() -> None:
    commits = [
        make_commit("1", [], date="2024-05-31T00:00:00Z"),
        make_commit("2", [], date="2024-05-05T00:00:00Z"),
        make_commit("3", [], date="2024-04-01T00:00:00Z"),
        make_commit("4", [], date="not a date"),
    ]
    assert recent_activity(commits, NOW) == 2


def test_quality_score_weights() -> None:
    assert quality_score(100, 0, 100, 100, 100) == 10.0
    assert quality_score(0, 20, 0, 0, 0) == 0.0
    assert quality_score(80, 4, 50, 80, 70) == pytest.approx(7.3)


def test_derive_metrics_keys_and_values(classifier) -> None:
    files = [make_file("src/a.ts", "a\nb\n"), make_file("src/b.ts", "c\n"), make_file("logo.png", None)]
    analyzable = files[:2]
    quality = {
        "src/a.ts": QualityMetric("src/a.ts", 3, 80, 2),
        "src/b.ts": QualityMetric("src/b.ts", 1, 100, 1),
    }
    graph = DependencyGraph(edges=[DependencyEdge("src/a.ts", "src/b.ts")])
    commits = [make_commit("1", ["src/a.ts"], date="2024-05-30T00:00:00Z")]
    findings = {"security": [object()], "technical_debt": [object(), object()]}

    metrics = derive_metrics(
        files=files,
        analyzable=analyzable,
        commits=commits,
        contributors=summarize_contributors(commits),
        quality_metrics=quality,
        dependency_graph=graph,
        findings=findings,
        classifier=classifier,
        now=NOW,
    )

    assert set(metrics) == {
        "avg_complexity",
        "avg_maintainability",
        "file_count",
        "analyzable_file_count",
        "files_with_metrics",
        "lines_of_code",
        "total_commits",
        "total_contributors",
        "bus_factor",
        "test_coverage",
        "language_distribution",
        "repository_size",
        "recent_activity",
        "security_score",
        "technical_debt_score",
        "code_quality",
        "dependency_edge_count",
        "fallback_architecture",
    }
    assert metrics["avg_complexity"] == 2.0
    assert metrics["avg_maintainability"] == 90.0
    assert metrics["file_count"] == 3
    assert metrics["analyzable_file_count"] == 2
    assert metrics["lines_of_code"] == 3
    assert metrics["bus_factor"] == 1
    assert metrics["recent_activity"] == 1
    assert metrics["security_score"] == 95
    assert metrics["technical_debt_score"] == 96
    assert metrics["dependency_edge_count"] == 1
    assert metrics["fallback_architecture"] is False
