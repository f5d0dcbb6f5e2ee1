"""Tests for dependency graph construction."""

from __future__ import annotations

import pytest

from repolens.analyzers.graph import DependencyGraphBuilder, is_relative_specifier, resolve_specifier
from repolens.analyzers.imports import ImportScanner
from repolens.cancellation import CancellationToken
from repolens.classifier import FileClassifier
from repolens.config import AnalysisConfig
from repolens.diagnostics import WarningCollector
from repolens.errors import StageTimeout
from repolens.models import ModuleType
from repolens.parsing import SourceParser
from tests._fixtures.repo_builder import make_file


@pytest.fixture
def builder(classifier: FileClassifier, parser: SourceParser) -> DependencyGraphBuilder:
    return DependencyGraphBuilder(classifier, ImportScanner(parser=parser), AnalysisConfig())


def _edges(graph) -> set[tuple[str, str]]:
    return {(edge.source, edge.target) for edge in graph.edges}


def test_three_file_chain_resolves_without_fallback(
    builder: DependencyGraphBuilder, collector: WarningCollector
) -> None:
    files = [
        make_file("src/a.ts", "import { b } from './b';\nexport const a = b;\n"),
        make_file("src/b.ts", "import { c } from './c';\nexport const b = c;\n"),
        make_file("src/c.ts", "export const c = 1;\n"),
    ]

    graph = builder.build(files, collector)

    assert [node.id for node in graph.nodes] == ["src/a.ts", "src/b.ts", "src/c.ts"]
    assert _edges(graph) == {("src/a.ts", "src/b.ts"), ("src/b.ts", "src/c.ts")}
    assert not graph.fallback
    assert not any(edge.inferred for edge in graph.edges)
    assert len(collector) == 0


def test_bare_specifiers_are_external(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [
        make_file("src/a.ts", "import React from 'react';\nimport { b } from './b';\nimport { z } from './missing';\n"),
        make_file("src/b.ts", "import lodash from 'lodash';\n"),
    ]

    graph = builder.build(files, collector)

    assert {node.id for node in graph.nodes} == {"src/a.ts", "src/b.ts"}
    assert graph.external_imports == {"src/a.ts": ["react"], "src/b.ts": ["lodash"]}
    assert graph.unresolved == {"src/a.ts": ["./missing"]}
    assert _edges(graph) == {("src/a.ts", "src/b.ts")}


def test_non_analyzable_files_are_not_nodes(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [
        make_file("src/a.js", "require('./b');\n"),
        make_file("src/b.js", ""),
        make_file("node_modules/x/index.js", "module.exports = 1;\n"),
        make_file("logo.png", None),
    ]

    graph = builder.build(files, collector)

    assert [node.id for node in graph.nodes] == ["src/a.js", "src/b.js"]


def test_imports_quoted_in_non_code_files_are_ignored(
    builder: DependencyGraphBuilder, collector: WarningCollector
) -> None:
    files = [
        make_file("README.md", "# Usage\n\n```ts\nimport { a } from './src/a'\n```\n"),
        make_file("docs/index.html", "<script type=\"module\">import './app.js';</script>\n"),
        make_file("src/a.ts", "export const a = 1;\n"),
        make_file("src/b.ts", "import { a } from './a';\nexport const b = a;\n"),
    ]

    graph = builder.build(files, collector)

    assert {"README.md", "src/a.ts", "src/b.ts"} <= {node.id for node in graph.nodes}
    assert _edges(graph) == {("src/b.ts", "src/a.ts")}
    assert not graph.fallback
    assert "README.md" not in graph.external_imports


def test_self_and_duplicate_edges_are_skipped(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [
        make_file("src/a.js", "import x from './a';\nimport y from './b.js';\nrequire('./b');\n"),
        make_file("src/b.js", "export default 1;\n"),
    ]

    graph = builder.build(files, collector)

    assert [(edge.source, edge.target) for edge in graph.edges] == [("src/a.js", "src/b.js")]


def test_no_resolved_imports_yields_inferred_links(
    builder: DependencyGraphBuilder, collector: WarningCollector
) -> None:
    files = [
        make_file("src/pages/Home.tsx", "export default () => null;\n"),
        make_file("src/components/Card.tsx", "export const Card = () => null;\n"),
        make_file("src/services/api.ts", "export const get = () => 1;\n"),
    ]

    graph = builder.build(files, collector)

    assert graph.fallback
    assert len(graph.edges) >= 1
    assert all(edge.inferred for edge in graph.edges)
    assert ("src/pages/Home.tsx", "src/components/Card.tsx") in _edges(graph)
    assert ("src/components/Card.tsx", "src/services/api.ts") in _edges(graph)
    assert [warning.step for warning in collector.snapshot()] == ["architecture"]


@pytest.mark.parametrize("count", [2, 3, 7])
def test_two_or_more_files_always_have_an_edge(
    builder: DependencyGraphBuilder, collector: WarningCollector, count: int
) -> None:
    files = [make_file(f"src/m{index}.ts", "export const x = 1;\n") for index in range(count)]

    graph = builder.build(files, collector)

    assert len(graph.edges) >= 1


def test_chain_fallback_is_capped(classifier: FileClassifier, collector: WarningCollector) -> None:
    builder = DependencyGraphBuilder(classifier, ImportScanner([]), AnalysisConfig())
    files = [make_file(f"src/m{index:02d}.ts", "x") for index in range(15)]

    graph = builder.build(files, collector)

    assert len(graph.edges) == 10
    assert (graph.edges[0].source, graph.edges[0].target) == ("src/m00.ts", "src/m01.ts")


def test_pattern_links_respect_edge_cap(builder: DependencyGraphBuilder) -> None:
    nodes = [builder._node(f"src/pages/P{index}.tsx") for index in range(6)]
    nodes += [builder._node(f"src/components/C{index}.tsx") for index in range(6)]

    edges = builder.fallback_links(nodes)

    assert len(edges) == 20
    assert all(edge.inferred for edge in edges)


def test_large_repository_uses_fallback(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [make_file(f"src/m{index:03d}.ts", "import x from './m000';\n") for index in range(201)]

    graph = builder.build(files, collector)

    assert graph.fallback
    assert len(graph.nodes) == 50
    assert graph.edges
    assert all(edge.inferred for edge in graph.edges)
    warnings = collector.snapshot()
    assert len(warnings) == 1
    assert "threshold" in warnings[0].message


def test_expired_token_raises_stage_timeout(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    token = CancellationToken("architecture", timeout=0.0)
    files = [make_file("src/a.ts", ""), make_file("src/b.ts", "")]

    with pytest.raises(StageTimeout):
        builder.build(files, collector, token=token)


def test_progress_reported_per_file(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [make_file("src/a.ts", "import './b';\n"), make_file("src/b.ts", "")]
    calls = []

    builder.build(files, collector, on_progress=lambda done, total: calls.append((done, total)))

    assert calls == [(1, 2), (2, 2)]


def test_python_packages_resolve(builder: DependencyGraphBuilder, collector: WarningCollector) -> None:
    files = [
        make_file("app/__init__.py", ""),
        make_file("app/views.py", "from . import models\nfrom .core import engine\nimport requests\n"),
        make_file("app/models.py", "x = 1\n"),
        make_file("app/core/__init__.py", "from .engine import run\n"),
        make_file("app/core/engine.py", "def run():\n    return 1\n"),
    ]

    graph = builder.build(files, collector)

    assert _edges(graph) == {
        ("app/views.py", "app/models.py"),
        ("app/views.py", "app/core/__init__.py"),
        ("app/core/__init__.py", "app/core/engine.py"),
    }
    assert graph.external_imports["app/views.py"] == ["requests"]


KNOWN = {
    "src/a.ts",
    "src/util/index.ts",
    "src/Button.tsx",
    "src/data.json",
    "lib/deep/shared/format.ts",
    "shared/format.ts",
    "pkg/__init__.py",
}


@pytest.mark.parametrize(
    ("specifier", "importer", "expected"),
    [
        ("./a.ts", "src/main.ts", "src/a.ts"),
        ("./a", "src/main.ts", "src/a.ts"),
        ("./a.js", "src/main.ts", "src/a.ts"),
        ("./Button.jsx", "src/main.ts", "src/Button.tsx"),
        ("./data.json", "src/main.ts", "src/data.json"),
        ("./util", "src/main.ts", "src/util/index.ts"),
        ("../pkg", "src/main.py", "pkg/__init__.py"),
        ("../../shared/format", "x/y/z/main.ts", "shared/format.ts"),
        ("./missing", "src/main.ts", None),
    ],
)
def test_resolution_ladder(specifier: str, importer: str, expected: str | None) -> None:
    assert resolve_specifier(specifier, importer, KNOWN) == expected


def test_suffix_match_prefers_shortest_path() -> None:
    assert resolve_specifier("../shared/format", "apps/web/src/main.ts", KNOWN) == "shared/format.ts"


def test_is_relative_specifier() -> None:
    assert is_relative_specifier(".")
    assert is_relative_specifier("./a")
    assert is_relative_specifier("../a")
    assert not is_relative_specifier("react")
    assert not is_relative_specifier("@scope/pkg")


def test_nodes_carry_classification(builder: DependencyGraphBuilder) -> None:
    node = builder._node("src/hooks/useCart.ts")
    assert node.module_type is ModuleType.HOOK
    assert node.name == "useCart.ts"
