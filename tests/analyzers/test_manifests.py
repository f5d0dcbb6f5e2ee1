"""Tests for declared dependency collection."""

from __future__ import annotations

import pytest

from repolens.analyzers.manifests import (
    ManifestError,
    collect_declared_dependencies,
    parse_gradle,
    parse_package_json,
    parse_pom,
    parse_pyproject,
    parse_requirements,
)
from repolens.diagnostics import WarningCollector
from tests._fixtures.repo_builder import make_file


def test_package_json_dependencies() -> None:
    parsed = parse_package_json(
        '{"dependencies": {"react": "^18", "axios": "1"}, '
        '"peerDependencies": {"react-dom": "^18"}, "devDependencies": {"vitest": "1"}}'
    )
    assert parsed == {"dependencies": ["axios", "react", "react-dom"], "devDependencies": ["vitest"]}


def test_package_json_rejects_invalid_json() -> None:
    with pytest.raises(ManifestError):
        parse_package_json("{not json")
    with pytest.raises(ManifestError):
        parse_package_json("[]")


def test_requirements_parsing() -> None:
    content = "# core\nrequests>=2.0\nPyYAML==6.0  # yaml\n-r base.txt\nuvicorn[standard]~=0.30\n\nflask ; python_version > '3'\n"
    assert parse_requirements(content) == ["requests", "PyYAML", "uvicorn", "flask"]


def test_pyproject_parsing() -> None:
    content = """
[project]
dependencies = ["httpx>=0.27", "rich"]

[project.optional-dependencies]
test = ["pytest>=8", "httpx"]

[dependency-groups]
lint = ["ruff"]

[tool.poetry.dependencies]
python = "^3.11"
click = "^8"

[tool.poetry.group.dev.dependencies]
mypy = "*"
"""
    runtime, development = parse_pyproject(content)
    assert runtime == ["click", "httpx", "rich"]
    assert development == ["mypy", "pytest", "ruff"]


def test_pyproject_rejects_invalid_toml() -> None:
    with pytest.raises(ManifestError):
        parse_pyproject("[project\n")


def test_pom_parsing_with_namespace() -> None:
    content = """<project xmlns="http://maven.apache.org/POM/4.0.0">
  <dependencies>
    <dependency><groupId>org.slf4j</groupId><artifactId>slf4j-api</artifactId></dependency>
    <dependency><groupId>junit</groupId><artifactId>junit</artifactId></dependency>
  </dependencies>
</project>"""
    assert parse_pom(content) == ["junit:junit", "org.slf4j:slf4j-api"]


def test_gradle_parsing() -> None:
    content = """
dependencies {
    implementation 'com.google.guava:guava:33.0.0-jre'
    // implementation 'ignored:thing:1'
    testImplementation "org.junit.jupiter:junit-jupiter:5.10.0"
    api("org.apache.commons:commons-lang3:3.14.0")
}
"""
    runtime, development = parse_gradle(content)
    assert runtime == ["com.google.guava:guava", "org.apache.commons:commons-lang3"]
    assert development == ["org.junit.jupiter:junit-jupiter"]


def test_collect_declared_dependencies_merges_manifests() -> None:
    collector = WarningCollector()
    files = [
        make_file("package.json", '{"dependencies": {"react": "18"}, "devDependencies": {"jest": "29"}}'),
        make_file("requirements.txt", "requests\n"),
        make_file("requirements-dev.txt", "pytest\n"),
        make_file("packages/web/package.json", '{"dependencies": {"vue": "3"}}'),
    ]

    declared = collect_declared_dependencies(files, collector)

    assert declared.runtime == {"npm": ["react"], "python": ["requests"]}
    assert declared.development == {"npm": ["jest"], "python": ["pytest"]}
    assert declared.total == 4
    assert len(collector) == 0


def test_malformed_manifest_becomes_warning() -> None:
    collector = WarningCollector()
    files = [make_file("package.json", "{oops"), make_file("requirements.txt", "flask\n")]

    declared = collect_declared_dependencies(files, collector)

    assert declared.runtime == {"python": ["flask"]}
    warnings = collector.snapshot()
    assert [(warning.step, warning.message) for warning in warnings] == [
        ("dependencies", "Failed to parse package.json")
    ]


def test_no_manifests_is_not_a_warning() -> None:
    collector = WarningCollector()
    declared = collect_declared_dependencies([make_file("src/a.ts", "x")], collector)

    assert declared.total == 0
    assert len(collector) == 0
