"""Declared package dependencies read from manifest files in the snapshot."""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from typing import Dict, Iterable, List, Mapping, Optional, Set

from ..diagnostics import WarningCollector
from ..logging import get_logger
from ..models import DeclaredDependencies, FileRecord

logger = get_logger("analyzers.manifests")

STEP = "dependencies"

MANIFEST_FILES = frozenset(
    {
        "package.json",
        "requirements.txt",
        "requirements-dev.txt",
        "pyproject.toml",
        "pom.xml",
        "build.gradle",
        "build.gradle.kts",
    }
)

_REQUIREMENT_NAME = re.compile(r"[<>=!~;\[\s@]")
_GRADLE_COORDINATE = re.compile(r"['\"]([\w\-.]+:[\w\-.]+)(?::[\w\-.]+)?['\"]")
_GRADLE_CONFIGURATIONS = ("implementation", "api", "compile", "runtimeOnly")
_GRADLE_DEV_CONFIGURATIONS = ("testImplementation", "testRuntimeOnly", "testCompile")


class ManifestError(ValueError):
    """Raised when a manifest file exists but cannot be parsed."""


def collect_declared_dependencies(
    files: Iterable[FileRecord], warnings: WarningCollector
) -> DeclaredDependencies:
    """Parse root-level manifests; malformed manifests become warnings."""
    manifests: Dict[str, str] = {
        file.path: file.content
        for file in files
        if file.path in MANIFEST_FILES and file.content is not None
    }
    declared = DeclaredDependencies()
    if not manifests:
        logger.info("No dependency manifests found")
        return declared

    for path in sorted(manifests):
        try:
            _merge_manifest(declared, path, manifests[path])
        except ManifestError as exc:
            warnings.add(STEP, f"Failed to parse {path}", exc)

    for ecosystem in (declared.runtime, declared.development):
        for key, names in ecosystem.items():
            ecosystem[key] = sorted(set(names), key=str.lower)
    logger.info("Declared dependencies: %d across %d manifests", declared.total, len(manifests))
    return declared


def _merge_manifest(declared: DeclaredDependencies, path: str, content: str) -> None:
    if path == "package.json":
        node = parse_package_json(content)
        _extend(declared.runtime, "npm", node["dependencies"])
        _extend(declared.development, "npm", node["devDependencies"])
    elif path == "requirements.txt":
        _extend(declared.runtime, "python", parse_requirements(content))
    elif path == "requirements-dev.txt":
        _extend(declared.development, "python", parse_requirements(content))
    elif path == "pyproject.toml":
        runtime, development = parse_pyproject(content)
        _extend(declared.runtime, "python", runtime)
        _extend(declared.development, "python", development)
    elif path == "pom.xml":
        _extend(declared.runtime, "maven", parse_pom(content))
    else:
        runtime, development = parse_gradle(content)
        _extend(declared.runtime, "maven", runtime)
        _extend(declared.development, "maven", development)


def _extend(target: Dict[str, List[str]], key: str, names: Iterable[str]) -> None:
    names = list(names)
    if names:
        target.setdefault(key, []).extend(names)


# Node.js


def parse_package_json(content: str) -> Dict[str, List[str]]:
    """Return npm dependencies separated into runtime/dev lists."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError("package.json must contain an object")

    def _extract(key: str) -> List[str]:
        deps = data.get(key, {})
        if isinstance(deps, dict):
            return sorted(deps.keys())
        return []

    return {
        "dependencies": _extract("dependencies") + _extract("peerDependencies"),
        "devDependencies": _extract("devDependencies"),
    }


# Python


def parse_requirements(content: str) -> List[str]:
    packages: List[str] = []
    for line in content.splitlines():
        stripped = line.split("#", 1)[0].strip()
        if not stripped or stripped.startswith("-"):
            continue
        name = _requirement_name(stripped)
        if name:
            packages.append(name)
    return packages


def parse_pyproject(content: str) -> tuple[List[str], List[str]]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestError(f"invalid TOML: {exc}") from exc

    runtime: Set[str] = set()
    development: Set[str] = set()
    project = _as_mapping(data.get("project"))
    runtime.update(_requirement_names(project.get("dependencies")))
    for values in _as_mapping(project.get("optional-dependencies")).values():
        development.update(_requirement_names(values))
    for values in _as_mapping(data.get("dependency-groups")).values():
        development.update(_requirement_names(values))

    poetry = _as_mapping(_as_mapping(data.get("tool")).get("poetry"))
    runtime.update(
        name for name in _as_mapping(poetry.get("dependencies")) if name.lower() != "python"
    )
    development.update(_as_mapping(poetry.get("dev-dependencies")))
    for group in _as_mapping(poetry.get("group")).values():
        development.update(_as_mapping(_as_mapping(group).get("dependencies")))
    return sorted(runtime), sorted(development - runtime)


def _requirement_names(values: object) -> List[str]:
    if not isinstance(values, list):
        return []
    names = []
    for value in values:
        if isinstance(value, str):
            name = _requirement_name(value)
            if name and name.lower() != "python":
                names.append(name)
    return names


def _requirement_name(requirement: str) -> Optional[str]:
    name = _REQUIREMENT_NAME.split(requirement.strip(), 1)[0].strip()
    return name or None


def _as_mapping(value: object) -> Mapping[str, object]:
    return value if isinstance(value, dict) else {}


# Java


def parse_pom(content: str) -> List[str]:
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ManifestError(f"invalid XML: {exc}") from exc

    namespace = _detect_xml_namespace(root)
    prefix = f"{{{namespace}}}" if namespace else ""
    deps: Set[str] = set()
    for dep in root.iter(f"{prefix}dependency"):
        group = dep.findtext(f"{prefix}groupId", default="")
        artifact = dep.findtext(f"{prefix}artifactId", default="")
        if group and artifact:
            deps.add(f"{group}:{artifact}")
    return sorted(deps)


def _detect_xml_namespace(element: ET.Element) -> str | None:
    match = re.match(r"\{(.+)}", element.tag)
    return match.group(1) if match else None


def parse_gradle(content: str) -> tuple[List[str], List[str]]:
    runtime: Set[str] = set()
    development: Set[str] = set()
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        match = _GRADLE_COORDINATE.search(line)
        if not match:
            continue
        if line.startswith(_GRADLE_DEV_CONFIGURATIONS):
            development.add(match.group(1))
        elif line.startswith(_GRADLE_CONFIGURATIONS):
            runtime.add(match.group(1))
    return sorted(runtime), sorted(development)


__all__ = [
    "MANIFEST_FILES",
    "ManifestError",
    "collect_declared_dependencies",
    "parse_gradle",
    "parse_package_json",
    "parse_pom",
    "parse_pyproject",
    "parse_requirements",
]
