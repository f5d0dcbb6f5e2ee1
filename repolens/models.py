"""Core data models shared across repolens components."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ModuleType(str, Enum):
    """Coarse role of a source file inferred from its path."""

    COMPONENT = "component"
    SERVICE = "service"
    CONTROLLER = "controller"
    PAGE = "page"
    HOOK = "hook"
    UTILITY = "utility"
    CONFIG = "config"
    TEST = "test"
    MODULE = "module"


class Layer(str, Enum):
    """Architectural layer a module most likely belongs to."""

    PRESENTATION = "presentation"
    BUSINESS = "business"
    DATA = "data"
    UTILITY = "utility"
    INFRASTRUCTURE = "infrastructure"
    TEST = "test"


@dataclass(frozen=True)
class FileRecord:
    """A single file from the repository snapshot."""

    path: str
    content: Optional[str] = None
    size: int = 0
    language: Optional[str] = None


@dataclass(frozen=True)
class CommitRecord:
    """A commit from the repository history."""

    sha: str
    author: str
    date: str
    message: str = ""
    changed_files: Tuple[str, ...] = ()


@dataclass
class Repository:
    """Materialized snapshot handed to the analysis core."""

    files: List[FileRecord]
    commits: List[CommitRecord] = field(default_factory=list)
    default_branch: str = "main"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DependencyNode:
    id: str
    name: str
    module_type: ModuleType
    layer: Layer


@dataclass(frozen=True)
class DependencyEdge:
    """Directed edge meaning `source` imports `target`.

    Edges with ``inferred=True`` were synthesized by the fallback
    architecture and are not literal import evidence.
    """

    source: str
    target: str
    inferred: bool = False


@dataclass
class DependencyGraph:
    nodes: List[DependencyNode] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    fallback: bool = False
    external_imports: Dict[str, List[str]] = field(default_factory=dict)
    unresolved: Dict[str, List[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class CouplingPair:
    """Weighted, unordered pair of files that tend to change together."""

    file_a: str
    file_b: str
    weight: float
    co_changes: int = 0
    authors: Tuple[str, ...] = ()
    last_changed: Optional[str] = None
    sources: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.file_a, self.file_b)


@dataclass(frozen=True)
class QualityMetric:
    path: str
    complexity: int
    maintainability: int
    lines_of_code: int
    fallback: bool = False


@dataclass(frozen=True)
class AnalysisWarning:
    """Recoverable problem recorded during a run."""

    step: str
    message: str
    error_detail: Optional[str] = None


@dataclass
class ProgressStage:
    name: str
    weight: int
    current_progress: float = 0.0


@dataclass(frozen=True)
class Hotspot:
    path: str
    complexity: int
    changes: int
    score: int
    risk_level: str


@dataclass(frozen=True)
class TechnicalDebtItem:
    kind: str
    severity: str
    path: str
    line: Optional[int]
    description: str
    effort: str = "medium"


@dataclass(frozen=True)
class SecurityIssue:
    kind: str
    severity: str
    path: str
    line: int
    description: str
    cwe: Optional[str] = None


@dataclass(frozen=True)
class KeyFunction:
    name: str
    path: str
    complexity: int
    start_line: int
    end_line: int

    @property
    def lines_of_code(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass(frozen=True)
class ApiEndpoint:
    """An HTTP route declared in source; ``route`` is the URL path, ``path`` the file."""

    method: str
    route: str
    path: str
    line: int
    handler: str
    framework: str


@dataclass(frozen=True)
class ContributorSummary:
    author: str
    commits: int
    first_commit: Optional[str] = None
    last_commit: Optional[str] = None


@dataclass
class DeclaredDependencies:
    """Package dependencies declared in manifest files."""

    runtime: Dict[str, List[str]] = field(default_factory=dict)
    development: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.runtime.values()) + sum(
            len(items) for items in self.development.values()
        )


@dataclass
class AnalysisResult:
    """Everything a single `analyze` run produces."""

    dependency_graph: DependencyGraph
    quality_metrics: Dict[str, QualityMetric]
    temporal_coupling: List[CouplingPair]
    warnings: List[AnalysisWarning]
    derived_metrics: Dict[str, Any]
    findings: Dict[str, List[Any]] = field(default_factory=dict)
    contributors: List[ContributorSummary] = field(default_factory=list)
    declared_dependencies: DeclaredDependencies = field(default_factory=DeclaredDependencies)
    summary: Optional[str] = None

    @property
    def hotspots(self) -> List[Hotspot]:
        return self.findings.get("hotspots", [])

    @property
    def technical_debt(self) -> List[TechnicalDebtItem]:
        return self.findings.get("technical_debt", [])

    @property
    def security_issues(self) -> List[SecurityIssue]:
        return self.findings.get("security", [])

    @property
    def key_functions(self) -> List[KeyFunction]:
        return self.findings.get("key_functions", [])

    @property
    def api_endpoints(self) -> List[ApiEndpoint]:
        return self.findings.get("api_endpoints", [])

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable representation of the result."""
        payload = asdict(self)
        payload["findings"] = {
            name: [_finding_to_dict(item) for item in items]
            for name, items in self.findings.items()
        }
        return _jsonable(payload)


def _finding_to_dict(item: Any) -> Any:
    if hasattr(item, "__dataclass_fields__"):
        return asdict(item)
    return item


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value
