"""Module dependency graph construction with a best-effort resolution ladder."""

from __future__ import annotations

import posixpath
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..cancellation import CancellationToken
from ..classifier import FileClassifier
from ..config import AnalysisConfig
from ..diagnostics import WarningCollector
from ..logging import get_logger
from ..models import DependencyEdge, DependencyGraph, DependencyNode, FileRecord, ModuleType
from .imports import ImportScanner

logger = get_logger("analyzers.graph")

STEP = "architecture"

_EXTENSIONS: Tuple[str, ...] = (
    ".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs", ".mts", ".cts", ".json", ".py",
)
_INDEX_FILES: Tuple[str, ...] = tuple(f"index{ext}" for ext in _EXTENSIONS if ext != ".py") + (
    "__init__.py",
)
_TYPESCRIPT_TWINS: Dict[str, Tuple[str, ...]] = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
    ".mjs": (".mts",),
    ".cjs": (".cts",),
}

# Pattern links tried in order for the fallback architecture.
_FALLBACK_PATTERNS: Tuple[Tuple[ModuleType, ModuleType], ...] = (
    (ModuleType.PAGE, ModuleType.COMPONENT),
    (ModuleType.COMPONENT, ModuleType.SERVICE),
    (ModuleType.COMPONENT, ModuleType.HOOK),
)

FileProgress = Callable[[int, int], None]


def is_relative_specifier(specifier: str) -> bool:
    return specifier == "." or specifier.startswith("./") or specifier.startswith("../")


class DependencyGraphBuilder:
    """Turns textual imports into a module dependency graph.

    Relative specifiers are resolved against the snapshot's own file set;
    bare specifiers are recorded as external imports and never become
    nodes. When nothing resolves the builder synthesises ``inferred``
    links so downstream consumers always see a connected picture.
    """

    def __init__(
        self,
        classifier: Optional[FileClassifier] = None,
        scanner: Optional[ImportScanner] = None,
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self.classifier = classifier or FileClassifier()
        self.scanner = scanner or ImportScanner()
        self.config = config or AnalysisConfig()

    def build(
        self,
        files: Sequence[FileRecord],
        warnings: WarningCollector,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[FileProgress] = None,
    ) -> DependencyGraph:
        limits = self.config.limits
        analyzable = [file for file in files if self.classifier.is_analyzable(file.path)]
        if len(analyzable) > limits.large_repo_threshold:
            return self.build_fallback(
                analyzable,
                warnings,
                reason=(
                    f"Repository has {len(analyzable)} analyzable files "
                    f"(threshold {limits.large_repo_threshold}); using fallback architecture"
                ),
            )

        logger.info("Building dependency graph for %d files", len(analyzable))
        nodes = [self._node(file.path) for file in analyzable]
        known = {node.id for node in nodes}
        edges: List[DependencyEdge] = []
        seen_edges: Set[Tuple[str, str]] = set()
        external: Dict[str, List[str]] = {}
        unresolved: Dict[str, List[str]] = {}

        total = len(analyzable)
        for index, file in enumerate(analyzable, start=1):
            if token is not None:
                token.raise_if_cancelled()
            # Non-code files stay nodes but contribute no imports.
            specifiers: List[str] = []
            if self.classifier.is_parseable_code(file.path):
                specifiers = self.scanner.scan(file.path, file.content)
            for specifier in specifiers:
                if not is_relative_specifier(specifier):
                    external.setdefault(file.path, []).append(specifier)
                    continue
                target = resolve_specifier(specifier, file.path, known)
                if target is None:
                    logger.debug("Unresolved import %r in %s", specifier, file.path)
                    unresolved.setdefault(file.path, []).append(specifier)
                    continue
                if target == file.path or (file.path, target) in seen_edges:
                    continue
                seen_edges.add((file.path, target))
                edges.append(DependencyEdge(source=file.path, target=target))
            if on_progress is not None:
                on_progress(index, total)

        graph = DependencyGraph(
            nodes=nodes,
            edges=edges,
            external_imports=external,
            unresolved=unresolved,
        )
        if not edges and len(nodes) >= 2:
            graph.edges = self.fallback_links(nodes)
            graph.fallback = True
            warnings.add(STEP, "No internal imports resolved; using inferred links between modules")
        logger.info(
            "Dependency graph: %d nodes, %d edges%s",
            len(graph.nodes),
            len(graph.edges),
            " (inferred)" if graph.fallback else "",
        )
        return graph

    def build_fallback(
        self,
        files: Sequence[FileRecord],
        warnings: WarningCollector,
        reason: str = "Architecture analysis unavailable; using fallback architecture",
        error: BaseException | str | None = None,
    ) -> DependencyGraph:
        """Return a sampled, pattern-linked graph that needs no import analysis."""
        limits = self.config.limits
        sample = [file for file in files if self.classifier.is_analyzable(file.path)]
        sample = sample[: limits.fallback_sample_size]
        nodes = [self._node(file.path) for file in sample]
        edges = self.fallback_links(nodes)
        warnings.add(STEP, reason, error)
        logger.info("Fallback architecture: %d nodes, %d inferred edges", len(nodes), len(edges))
        return DependencyGraph(nodes=nodes, edges=edges, fallback=True)

    def fallback_links(self, nodes: Sequence[DependencyNode]) -> List[DependencyEdge]:
        limits = self.config.limits
        by_type: Dict[ModuleType, List[DependencyNode]] = {}
        for node in nodes:
            by_type.setdefault(node.module_type, []).append(node)

        edges: List[DependencyEdge] = []
        for source_type, target_type in _FALLBACK_PATTERNS:
            for source in by_type.get(source_type, []):
                for target in by_type.get(target_type, []):
                    if len(edges) >= limits.fallback_edge_cap:
                        break
                    edges.append(DependencyEdge(source=source.id, target=target.id, inferred=True))

        if not edges and len(nodes) >= 2:
            for index in range(min(len(nodes) - 1, limits.fallback_chain_cap)):
                edges.append(
                    DependencyEdge(source=nodes[index].id, target=nodes[index + 1].id, inferred=True)
                )
        return edges

    def _node(self, path: str) -> DependencyNode:
        module_type = self.classifier.infer_module_type(path)
        return DependencyNode(
            id=path,
            name=posixpath.basename(path),
            module_type=module_type,
            layer=self.classifier.infer_layer(path, module_type),
        )


def resolve_specifier(specifier: str, importer: str, known: Mapping[str, object] | Set[str]) -> Optional[str]:
    """Resolve a relative import against the set of known file paths.

    Tries, in order: the exact path, extension variants (including the
    TypeScript twin of a ``.js`` style extension), directory index files and
    finally a suffix match that prefers the shortest candidate path.
    """
    base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
    if base == ".":
        base = ""

    candidates: List[str] = []
    if base:
        candidates.append(base)
        stem, extension = posixpath.splitext(base)
        for twin in _TYPESCRIPT_TWINS.get(extension.lower(), ()):
            candidates.append(stem + twin)
        candidates.extend(base + extension for extension in _EXTENSIONS)
    candidates.extend(_join(base, index_file) for index_file in _INDEX_FILES)

    for candidate in candidates:
        if candidate in known:
            return candidate
    return _suffix_match(specifier, known)


def _suffix_match(specifier: str, known: Mapping[str, object] | Set[str]) -> Optional[str]:
    parts = [part for part in specifier.split("/") if part not in ("", ".", "..")]
    if not parts:
        return None
    suffix = "/".join(parts)
    matches = []
    for path in known:
        stem = posixpath.splitext(path)[0]
        for candidate in (path, stem):
            if candidate == suffix or candidate.endswith("/" + suffix):
                matches.append(path)
                break
    if not matches:
        return None
    return min(matches, key=lambda path: (len(path), path))


def _join(base: str, name: str) -> str:
    return f"{base}/{name}" if base else name


__all__ = [
    "DependencyGraphBuilder",
    "is_relative_specifier",
    "resolve_specifier",
]
