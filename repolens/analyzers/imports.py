"""Import specifier extraction for JavaScript, TypeScript and Python sources."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from tree_sitter import Node

from ..classifier import extension_of
from ..logging import get_logger
from ..parsing import ParseOutcome, SourceParser, iter_nodes

logger = get_logger("analyzers.imports")

_PYTHON_EXTENSIONS = frozenset({".py", ".pyw"})
_QUOTES = "\"'`"

_ES_STATIC = re.compile(
    r"""\b(?:import|export)\s+(?:[\w*{}\s,$]+?\s+from\s+)?["'`]([^"'`\n]+)["'`]"""
)
_ES_DYNAMIC = re.compile(r"""\bimport\s*\(\s*["'`]([^"'`\n]+)["'`]\s*\)""")
_ES_REQUIRE = re.compile(r"""\brequire\s*\(\s*["'`]([^"'`\n]+)["'`]\s*\)""")
_PY_FROM_RELATIVE = re.compile(
    r"^[ \t]*from[ \t]+(\.+)([\w.]*)[ \t]+import[ \t]+\(?([^)#\n]*)", re.MULTILINE
)
_PY_FROM_ABSOLUTE = re.compile(r"^[ \t]*from[ \t]+(\w[\w.]*)[ \t]+import\b", re.MULTILINE)
_PY_IMPORT = re.compile(r"^[ \t]*import[ \t]+(\w[\w.]*)", re.MULTILINE)


@dataclass(frozen=True)
class ImportReference:
    """One textual import found in a source file."""

    specifier: str
    kind: str
    line: int


class ImportExtractor(ABC):
    """Strategy contract for pulling import specifiers out of a file."""

    @abstractmethod
    def supports(self, path: str) -> bool:
        """Return True when this extractor understands ``path``."""

    @abstractmethod
    def extract(self, path: str, content: str) -> Optional[List[ImportReference]]:
        """Return the imports in source order, or ``None`` to defer to the next extractor."""


class SyntaxTreeImportExtractor(ImportExtractor):
    """Reads imports from a tree-sitter syntax tree.

    Declines files whose tree contains syntax errors so the regex extractor
    can still recover whatever imports are legible.
    """

    def __init__(self, parser: Optional[SourceParser] = None) -> None:
        self.parser = parser or SourceParser()

    def supports(self, path: str) -> bool:
        return self.parser.supports(path)

    def extract(self, path: str, content: str) -> Optional[List[ImportReference]]:
        outcome = self.parser.parse(path, content)
        if not outcome.ok or outcome.root is None:
            logger.debug("Syntax tree unavailable for %s, deferring: %s", path, outcome.error)
            return None
        if outcome.grammar == "python":
            return list(self._python_imports(outcome))
        return list(self._ecmascript_imports(outcome))

    def _ecmascript_imports(self, outcome: ParseOutcome) -> Iterable[ImportReference]:
        for node in iter_nodes(outcome.root):
            if node.type == "import_statement":
                source = node.child_by_field_name("source")
                if source is not None:
                    yield _reference(outcome, source, "static", node)
            elif node.type == "export_statement":
                source = node.child_by_field_name("source")
                if source is not None:
                    yield _reference(outcome, source, "reexport", node)
            elif node.type == "import_require_clause":
                source = node.child_by_field_name("source")
                if source is not None:
                    yield _reference(outcome, source, "require", node)
            elif node.type == "call_expression":
                kind = _call_kind(outcome, node)
                if kind is None:
                    continue
                argument = _first_argument(node)
                if argument is not None and _is_literal(argument):
                    yield _reference(outcome, argument, kind, node)

    def _python_imports(self, outcome: ParseOutcome) -> Iterable[ImportReference]:
        for node in iter_nodes(outcome.root):
            line = node.start_point[0] + 1
            if node.type == "import_statement":
                for name in node.children_by_field_name("name"):
                    dotted = _aliased_target(name)
                    if dotted is not None:
                        yield ImportReference(outcome.text(dotted), "import", line)
            elif node.type == "import_from_statement":
                module = node.child_by_field_name("module_name")
                if module is None:
                    continue
                if module.type != "relative_import":
                    yield ImportReference(outcome.text(module), "from", line)
                    continue
                dots, dotted = _split_relative(outcome, module)
                if dotted:
                    yield ImportReference(python_relative_specifier(dots, dotted), "from", line)
                    continue
                for name in node.children_by_field_name("name"):
                    target = _aliased_target(name)
                    if target is not None:
                        specifier = python_relative_specifier(dots, outcome.text(target))
                        yield ImportReference(specifier, "from", line)


class RegexImportExtractor(ImportExtractor):
    """Line-oriented fallback that tolerates broken syntax."""

    def supports(self, path: str) -> bool:
        return True

    def extract(self, path: str, content: str) -> Optional[List[ImportReference]]:
        if extension_of(path) in _PYTHON_EXTENSIONS:
            found = list(self._python_matches(content))
        else:
            found = [
                (match.start(), ImportReference(match.group(1), kind, _line_of(content, match.start())))
                for pattern, kind in (
                    (_ES_STATIC, "static"),
                    (_ES_DYNAMIC, "dynamic"),
                    (_ES_REQUIRE, "require"),
                )
                for match in pattern.finditer(content)
            ]
        found.sort(key=lambda item: item[0])
        return [reference for _, reference in found]

    def _python_matches(self, content: str):  # type: ignore[no-untyped-def]
        for match in _PY_FROM_RELATIVE.finditer(content):
            line = _line_of(content, match.start())
            dots = len(match.group(1))
            module = match.group(2)
            if module:
                yield match.start(), ImportReference(python_relative_specifier(dots, module), "from", line)
                continue
            for name in match.group(3).split(","):
                name = name.strip().split(" as ", 1)[0].strip()
                if re.fullmatch(r"\w+", name):
                    yield match.start(), ImportReference(python_relative_specifier(dots, name), "from", line)
        for match in _PY_FROM_ABSOLUTE.finditer(content):
            yield match.start(), ImportReference(match.group(1), "from", _line_of(content, match.start()))
        for match in _PY_IMPORT.finditer(content):
            yield match.start(), ImportReference(match.group(1), "import", _line_of(content, match.start()))


class ImportScanner:
    """Runs extractors in order; the first one that answers wins."""

    def __init__(
        self,
        extractors: Optional[Sequence[ImportExtractor]] = None,
        parser: Optional[SourceParser] = None,
    ) -> None:
        if extractors is None:
            extractors = [SyntaxTreeImportExtractor(parser), RegexImportExtractor()]
        self.extractors = list(extractors)

    def scan(self, path: str, content: Optional[str]) -> List[str]:
        """Return the distinct import specifiers of a file in first-seen order."""
        if not content:
            return []
        for extractor in self.extractors:
            if not extractor.supports(path):
                continue
            references = extractor.extract(path, content)
            if references is None:
                continue
            return _dedupe(reference.specifier for reference in references)
        return []


def python_relative_specifier(dots: int, module: str) -> str:
    """Map ``from ..pkg.mod import`` style references to ``../pkg/mod``."""
    prefix = "./" if dots <= 1 else "../" * (dots - 1)
    return prefix + module.replace(".", "/")


def _dedupe(specifiers: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for specifier in specifiers:
        specifier = specifier.strip()
        if specifier and specifier not in seen:
            seen.add(specifier)
            ordered.append(specifier)
    return ordered


def _reference(outcome: ParseOutcome, literal: Node, kind: str, statement: Node) -> ImportReference:
    return ImportReference(
        specifier=outcome.text(literal).strip(_QUOTES),
        kind=kind,
        line=statement.start_point[0] + 1,
    )


def _call_kind(outcome: ParseOutcome, node: Node) -> Optional[str]:
    function = node.child_by_field_name("function")
    if function is None:
        return None
    if function.type == "import":
        return "dynamic"
    if function.type == "identifier" and outcome.text(function) == "require":
        return "require"
    return None


def _first_argument(node: Node) -> Optional[Node]:
    arguments = node.child_by_field_name("arguments")
    if arguments is None or not arguments.named_children:
        return None
    return arguments.named_children[0]


def _is_literal(node: Node) -> bool:
    if node.type == "string":
        return True
    if node.type == "template_string":
        return not any(child.type == "template_substitution" for child in node.named_children)
    return False


def _aliased_target(node: Node) -> Optional[Node]:
    if node.type == "aliased_import":
        return node.child_by_field_name("name")
    if node.type in {"dotted_name", "identifier"}:
        return node
    return None


def _split_relative(outcome: ParseOutcome, module: Node) -> tuple[int, str]:
    dots = 0
    dotted = ""
    for child in module.children:
        if child.type == "import_prefix":
            dots = outcome.text(child).count(".")
        elif child.type == "dotted_name":
            dotted = outcome.text(child)
    return dots, dotted


def _line_of(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


__all__ = [
    "ImportExtractor",
    "ImportReference",
    "ImportScanner",
    "RegexImportExtractor",
    "SyntaxTreeImportExtractor",
    "python_relative_specifier",
]
