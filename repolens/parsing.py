"""Tree-sitter backed source parsing."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterator, Optional

import tree_sitter_javascript
import tree_sitter_python
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from .classifier import extension_of
from .logging import get_logger

logger = get_logger("parsing")

_GRAMMAR_BY_EXTENSION = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
    ".pyw": "python",
}


@lru_cache(maxsize=None)
def load_language(grammar: str) -> Language:
    """Return the tree-sitter ``Language`` for a grammar name."""
    if grammar == "javascript":
        return Language(tree_sitter_javascript.language())
    if grammar == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if grammar == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    if grammar == "python":
        return Language(tree_sitter_python.language())
    raise KeyError(f"No tree-sitter grammar registered for {grammar!r}")


@dataclass(frozen=True)
class ParseOutcome:
    """Either a clean syntax tree or the text of the first syntax error."""

    grammar: str
    tree: Optional[Tree] = None
    error: Optional[str] = None
    source: bytes = b""

    @property
    def ok(self) -> bool:
        return self.tree is not None and self.error is None

    @property
    def root(self) -> Optional[Node]:
        return self.tree.root_node if self.tree is not None else None

    def text(self, node: Node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


class SourceParser:
    """Maps file extensions to grammars and parses source text.

    tree-sitter never raises on malformed input; it produces a tree with
    ``ERROR`` or missing nodes instead. Such trees are reported as failures
    so callers can switch to their heuristic paths.
    """

    def __init__(self, grammars: Optional[Dict[str, str]] = None) -> None:
        self._grammars = dict(grammars or _GRAMMAR_BY_EXTENSION)
        self._local = threading.local()

    def grammar_for(self, path: str) -> Optional[str]:
        return self._grammars.get(extension_of(path))

    def supports(self, path: str) -> bool:
        return self.grammar_for(path) is not None

    def parse(self, path: str, content: str) -> ParseOutcome:
        grammar = self.grammar_for(path)
        if grammar is None:
            raise ValueError(f"No grammar available for {path}")
        source = content.encode("utf-8")
        tree = self._parser(grammar).parse(source)
        root = tree.root_node
        if root.has_error:
            error = describe_syntax_error(root)
            logger.debug("Syntax error in %s: %s", path, error)
            return ParseOutcome(grammar=grammar, tree=None, error=error, source=source)
        return ParseOutcome(grammar=grammar, tree=tree, source=source)

    def _parser(self, grammar: str) -> Parser:
        # tree-sitter parsers are not safe to share between threads.
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(grammar)
        if parser is None:
            parser = Parser(load_language(grammar))
            parsers[grammar] = parser
        return parser


def describe_syntax_error(root: Node) -> str:
    """Return a human readable location for the first broken node under ``root``."""
    for node in iter_nodes(root, only_errors=True):
        line, column = node.start_point
        if node.type == "ERROR":
            return f"syntax error at line {line + 1}, column {column + 1}"
        if node.is_missing:
            return f"missing {node.type!r} at line {line + 1}, column {column + 1}"
    line, column = root.end_point
    return f"syntax error at line {line + 1}, column {column + 1}"


def iter_nodes(root: Node, *, only_errors: bool = False) -> Iterator[Node]:
    """Pre-order traversal without recursion (deep expression chains are common)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        children = node.children
        if only_errors:
            children = [child for child in children if child.has_error or child.is_missing]
        stack.extend(reversed(children))


__all__ = [
    "ParseOutcome",
    "SourceParser",
    "describe_syntax_error",
    "iter_nodes",
    "load_language",
]
