"""Cyclomatic complexity and maintainability scoring."""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from tree_sitter import Node

from ..cancellation import CancellationToken
from ..classifier import FileClassifier
from ..diagnostics import WarningCollector
from ..logging import get_logger
from ..models import FileRecord, QualityMetric
from ..parsing import SourceParser, iter_nodes

logger = get_logger("analyzers.complexity")

STEP = "quality"

_KEYWORD_PATTERN = re.compile(r"\b(?:if|else|for|while|switch|case|catch)\b")
_KEYWORD_CAP = 100

_PARSE_FAILURE_MAINTAINABILITY = 50
_NON_CODE_MAINTAINABILITY = 75

_C_STYLE_COMMENTS = ("//", "/*", "*", "*/")
_HASH_COMMENTS = ("#",)
_COMMENT_PREFIXES: Dict[str, Tuple[str, ...]] = {
    "python": _HASH_COMMENTS,
    "shell": _HASH_COMMENTS,
    "ruby": _HASH_COMMENTS,
    "yaml": _HASH_COMMENTS,
    "toml": _HASH_COMMENTS,
    "dockerfile": _HASH_COMMENTS,
    "javascript": _C_STYLE_COMMENTS,
    "typescript": _C_STYLE_COMMENTS,
    "java": _C_STYLE_COMMENTS,
    "csharp": _C_STYLE_COMMENTS,
    "c": _C_STYLE_COMMENTS,
    "cpp": _C_STYLE_COMMENTS,
    "go": _C_STYLE_COMMENTS,
    "rust": _C_STYLE_COMMENTS,
    "swift": _C_STYLE_COMMENTS,
    "kotlin": _C_STYLE_COMMENTS,
    "php": _C_STYLE_COMMENTS + _HASH_COMMENTS,
    "scss": _C_STYLE_COMMENTS,
    "sass": _C_STYLE_COMMENTS,
    "less": _C_STYLE_COMMENTS,
    "stylus": _C_STYLE_COMMENTS,
    "css": ("/*", "*", "*/"),
    "html": ("<!--",),
    "xml": ("<!--",),
}


@dataclass(frozen=True)
class BranchRules:
    """Node kinds that add a decision point for one grammar.

    ``logical_nodes`` only count when their ``operator`` field is one of
    ``logical_operators`` (``a && b`` counts, ``a + b`` does not).
    """

    branch_nodes: FrozenSet[str]
    logical_nodes: FrozenSet[str] = frozenset()
    logical_operators: FrozenSet[str] = frozenset()

    def counts(self, node: Node) -> bool:
        if node.type in self.branch_nodes:
            return True
        if node.type in self.logical_nodes:
            operator = node.child_by_field_name("operator")
            return operator is not None and operator.type in self.logical_operators
        return False


_ECMASCRIPT_RULES = BranchRules(
    branch_nodes=frozenset(
        {
            "if_statement",
            "for_statement",
            "for_in_statement",
            "while_statement",
            "do_statement",
            "switch_case",
            "catch_clause",
            "ternary_expression",
        }
    ),
    logical_nodes=frozenset({"binary_expression", "augmented_assignment_expression"}),
    logical_operators=frozenset({"&&", "||", "??", "&&=", "||=", "??="}),
)

_PYTHON_RULES = BranchRules(
    branch_nodes=frozenset(
        {
            "if_statement",
            "elif_clause",
            "for_statement",
            "while_statement",
            "except_clause",
            "except_group_clause",
            "conditional_expression",
            "boolean_operator",
            "case_clause",
            "for_in_clause",
            "if_clause",
        }
    )
)

BRANCH_RULES: Dict[str, BranchRules] = {
    "javascript": _ECMASCRIPT_RULES,
    "typescript": _ECMASCRIPT_RULES,
    "tsx": _ECMASCRIPT_RULES,
    "python": _PYTHON_RULES,
}

BatchCallback = Callable[[int, int], None]


class ComplexityAnalyzer:
    """Produces a :class:`QualityMetric` for any file; never raises."""

    def __init__(
        self,
        classifier: Optional[FileClassifier] = None,
        parser: Optional[SourceParser] = None,
    ) -> None:
        self.classifier = classifier or FileClassifier()
        self.parser = parser or SourceParser()

    def analyze(self, file: FileRecord, warnings: WarningCollector) -> QualityMetric:
        try:
            return self._measure(file, warnings)
        except Exception as exc:
            logger.debug("Complexity analysis crashed for %s", file.path, exc_info=True)
            warnings.add(STEP, f"Quality analysis failed for {file.path}", exc)
            return QualityMetric(
                path=file.path,
                complexity=1,
                maintainability=_PARSE_FAILURE_MAINTAINABILITY,
                lines_of_code=0,
                fallback=True,
            )

    def analyze_batch(
        self,
        files: Sequence[FileRecord],
        warnings: WarningCollector,
        *,
        batch_size: int = 25,
        on_batch: Optional[BatchCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> Dict[str, QualityMetric]:
        """Score ``files`` in fixed-size batches, yielding between batches."""
        batch_size = max(1, batch_size)
        total = len(files)
        metrics: Dict[str, QualityMetric] = {}
        for start in range(0, total, batch_size):
            if token is not None:
                token.raise_if_cancelled()
            for file in files[start : start + batch_size]:
                metrics[file.path] = self.analyze(file, warnings)
            done = min(start + batch_size, total)
            logger.debug("Scored %d/%d files", done, total)
            if on_batch is not None:
                on_batch(done, total)
            time.sleep(0)
        return metrics

    def _measure(self, file: FileRecord, warnings: WarningCollector) -> QualityMetric:
        content = file.content or ""
        if not content.strip():
            return QualityMetric(path=file.path, complexity=1, maintainability=100, lines_of_code=0)

        language = file.language or self.classifier.language_for(file.path)
        loc = count_logical_lines(content, _COMMENT_PREFIXES.get(language or "", ()))

        if self.classifier.is_parseable_code(file.path) and self.parser.supports(file.path):
            outcome = self.parser.parse(file.path, content)
            if outcome.ok and outcome.root is not None:
                complexity = cyclomatic_complexity(outcome.root, BRANCH_RULES[outcome.grammar])
                return QualityMetric(
                    path=file.path,
                    complexity=complexity,
                    maintainability=maintainability_index(complexity, loc),
                    lines_of_code=loc,
                )
            warnings.add(
                STEP,
                f"Could not parse {file.path}; complexity estimated from keywords",
                outcome.error,
            )
            return QualityMetric(
                path=file.path,
                complexity=keyword_complexity(content),
                maintainability=_PARSE_FAILURE_MAINTAINABILITY,
                lines_of_code=loc,
                fallback=True,
            )

        return QualityMetric(
            path=file.path,
            complexity=keyword_complexity(content),
            maintainability=_NON_CODE_MAINTAINABILITY,
            lines_of_code=loc,
        )


def cyclomatic_complexity(root: Node, rules: BranchRules) -> int:
    return 1 + sum(1 for node in iter_nodes(root) if rules.counts(node))


def keyword_complexity(content: str) -> int:
    """Estimate complexity by counting branching keywords as whole words."""
    return min(_KEYWORD_CAP, 1 + len(_KEYWORD_PATTERN.findall(content)))


def maintainability_index(complexity: int, lines_of_code: int) -> int:
    raw = (171 - 0.23 * complexity - 16.2 * math.log(max(lines_of_code, 1))) * 100 / 171
    if math.isnan(raw):
        return 100
    return int(round(max(0.0, min(100.0, raw))))


def count_logical_lines(content: str, comment_prefixes: Iterable[str] = ()) -> int:
    """Count non-blank lines that are not pure comment lines."""
    prefixes = tuple(comment_prefixes)
    count = 0
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if prefixes and stripped.startswith(prefixes):
            continue
        count += 1
    return count


__all__ = [
    "BRANCH_RULES",
    "BranchRules",
    "ComplexityAnalyzer",
    "count_logical_lines",
    "cyclomatic_complexity",
    "keyword_complexity",
    "maintainability_index",
]
