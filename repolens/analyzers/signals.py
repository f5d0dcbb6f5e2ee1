"""Curated signal analyzers: hotspots, technical debt, security patterns, key functions."""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from tree_sitter import Node

from ..classifier import extension_of
from ..logging import get_logger
from ..models import ApiEndpoint, FileRecord, Hotspot, KeyFunction, SecurityIssue, TechnicalDebtItem
from ..parsing import ParseOutcome, iter_nodes
from .base import AnalysisContext, Analyzer
from .complexity import BRANCH_RULES, cyclomatic_complexity

logger = get_logger("analyzers.signals")

_ECMASCRIPT_EXTENSIONS = frozenset({".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".mts", ".cts"})
_TYPESCRIPT_EXTENSIONS = frozenset({".ts", ".tsx", ".mts", ".cts"})


@dataclass(frozen=True)
class LinePattern:
    """A single-line regular expression that produces a finding when it matches."""

    pattern: Pattern[str]
    kind: str
    severity: str
    effort: str = "medium"
    cwe: Optional[str] = None
    extensions: Optional[frozenset] = None

    def applies_to(self, path: str) -> bool:
        return self.extensions is None or extension_of(path) in self.extensions


SECURITY_PATTERNS: Tuple[LinePattern, ...] = (
    LinePattern(re.compile(r"AWS_ACCESS_KEY_ID"), "secret", "critical", cwe="CWE-798"),
    LinePattern(re.compile(r"private_key"), "secret", "critical", cwe="CWE-798"),
    LinePattern(re.compile(r"dangerouslySetInnerHTML"), "vulnerability", "high", cwe="CWE-79"),
    LinePattern(re.compile(r"\beval\s*\("), "vulnerability", "high", cwe="CWE-95"),
    LinePattern(
        re.compile(r"password\s*[=:]\s*['\"`][^'\"`]+['\"`]", re.IGNORECASE),
        "secret",
        "high",
        cwe="CWE-259",
    ),
    LinePattern(re.compile(r"\b(?:TODO|FIXME):"), "configuration", "low", cwe="CWE-546"),
)

DEBT_PATTERNS: Tuple[LinePattern, ...] = (
    LinePattern(re.compile(r"\bconsole\.log\s*\("), "smell", "low", effort="low",
                extensions=_ECMASCRIPT_EXTENSIONS),
    LinePattern(re.compile(r"//\s*@ts-(?:ignore|nocheck)"), "smell", "medium",
                extensions=_ECMASCRIPT_EXTENSIONS),
    LinePattern(re.compile(r"(?::|\bas)\s*any\b"), "smell", "medium", effort="high",
                extensions=_TYPESCRIPT_EXTENSIONS),
    LinePattern(re.compile(r"#\s*type:\s*ignore\b"), "smell", "medium",
                extensions=frozenset({".py", ".pyw"})),
)


class SecurityAnalyzer(Analyzer):
    """Flags lines that look like leaked secrets or injection sinks."""

    name = "security"
    phase = 1

    def __init__(self, patterns: Iterable[LinePattern] = SECURITY_PATTERNS, limit: int = 500) -> None:
        self.patterns = tuple(patterns)
        self.limit = limit

    def supports(self, context: AnalysisContext) -> bool:
        return any(file.content for file in context.files)

    def analyze(self, context: AnalysisContext) -> List[SecurityIssue]:
        issues: List[SecurityIssue] = []
        for file, line_number, line, pattern in _scan_lines(context.files, self.patterns):
            issues.append(
                SecurityIssue(
                    kind=pattern.kind,
                    severity=pattern.severity,
                    path=file.path,
                    line=line_number,
                    description=f"Potential {pattern.kind} found: {line.strip()[:200]}",
                    cwe=pattern.cwe,
                )
            )
            if len(issues) >= self.limit:
                break
        return issues


class TechnicalDebtAnalyzer(Analyzer):
    """Collects code smells, overly complex files and duplicated blocks."""

    name = "technical_debt"

    def __init__(
        self,
        patterns: Iterable[LinePattern] = DEBT_PATTERNS,
        *,
        complexity_threshold: int = 20,
        block_size: int = 5,
        min_block_chars: int = 50,
        limit: int = 500,
    ) -> None:
        self.patterns = tuple(patterns)
        self.complexity_threshold = complexity_threshold
        self.block_size = block_size
        self.min_block_chars = min_block_chars
        self.limit = limit

    def supports(self, context: AnalysisContext) -> bool:
        return bool(context.files)

    def analyze(self, context: AnalysisContext) -> List[TechnicalDebtItem]:
        items: List[TechnicalDebtItem] = []
        for file, line_number, line, pattern in _scan_lines(context.files, self.patterns):
            items.append(
                TechnicalDebtItem(
                    kind=pattern.kind,
                    severity=pattern.severity,
                    path=file.path,
                    line=line_number,
                    description=f"Code smell detected: {line.strip()[:200]}",
                    effort=pattern.effort,
                )
            )

        for path, metric in sorted(context.quality_metrics.items()):
            if metric.complexity > self.complexity_threshold:
                items.append(
                    TechnicalDebtItem(
                        kind="complexity",
                        severity="high",
                        path=path,
                        line=None,
                        description=f"Cyclomatic complexity {metric.complexity} exceeds {self.complexity_threshold}",
                        effort="high",
                    )
                )

        items.extend(self._duplicated_blocks(context.files))
        return items[: self.limit]

    def _duplicated_blocks(self, files: Iterable[FileRecord]) -> List[TechnicalDebtItem]:
        locations: Dict[str, List[Tuple[str, int]]] = defaultdict(list)
        for file in files:
            if not file.content:
                continue
            lines = [line.strip() for line in file.content.splitlines()]
            for start in range(0, len(lines) - self.block_size + 1):
                window = lines[start : start + self.block_size]
                if not all(window):
                    continue
                block = "\n".join(window)
                if len(block) > self.min_block_chars:
                    locations[block].append((file.path, start + 1))

        items: List[TechnicalDebtItem] = []
        for spots in locations.values():
            if len(spots) < 2:
                continue
            path, line = spots[0]
            others = ", ".join(f"{other}:{number}" for other, number in spots[1:6])
            items.append(
                TechnicalDebtItem(
                    kind="duplication",
                    severity="medium",
                    path=path,
                    line=line,
                    description=f"Duplicated code block found in {len(spots)} locations (also {others})",
                )
            )
        return items


class HotspotAnalyzer(Analyzer):
    """Ranks frequently changed files that are also complex."""

    name = "hotspots"

    def __init__(self, min_complexity: int = 10, limit: int = 20) -> None:
        self.min_complexity = min_complexity
        self.limit = limit

    def supports(self, context: AnalysisContext) -> bool:
        return bool(context.commits) and bool(context.quality_metrics)

    def analyze(self, context: AnalysisContext) -> List[Hotspot]:
        changes: Counter[str] = Counter()
        for commit in context.commits:
            changes.update(set(commit.changed_files))

        hotspots = []
        for path, metric in context.quality_metrics.items():
            count = changes.get(path, 0)
            if count <= 0 or metric.complexity <= self.min_complexity:
                continue
            score = count * metric.complexity
            hotspots.append(
                Hotspot(
                    path=path,
                    complexity=metric.complexity,
                    changes=count,
                    score=score,
                    risk_level=_risk_level(score),
                )
            )
        hotspots.sort(key=lambda item: (-item.score, item.path))
        return hotspots[: self.limit]


class KeyFunctionsAnalyzer(Analyzer):
    """Finds the most complex functions in parseable source files."""

    name = "key_functions"

    def __init__(self, min_complexity: int = 5, limit: int = 20) -> None:
        self.min_complexity = min_complexity
        self.limit = limit

    def supports(self, context: AnalysisContext) -> bool:
        return any(context.classifier.is_parseable_code(file.path) for file in context.files)

    def analyze(self, context: AnalysisContext) -> List[KeyFunction]:
        functions: List[KeyFunction] = []
        for file in context.files:
            if not file.content or not context.classifier.is_parseable_code(file.path):
                continue
            if not context.parser.supports(file.path):
                continue
            outcome = context.parser.parse(file.path, file.content)
            if not outcome.ok or outcome.root is None:
                # Already reported by the quality stage.
                logger.debug("Skipping key functions for %s: %s", file.path, outcome.error)
                continue
            functions.extend(self._functions(file.path, outcome))
        functions.sort(key=lambda item: (-item.complexity, -item.lines_of_code, item.path, item.start_line))
        return functions[: self.limit]

    def _functions(self, path: str, outcome: ParseOutcome) -> Iterable[KeyFunction]:
        rules = BRANCH_RULES[outcome.grammar]
        kinds = _PYTHON_FUNCTIONS if outcome.grammar == "python" else _ECMASCRIPT_FUNCTIONS
        for node in iter_nodes(outcome.root):
            if node.type not in kinds:
                continue
            complexity = cyclomatic_complexity(node, rules)
            if complexity <= self.min_complexity:
                continue
            yield KeyFunction(
                name=_function_name(node, outcome),
                path=path,
                complexity=complexity,
                start_line=node.start_point[0] + 1,
                end_line=node.end_point[0] + 1,
            )


_ECMASCRIPT_FUNCTIONS = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)
_PYTHON_FUNCTIONS = frozenset({"function_definition"})


def _function_name(node: Node, outcome: ParseOutcome) -> str:
    name = node.child_by_field_name("name")
    if name is not None:
        return outcome.text(name)
    parent = node.parent
    if parent is not None:
        if parent.type == "variable_declarator":
            target = parent.child_by_field_name("name")
        elif parent.type == "pair":
            target = parent.child_by_field_name("key")
        elif parent.type == "assignment_expression":
            target = parent.child_by_field_name("left")
        else:
            target = None
        if target is not None:
            return outcome.text(target)
    return "anonymous"


@dataclass(frozen=True)
class RoutePattern(LinePattern):
    """A route declaration; ``kind`` names the web framework.

    Decorator-style routes (``@app.get``, ``[HttpGet]``) take their handler
    from the definition that follows; call-style routes take the last plain
    identifier argument of the call.
    """

    severity: str = "info"
    method_group: int = 1
    route_group: int = 2
    decorator: bool = False
    default_method: str = "GET"


_QUOTED = r"['\"`]([^'\"`]+)['\"`]"

ROUTE_PATTERNS: Tuple[RoutePattern, ...] = (
    RoutePattern(
        re.compile(r"\b(?:app|router)\.(get|post|put|delete|patch|use)\s*\(\s*" + _QUOTED),
        "Express.js",
        extensions=_ECMASCRIPT_EXTENSIONS,
    ),
    RoutePattern(
        re.compile(r"@(?:app|router)\.(get|post|put|delete|patch)\s*\(\s*" + _QUOTED),
        "FastAPI",
        decorator=True,
        extensions=frozenset({".py"}),
    ),
    RoutePattern(
        re.compile(r"@\w+\.route\s*\(\s*" + _QUOTED + r"(?:.*?methods\s*=\s*\[\s*['\"](\w+)['\"])?"),
        "Flask",
        method_group=2,
        route_group=1,
        decorator=True,
        extensions=frozenset({".py"}),
    ),
    RoutePattern(
        re.compile(r"\[Http(Get|Post|Put|Delete|Patch)\s*\(\s*\"([^\"]+)\"\s*\)\]"),
        "ASP.NET",
        decorator=True,
        extensions=frozenset({".cs"}),
    ),
    RoutePattern(
        re.compile(r"@(Get|Post|Put|Delete|Patch)Mapping\s*\(\s*(?:(?:value|path)\s*=\s*)?\"([^\"]+)\""),
        "Spring Boot",
        decorator=True,
        extensions=frozenset({".java", ".kt"}),
    ),
    RoutePattern(
        re.compile(r"\b[A-Za-z_]\w*\.(GET|POST|PUT|DELETE|PATCH)\s*\(\s*" + _QUOTED),
        "Gin",
        extensions=frozenset({".go"}),
    ),
)

# Conventional controller actions: (method, route) per action name.
_RESTFUL_ACTIONS: Dict[str, Tuple[str, str]] = {
    "index": ("GET", "/"),
    "show": ("GET", "/:id"),
    "store": ("POST", "/"),
    "create": ("POST", "/"),
    "update": ("PUT", "/:id"),
    "destroy": ("DELETE", "/:id"),
}
RESTFUL_PATTERNS: Tuple[LinePattern, ...] = (
    LinePattern(
        re.compile(r"\bpublic\s+function\s+(index|show|store|update|destroy)\s*\("),
        "Laravel",
        "info",
        extensions=frozenset({".php"}),
    ),
    LinePattern(
        re.compile(r"^\s*def\s+(index|show|create|update|destroy)\b"),
        "Rails",
        "info",
        extensions=frozenset({".rb"}),
    ),
)

_CALL_HANDLER = re.compile(r"^\s*(?:,\s*[A-Za-z_$][\w$.]*\s*)*,\s*([A-Za-z_$][\w$.]*)\s*\)")
_DEFINITION = re.compile(
    r"\b(?:def|function|func)\s+([A-Za-z_]\w*)"
    r"|\b(?:public|private|protected|internal)\b[^=;(]*?\b([A-Za-z_]\w*)\s*\("
)
_HANDLER_LOOKAHEAD = 5


class ApiEndpointAnalyzer(Analyzer):
    """Lists HTTP routes declared with common web frameworks."""

    name = "api_endpoints"
    phase = 1

    def __init__(
        self,
        patterns: Iterable[RoutePattern] = ROUTE_PATTERNS,
        restful_patterns: Iterable[LinePattern] = RESTFUL_PATTERNS,
        limit: int = 500,
    ) -> None:
        self.patterns = tuple(patterns)
        self.restful_patterns = tuple(restful_patterns)
        self.limit = limit

    def supports(self, context: AnalysisContext) -> bool:
        return any(file.content for file in context.files)

    def analyze(self, context: AnalysisContext) -> List[ApiEndpoint]:
        endpoints: List[ApiEndpoint] = []
        for file, line_number, line, pattern in _scan_lines(context.files, self.patterns):
            for match in pattern.pattern.finditer(line):
                route = match.group(pattern.route_group)
                method = match.group(pattern.method_group) or pattern.default_method
                if pattern.decorator:
                    handler = _following_definition(file.content or "", line_number)
                else:
                    handler = _call_handler(line[match.end():])
                endpoints.append(
                    ApiEndpoint(
                        method=method.upper(),
                        route=route,
                        path=file.path,
                        line=line_number,
                        handler=handler,
                        framework=pattern.kind,
                    )
                )

        controllers = [file for file in context.files if "controller" in file.path.lower()]
        for file, line_number, line, pattern in _scan_lines(controllers, self.restful_patterns):
            match = pattern.pattern.search(line)
            if match is None:
                continue
            action = match.group(1)
            method, route = _RESTFUL_ACTIONS[action]
            endpoints.append(
                ApiEndpoint(
                    method=method,
                    route=route,
                    path=file.path,
                    line=line_number,
                    handler=action,
                    framework=f"{pattern.kind} RESTful",
                )
            )

        if len(endpoints) > self.limit:
            logger.debug("Truncating %d API endpoints to %d", len(endpoints), self.limit)
        return endpoints[: self.limit]


def _call_handler(remainder: str) -> str:
    match = _CALL_HANDLER.match(remainder)
    return match.group(1) if match else "anonymous"


def _following_definition(content: str, line_number: int) -> str:
    lines = content.splitlines()
    for line in lines[line_number : line_number + _HANDLER_LOOKAHEAD]:
        stripped = line.strip()
        if not stripped or stripped.startswith(("@", "[", "#", "//")):
            continue
        match = _DEFINITION.search(stripped)
        if match:
            return match.group(1) or match.group(2)
        break
    return "anonymous"


def _risk_level(score: int) -> str:
    if score >= 200:
        return "high"
    if score >= 75:
        return "medium"
    return "low"


def _scan_lines(files: Iterable[FileRecord], patterns: Tuple[LinePattern, ...]):  # type: ignore[no-untyped-def]
    for file in files:
        if not file.content:
            continue
        applicable = [pattern for pattern in patterns if pattern.applies_to(file.path)]
        if not applicable:
            continue
        for index, line in enumerate(file.content.splitlines(), start=1):
            for pattern in applicable:
                if pattern.pattern.search(line):
                    yield file, index, line, pattern


__all__ = [
    "ApiEndpointAnalyzer",
    "DEBT_PATTERNS",
    "HotspotAnalyzer",
    "KeyFunctionsAnalyzer",
    "LinePattern",
    "RESTFUL_PATTERNS",
    "ROUTE_PATTERNS",
    "RoutePattern",
    "SECURITY_PATTERNS",
    "SecurityAnalyzer",
    "TechnicalDebtAnalyzer",
]
