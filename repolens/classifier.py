"""Path classification: analyzable source, parseable code, tests, module roles."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Pattern, Tuple

from .models import Layer, ModuleType

_EXCLUDED_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        ".hg",
        ".svn",
        "dist",
        "build",
        "coverage",
        "public",
        "assets",
        "vendor",
        ".vscode",
        ".idea",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".venv",
        ".next",
        ".turbo",
    }
)

_EXCLUDED_EXTENSIONS = frozenset(
    {
        ".svg", ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".bmp",
        ".woff", ".woff2", ".eot", ".ttf", ".otf",
        ".mp4", ".webm", ".ogg", ".mp3", ".wav",
        ".zip", ".gz", ".tar", ".rar", ".7z",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".pyc", ".pyd", ".pyo", ".jar", ".class", ".so", ".dll", ".exe",
        ".lock", ".log", ".csv",
        ".d.ts", ".d.mts", ".d.cts",
        ".min.js", ".min.css", ".map",
    }
)

_EXCLUDED_FILE_PATTERNS: Tuple[str, ...] = (
    r"^\.",
    r"vite-env\.d\.ts$",
    r"\.config\.(js|ts|mjs|cjs)$",
    r"\.(min|bundle|chunk)\.(js|css)$",
    r"package-lock\.json$",
    r"yarn\.lock$",
    r"pnpm-lock\.yaml$",
    r"composer\.lock$",
    r"pipfile\.lock$",
    r"poetry\.lock$",
    r"\.(log|tmp|temp|cache)$",
)

_LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".less": "less",
    ".styl": "stylus",
    ".py": "python",
    ".pyw": "python",
    ".java": "java",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cc": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".go": "go",
    ".rs": "rust",
    ".swift": "swift",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".json": "json",
    ".xml": "xml",
    ".md": "markdown",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".dockerfile": "dockerfile",
}

_LANGUAGE_BY_FILENAME = {
    "dockerfile": "dockerfile",
}

_PARSEABLE_EXTENSIONS = frozenset(
    {".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".mts", ".cts", ".py", ".pyw"}
)

_TEST_FILE_PATTERNS: Tuple[str, ...] = (
    r"\.(test|spec)\.(js|jsx|ts|tsx|mjs|cjs|mts|cts)$",
    r"(^|/)__tests__/",
    r"(^|/)tests?/",
    r"(^|/)test_[^/]*\.py$",
    r"_test\.py$",
    r"tests?\.java$",
    r"_test\.go$",
    r"\.test\.cs$",
)

# Ordered: the first matching keyword wins.
_MODULE_TYPE_KEYWORDS: Tuple[Tuple[str, ModuleType], ...] = (
    ("service", ModuleType.SERVICE),
    ("controller", ModuleType.CONTROLLER),
    ("component", ModuleType.COMPONENT),
    ("page", ModuleType.PAGE),
    ("hook", ModuleType.HOOK),
    ("util", ModuleType.UTILITY),
    ("utility", ModuleType.UTILITY),
    ("helper", ModuleType.UTILITY),
    ("config", ModuleType.CONFIG),
    ("setting", ModuleType.CONFIG),
    ("test", ModuleType.TEST),
    ("spec", ModuleType.TEST),
)

_LAYER_KEYWORDS: Tuple[Tuple[FrozenSet[str], Layer], ...] = (
    (frozenset({"controller", "api", "route", "router"}), Layer.PRESENTATION),
    (frozenset({"service", "business", "logic"}), Layer.BUSINESS),
    (frozenset({"repository", "dao", "database", "db", "model"}), Layer.DATA),
    (frozenset({"page", "view", "screen"}), Layer.PRESENTATION),
    (frozenset({"component", "ui"}), Layer.PRESENTATION),
    (frozenset({"hook", "store", "context"}), Layer.BUSINESS),
    (frozenset({"util", "utility", "helper", "lib"}), Layer.UTILITY),
    (frozenset({"config", "constant", "env", "setting"}), Layer.INFRASTRUCTURE),
    (frozenset({"test", "spec"}), Layer.TEST),
    (frozenset({"middleware", "guard", "filter"}), Layer.INFRASTRUCTURE),
)

_LAYER_BY_MODULE_TYPE = {
    ModuleType.CONTROLLER: Layer.PRESENTATION,
    ModuleType.PAGE: Layer.PRESENTATION,
    ModuleType.COMPONENT: Layer.PRESENTATION,
    ModuleType.SERVICE: Layer.BUSINESS,
    ModuleType.HOOK: Layer.BUSINESS,
    ModuleType.UTILITY: Layer.UTILITY,
    ModuleType.CONFIG: Layer.INFRASTRUCTURE,
    ModuleType.TEST: Layer.TEST,
}

_HOOK_NAME = re.compile(r"^use[A-Z0-9]")
_TOKEN_SPLIT = re.compile(r"[/._\-\s]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass(frozen=True)
class ClassifierTables:
    """Immutable lookup tables driving :class:`FileClassifier`."""

    excluded_dirs: FrozenSet[str] = _EXCLUDED_DIRS
    excluded_extensions: FrozenSet[str] = _EXCLUDED_EXTENSIONS
    excluded_file_patterns: Tuple[str, ...] = _EXCLUDED_FILE_PATTERNS
    language_by_extension: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(_LANGUAGE_BY_EXTENSION))
    )
    language_by_filename: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(_LANGUAGE_BY_FILENAME))
    )
    parseable_extensions: FrozenSet[str] = _PARSEABLE_EXTENSIONS
    test_file_patterns: Tuple[str, ...] = _TEST_FILE_PATTERNS


DEFAULT_TABLES = ClassifierTables()


class FileClassifier:
    """Decides which repository paths the analysis pipeline should look at.

    Every method is a pure function of the path string and the injected
    tables; unknown inputs degrade to generic defaults instead of raising.
    """

    def __init__(self, tables: ClassifierTables = DEFAULT_TABLES) -> None:
        self.tables = tables
        self._excluded_patterns: List[Pattern[str]] = [
            re.compile(pattern) for pattern in tables.excluded_file_patterns
        ]
        self._test_patterns: List[Pattern[str]] = [
            re.compile(pattern, re.IGNORECASE) for pattern in tables.test_file_patterns
        ]

    def is_analyzable(self, path: str) -> bool:
        directory, filename = posixpath.split(_normalise(path))
        if not filename:
            return False
        if any(part in self.tables.excluded_dirs for part in directory.split("/") if part):
            return False
        lower = filename.lower()
        if any(lower.endswith(ext) for ext in self.tables.excluded_extensions):
            return False
        if any(pattern.search(lower) for pattern in self._excluded_patterns):
            return False
        return self.language_for(path) is not None

    def is_parseable_code(self, path: str) -> bool:
        if not self.is_analyzable(path):
            return False
        return extension_of(path) in self.tables.parseable_extensions

    def is_test(self, path: str) -> bool:
        normalised = _normalise(path)
        return any(pattern.search(normalised) for pattern in self._test_patterns)

    def language_for(self, path: str) -> Optional[str]:
        filename = posixpath.basename(_normalise(path)).lower()
        by_name = self.tables.language_by_filename.get(filename)
        if by_name:
            return by_name
        return self.tables.language_by_extension.get(extension_of(path))

    def infer_module_type(self, path: str) -> ModuleType:
        normalised = _normalise(path)
        filename = posixpath.basename(normalised)
        stem = filename.split(".", 1)[0]
        if _HOOK_NAME.match(stem):
            return ModuleType.HOOK
        tokens = path_tokens(normalised)
        for keyword, module_type in _MODULE_TYPE_KEYWORDS:
            if keyword in tokens:
                return module_type
        return ModuleType.MODULE

    def infer_layer(self, path: str, module_type: ModuleType | None = None) -> Layer:
        tokens = path_tokens(_normalise(path))
        for keywords, layer in _LAYER_KEYWORDS:
            if tokens & keywords:
                return layer
        if module_type is None:
            module_type = self.infer_module_type(path)
        return _LAYER_BY_MODULE_TYPE.get(module_type, Layer.BUSINESS)


def extension_of(path: str) -> str:
    """Return the lowercased final extension (``".ts"``), or ``""``."""
    filename = posixpath.basename(_normalise(path))
    if "." not in filename.lstrip("."):
        return ""
    return "." + filename.rsplit(".", 1)[1].lower()


def path_tokens(path: str) -> FrozenSet[str]:
    """Split a path into lowercase word tokens with a trailing plural ``s`` removed."""
    tokens = set()
    for chunk in _TOKEN_SPLIT.split(path):
        if not chunk:
            continue
        for word in _CAMEL_BOUNDARY.split(chunk):
            word = word.lower()
            if not word:
                continue
            tokens.add(word)
            if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
                tokens.add(word[:-1])
    return frozenset(tokens)


def _normalise(path: str) -> str:
    return path.replace("\\", "/").lstrip("/")


__all__ = [
    "ClassifierTables",
    "DEFAULT_TABLES",
    "FileClassifier",
    "extension_of",
    "path_tokens",
]
