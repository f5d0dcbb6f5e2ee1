"""Materialise a local checkout into a :class:`Repository` snapshot."""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .classifier import DEFAULT_TABLES
from .config import AnalysisConfig
from .logging import get_logger
from .models import CommitRecord, FileRecord, Repository

logger = get_logger("snapshot")

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

_RECORD_SEPARATOR = "\x1e"
_FIELD_SEPARATOR = "\x1f"
_LOG_FORMAT = f"--pretty=format:{_RECORD_SEPARATOR}%H{_FIELD_SEPARATOR}%an{_FIELD_SEPARATOR}%aI{_FIELD_SEPARATOR}%s"

_REMOTE_URL = re.compile(
    r"^(?:https?://|ssh://)?(?:[^@/]+@)?(?P<host>[^:/]+)[:/](?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .repolens.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(text: str) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def load_repository(path: str | Path, *, config: AnalysisConfig | None = None) -> Repository:
    """Walk a checkout and read its history into a :class:`Repository`."""
    root = Path(path).expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Repository path not found: {path}")
    if not root.is_dir():
        raise NotADirectoryError(f"Repository path is not a directory: {path}")
    config = config or AnalysisConfig(root=root)

    rules = _load_ignore_rules(root, config)
    files = [_read_file(root, file_path, config.limits.max_file_size) for file_path in _iter_files(root, rules)]
    logger.info("Loaded %d files from %s", len(files), root)

    commits = read_commits(root, max_count=config.limits.max_commits)
    branch = _git(root, "rev-parse", "--abbrev-ref", "HEAD")
    metadata: Dict[str, object] = {"name": root.name, "root": str(root)}
    remote = _git(root, "config", "--get", "remote.origin.url")
    if remote:
        metadata.update(parse_remote(remote.strip()))

    return Repository(
        files=files,
        commits=commits,
        default_branch=(branch or "").strip() or "main",
        metadata=metadata,
    )


def read_commits(root: Path, *, max_count: int = 2000) -> List[CommitRecord]:
    """Read recent commits with their changed files via ``git log --name-only``."""
    output = _git(root, "log", f"--max-count={max_count}", "--no-merges", "--name-only", "--relative", _LOG_FORMAT)
    if not output:
        return []
    return parse_git_log(output)


def parse_git_log(output: str) -> List[CommitRecord]:
    commits: List[CommitRecord] = []
    for record in output.split(_RECORD_SEPARATOR):
        if not record.strip():
            continue
        header, _, body = record.partition("\n")
        fields = header.split(_FIELD_SEPARATOR)
        if len(fields) < 3:
            logger.debug("Skipping malformed git log record: %r", header[:80])
            continue
        sha, author, date = fields[0], fields[1], fields[2]
        message = fields[3] if len(fields) > 3 else ""
        changed = tuple(line.strip() for line in body.splitlines() if line.strip())
        commits.append(
            CommitRecord(sha=sha, author=author, date=date, message=message, changed_files=changed)
        )
    return commits


def parse_remote(remote: str) -> Dict[str, str]:
    match = _REMOTE_URL.match(remote)
    if not match:
        return {}
    owner, repo = match.group("owner"), match.group("repo")
    return {
        "full_name": f"{owner}/{repo}",
        "url": f"https://{match.group('host')}/{owner}/{repo}",
    }


def _load_ignore_rules(root: Path, config: AnalysisConfig) -> List[IgnoreRule]:
    gitignore = root / ".gitignore"
    rules = parse_gitignore(gitignore.read_text(encoding="utf-8")) if gitignore.exists() else []
    for pattern in config.exclude_paths:
        rule = build_ignore_rule(pattern)
        if rule is not None:
            rules.append(rule)
    return rules


def _iter_files(root: Path, rules: Sequence[IgnoreRule]) -> Iterator[Path]:
    excluded_dirs = DEFAULT_TABLES.excluded_dirs
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept = []
        for name in sorted(dirnames):
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if name in excluded_dirs or should_ignore(rel_path, True, rules):
                continue
            kept.append(name)
        dirnames[:] = kept

        for filename in sorted(filenames):
            if filename in _EXCLUDED_FILES:
                continue
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if should_ignore(rel_path, False, rules):
                continue
            yield current_dir / filename


def _read_file(root: Path, path: Path, max_size: int) -> FileRecord:
    rel_path = path.relative_to(root).as_posix()
    size = path.stat().st_size
    content: Optional[str] = None
    if size <= max_size:
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping non UTF-8 content: %s", rel_path)
        except OSError as exc:
            logger.debug("Could not read %s: %s", rel_path, exc)
    return FileRecord(path=rel_path, content=content, size=size)


def _git(root: Path, *args: str) -> Optional[str]:
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=str(root),
            check=True,
            text=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        logger.info("git executable not found; continuing without history")
        return None
    except subprocess.CalledProcessError as exc:
        logger.info("git %s failed: %s", args[0], (exc.stderr or "").strip() or exc)
        return None
    return completed.stdout


__all__ = [
    "IgnoreRule",
    "build_ignore_rule",
    "load_repository",
    "parse_git_log",
    "parse_gitignore",
    "parse_remote",
    "read_commits",
    "should_ignore",
]
