"""Temporal coupling: files that change together, from history and structure."""

from __future__ import annotations

import math
import posixpath
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..classifier import FileClassifier
from ..config import CouplingConfig
from ..logging import get_logger
from ..models import CommitRecord, CouplingPair, FileRecord

logger = get_logger("analyzers.coupling")

STRUCTURAL_LIMIT = 100

_DIRECTORY_GROUP = (2, 14)
_NAMING_CLUSTER = (2, 8)
_MIN_STEM_LENGTH = 3
_GENERIC_STEMS = frozenset(
    {"index", "main", "__init__", "app", "utils", "types", "constants", "config"}
)
_STEM_SUFFIXES = re.compile(
    r"(?:[._-](?:test|tests|spec|component|container|styles?|stories)"
    r"|(?<=[a-z0-9])(?:Test|Tests|Spec|Component|Container|Styles?|Stories))+$"
)
_INDEX_STEMS = frozenset({"index", "__init__"})
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class _PairAccumulator:
    weights: List[float] = field(default_factory=list)
    co_changes: int = 0
    authors: Set[str] = field(default_factory=set)
    sources: Set[str] = field(default_factory=set)
    last_changed: Optional[str] = None

    def add(self, pair: CouplingPair) -> None:
        self.weights.append(pair.weight)
        self.co_changes += pair.co_changes
        self.authors.update(pair.authors)
        self.sources.update(pair.sources)
        if pair.last_changed and (
            self.last_changed is None or commit_sort_key(pair.last_changed) > commit_sort_key(self.last_changed)
        ):
            self.last_changed = pair.last_changed


class TemporalCouplingEngine:
    """Computes and merges the commit and structural coupling signals."""

    def __init__(
        self,
        classifier: Optional[FileClassifier] = None,
        config: Optional[CouplingConfig] = None,
    ) -> None:
        self.classifier = classifier or FileClassifier()
        self.config = config or CouplingConfig()

    def compute_coupling(
        self, commits: Sequence[CommitRecord], files: Sequence[FileRecord]
    ) -> List[CouplingPair]:
        cfg = self.config
        too_large = len(files) > cfg.structural_file_threshold
        signals: List[List[CouplingPair]] = []
        commit_pairs: List[CouplingPair] = []
        if commits and not too_large:
            commit_pairs = self.commit_couplings(commits)
            signals.append(commit_pairs)
        if not commits or too_large or len(commit_pairs) < cfg.sparse_pair_threshold:
            logger.debug(
                "Adding structural coupling (commits=%d, commit pairs=%d, files=%d)",
                len(commits),
                len(commit_pairs),
                len(files),
            )
            signals.append(self.structural_couplings(files))
        merged = self.merge(*signals)
        logger.info("Temporal coupling: %d pairs", len(merged))
        return merged

    def commit_couplings(self, commits: Sequence[CommitRecord]) -> List[CouplingPair]:
        """Co-change pairs over the recent commit window, scored by Jaccard strength."""
        cfg = self.config
        window = self._window(commits)
        file_changes: Counter[str] = Counter()
        co_changes: Counter[Tuple[str, str]] = Counter()
        authors: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
        latest: Dict[Tuple[str, str], str] = {}

        for commit in window:
            changed = sorted(set(path for path in commit.changed_files if path))
            if len(changed) < 2 or len(changed) > cfg.max_commit_fanout:
                continue
            file_changes.update(changed)
            for pair in combinations(changed, 2):
                co_changes[pair] += 1
                if commit.author:
                    authors[pair].add(commit.author)
                if commit.date and (
                    pair not in latest or commit_sort_key(commit.date) > commit_sort_key(latest[pair])
                ):
                    latest[pair] = commit.date

        pairs: List[CouplingPair] = []
        for (file_a, file_b), count in co_changes.items():
            if count < cfg.min_co_changes:
                continue
            union = file_changes[file_a] + file_changes[file_b] - count
            strength = count / union if union else 0.0
            if strength < cfg.min_strength:
                continue
            pairs.append(
                CouplingPair(
                    file_a=file_a,
                    file_b=file_b,
                    weight=strength,
                    co_changes=count,
                    authors=tuple(sorted(authors[(file_a, file_b)])),
                    last_changed=latest.get((file_a, file_b)),
                    sources=("commits",),
                )
            )
        pairs.sort(key=lambda pair: (-pair.weight, pair.key))
        return pairs

    def structural_couplings(self, files: Sequence[FileRecord]) -> List[CouplingPair]:
        """Static proximity pairs: shared directory, shared naming stem, index references."""
        cfg = self.config
        source_files = [file for file in files if self.classifier.is_analyzable(file.path)]
        pairs: List[CouplingPair] = []

        by_directory: Dict[str, List[str]] = defaultdict(list)
        by_stem: Dict[str, List[str]] = defaultdict(list)
        for file in source_files:
            directory, filename = posixpath.split(file.path)
            by_directory[directory].append(file.path)
            stem = naming_stem(filename)
            if stem is not None:
                by_stem[stem].append(file.path)

        low, high = _DIRECTORY_GROUP
        for members in by_directory.values():
            if low <= len(members) <= high:
                pairs.extend(_all_pairs(members, cfg.directory_weight, "directory"))

        low, high = _NAMING_CLUSTER
        for members in by_stem.values():
            if low <= len(members) <= high:
                pairs.extend(_all_pairs(members, cfg.naming_weight, "naming"))

        for file in source_files:
            directory, filename = posixpath.split(file.path)
            if filename.split(".", 1)[0] not in _INDEX_STEMS or not file.content:
                continue
            python = filename.endswith(".py")
            for sibling in by_directory[directory]:
                if sibling == file.path:
                    continue
                sibling_stem = posixpath.basename(sibling).split(".", 1)[0]
                if references_sibling(file.content, sibling_stem, python=python):
                    pairs.append(_pair(file.path, sibling, cfg.index_weight, "index"))

        return self._merge(pairs, limit=STRUCTURAL_LIMIT)

    def merge(self, *signals: Iterable[CouplingPair]) -> List[CouplingPair]:
        """Union coupling signals into one deduplicated, ranked list."""
        return self._merge((pair for signal in signals for pair in signal), limit=self.config.max_pairs)

    def _merge(self, pairs: Iterable[CouplingPair], *, limit: int) -> List[CouplingPair]:
        merged: Dict[Tuple[str, str], _PairAccumulator] = defaultdict(_PairAccumulator)
        for pair in pairs:
            merged[tuple(sorted((pair.file_a, pair.file_b)))].add(pair)
        result = [
            CouplingPair(
                file_a=key[0],
                file_b=key[1],
                weight=math.fsum(sorted(acc.weights)),
                co_changes=acc.co_changes,
                authors=tuple(sorted(acc.authors)),
                last_changed=acc.last_changed,
                sources=tuple(sorted(acc.sources)),
            )
            for key, acc in merged.items()
        ]
        result.sort(key=lambda pair: (-pair.weight, pair.key))
        return result[:limit]

    def _window(self, commits: Sequence[CommitRecord]) -> List[CommitRecord]:
        cfg = self.config
        dated = [(parse_commit_date(commit.date), commit) for commit in commits]
        newest = max((moment for moment, _ in dated if moment is not None), default=None)
        if newest is None:
            recent = [commit for _, commit in dated]
        else:
            cutoff = newest - timedelta(days=cfg.window_days)
            recent = [commit for moment, commit in dated if moment is None or moment >= cutoff]
        order = {id(commit): moment or _EARLIEST for moment, commit in dated}
        recent.sort(key=lambda commit: order[id(commit)], reverse=True)
        return recent[: cfg.max_commits]


def naming_stem(filename: str) -> Optional[str]:
    """Return the shared naming stem of ``Button.test.tsx`` style files, if meaningful."""
    stem = filename.split(".", 1)[0]
    if stem.lower().startswith("test_"):
        stem = stem[len("test_"):]
    stem = _STEM_SUFFIXES.sub("", stem).lower()
    if len(stem) < _MIN_STEM_LENGTH or stem in _GENERIC_STEMS:
        return None
    return stem


def references_sibling(content: str, stem: str, *, python: bool = False) -> bool:
    escaped = re.escape(stem)
    if python:
        pattern = rf"from\s+\.{escaped}\b|from\s+\.\s+import\s+[^\n]*\b{escaped}\b"
    else:
        pattern = rf"""["']\./{escaped}(?:\.\w+)?["'/]"""
    return re.search(pattern, content) is not None


def parse_commit_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def commit_sort_key(value: Optional[str]) -> datetime:
    """Order ISO commit dates by instant; unparseable dates sort first."""
    return parse_commit_date(value) or _EARLIEST


def _pair(path_a: str, path_b: str, weight: float, source: str) -> CouplingPair:
    file_a, file_b = sorted((path_a, path_b))
    return CouplingPair(file_a=file_a, file_b=file_b, weight=weight, sources=(source,))


def _all_pairs(members: Sequence[str], weight: float, source: str) -> Iterable[CouplingPair]:
    for path_a, path_b in combinations(members, 2):
        yield _pair(path_a, path_b, weight, source)


__all__ = [
    "STRUCTURAL_LIMIT",
    "TemporalCouplingEngine",
    "commit_sort_key",
    "naming_stem",
    "parse_commit_date",
    "references_sibling",
]
