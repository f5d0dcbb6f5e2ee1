"""Configuration loading for repolens (.repolens.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".repolens.yml"


@dataclass
class LimitsConfig:
    """Ceilings that bound worst-case latency and memory of a run."""

    max_file_size: int = 200 * 1024
    max_commits: int = 2000
    large_repo_threshold: int = 200
    fallback_sample_size: int = 50
    fallback_edge_cap: int = 20
    fallback_chain_cap: int = 10
    architecture_timeout: float = 45.0
    quality_batch_size: int = 25


@dataclass
class CouplingConfig:
    """Thresholds for the temporal coupling engine."""

    window_days: int = 30
    max_commits: int = 500
    max_commit_fanout: int = 15
    min_co_changes: int = 2
    min_strength: float = 0.25
    max_pairs: int = 150
    structural_file_threshold: int = 500
    sparse_pair_threshold: int = 5
    directory_weight: float = 0.2
    naming_weight: float = 0.5
    index_weight: float = 0.8


@dataclass
class AnalyzerConfig:
    """Signal analyzer enablement."""

    enabled: List[str] = field(default_factory=list)


@dataclass
class AnalysisConfig:
    """Represents the settings defined in .repolens.yml."""

    root: Optional[Path] = None
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    coupling: CouplingConfig = field(default_factory=CouplingConfig)
    analyzers: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    exclude_paths: List[str] = field(default_factory=list)
    max_workers: int = 4


def load_config(config_path: Path) -> AnalysisConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return AnalysisConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    limits = LimitsConfig()
    limits_data = _as_dict(data.get("limits"))
    for name in (
        "max_file_size",
        "max_commits",
        "large_repo_threshold",
        "fallback_sample_size",
        "fallback_edge_cap",
        "fallback_chain_cap",
        "quality_batch_size",
    ):
        value = _as_int(limits_data.get(name))
        if value is not None and value > 0:
            setattr(limits, name, value)
    timeout = _as_float(limits_data.get("architecture_timeout"))
    if timeout is not None and timeout > 0:
        limits.architecture_timeout = timeout

    coupling = CouplingConfig()
    coupling_data = _as_dict(data.get("coupling"))
    for name in (
        "window_days",
        "max_commits",
        "max_commit_fanout",
        "min_co_changes",
        "max_pairs",
        "structural_file_threshold",
        "sparse_pair_threshold",
    ):
        value = _as_int(coupling_data.get(name))
        if value is not None and value > 0:
            setattr(coupling, name, value)
    for name in ("min_strength", "directory_weight", "naming_weight", "index_weight"):
        value = _as_float(coupling_data.get(name))
        if value is not None and value >= 0:
            setattr(coupling, name, value)

    analyzers = AnalyzerConfig()
    analyzer_data = _as_dict(data.get("analyzers"))
    if analyzer_data:
        analyzers.enabled = _as_str_list(analyzer_data.get("enabled"))

    max_workers = _as_int(data.get("max_workers"))

    return AnalysisConfig(
        root=root,
        limits=limits,
        coupling=coupling,
        analyzers=analyzers,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
        max_workers=max_workers if max_workers and max_workers > 0 else 4,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "AnalysisConfig",
    "AnalyzerConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "CouplingConfig",
    "LimitsConfig",
    "load_config",
]
