"""Tests for repolens.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from repolens.config import AnalysisConfig, ConfigError, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, AnalysisConfig)
    assert config.root == tmp_path.resolve()
    assert config.limits.max_file_size == 200 * 1024
    assert config.limits.max_commits == 2000
    assert config.limits.large_repo_threshold == 200
    assert config.limits.architecture_timeout == 45.0
    assert config.limits.quality_batch_size == 25
    assert config.coupling.window_days == 30
    assert config.coupling.max_commit_fanout == 15
    assert config.coupling.min_strength == 0.25
    assert config.analyzers.enabled == []
    assert config.exclude_paths == []
    assert config.max_workers == 4


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".repolens.yml"
    config_file.write_text(
        """
limits:
  max_file_size: 1024
  large_repo_threshold: "50"
  architecture_timeout: 2.5
coupling:
  window_days: 90
  min_strength: 0.5
  max_pairs: 10
analyzers:
  enabled: [security, hotspots]
exclude_paths:
  - "generated/**"
  - "*.snap"
max_workers: 2
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.root == tmp_path.resolve()
    assert config.limits.max_file_size == 1024
    assert config.limits.large_repo_threshold == 50
    assert config.limits.architecture_timeout == 2.5
    assert config.limits.max_commits == 2000
    assert config.coupling.window_days == 90
    assert config.coupling.min_strength == 0.5
    assert config.coupling.max_pairs == 10
    assert config.analyzers.enabled == ["security", "hotspots"]
    assert config.exclude_paths == ["generated/**", "*.snap"]
    assert config.max_workers == 2


def test_load_config_ignores_invalid_values(tmp_path: Path) -> None:
    (tmp_path / ".repolens.yml").write_text(
        """
limits:
  max_commits: -5
  quality_batch_size: lots
  architecture_timeout: true
coupling:
  min_strength: -1
max_workers: 0
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.limits.max_commits == 2000
    assert config.limits.quality_batch_size == 25
    assert config.limits.architecture_timeout == 45.0
    assert config.coupling.min_strength == 0.25
    assert config.max_workers == 4


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".repolens.yml").write_text("\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert config.limits.max_commits == 2000


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / ".repolens.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_reports_yaml_errors(tmp_path: Path) -> None:
    (tmp_path / ".repolens.yml").write_text("limits: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)

    assert ".repolens.yml" in str(excinfo.value)
