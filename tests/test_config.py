"""Tests for rxsmells.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from rxsmells.config import (
    ConfigError,
    ConfigurationError,
    RxSmellsConfig,
    config_from_mapping,
    load_config,
)
from rxsmells.graphs.vocabulary import DEFAULT_VOCABULARY


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, RxSmellsConfig)
    assert config.root == tmp_path.resolve()
    assert config.detectors.enabled == []
    assert config.detectors.severity_overrides == {}
    assert config.detectors.thresholds == {}
    assert config.exclude_paths == []
    assert config.workers == 1
    assert config.report.format == "json"
    assert config.report.output is None
    assert config.build_vocabulary() is DEFAULT_VOCABULARY


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".rxsmells.yml"
    config_file.write_text(
        """
detectors:
  enabled: [Multiple-Subscriptions, not-unsubscribing]
  severity_overrides:
    default-change-detection: warn
  thresholds:
    god-component: 6
    logic-in-templates:
      depth: 4
  sanctioned_wrappers: [DomPortal]
vocabulary:
  subscribe: [observe]
  sharing_operators: [shareLatest]
exclude_paths:
  - "fixtures/**"
workers: 4
report:
  format: text
  output: reports/smells.txt
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.detectors.enabled == ["multiple-subscriptions", "not-unsubscribing"]
    assert config.detectors.severity_overrides == {"default-change-detection": "warning"}
    assert config.detectors.thresholds == {"god-component": 6, "logic-in-templates": {"depth": 4}}
    assert config.detectors.sanctioned_wrappers == ["DomPortal"]
    assert config.exclude_paths == ["fixtures/**"]
    assert config.workers == 4
    assert config.report.format == "text"
    assert config.report.output == tmp_path.resolve() / "reports/smells.txt"

    vocabulary = config.build_vocabulary()
    assert "observe" in vocabulary.subscribe.names
    assert "subscribe" in vocabulary.subscribe.names
    assert "shareLatest" in vocabulary.sharing_operators


def test_load_config_accepts_empty_file(tmp_path: Path) -> None:
    (tmp_path / ".rxsmells.yml").write_text("", encoding="utf-8")

    assert load_config(tmp_path).workers == 1


def test_load_config_rejects_invalid_yaml(tmp_path: Path) -> None:
    (tmp_path / ".rxsmells.yml").write_text("detectors: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_requires_mapping_root(tmp_path: Path) -> None:
    (tmp_path / ".rxsmells.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


@pytest.mark.parametrize(
    "data",
    [
        {"detectors": {"severity_overrides": {"god-component": "fatal"}}},
        {"detectors": {"thresholds": {"god-component": "many"}}},
        {"vocabulary": {"not_an_entry": ["x"]}},
        {"workers": 0},
        {"report": {"format": "xml"}},
    ],
)
def test_invalid_values_raise_configuration_error(data: dict) -> None:
    with pytest.raises(ConfigurationError):
        config_from_mapping(data)


def test_configuration_error_is_a_config_error() -> None:
    assert issubclass(ConfigurationError, ConfigError)
