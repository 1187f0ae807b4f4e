"""Configuration loading for rxsmells (.rxsmells.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .graphs.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from .models import Severity

CONFIG_FILENAME = ".rxsmells.yml"
REPORT_FORMATS = ("json", "jsonl", "text")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


class ConfigurationError(ConfigError):
    """Raised when configuration names unknown detectors or invalid values."""


@dataclass
class DetectorsConfig:
    """Detector enablement, severity overrides, and thresholds."""

    enabled: List[str] = field(default_factory=list)
    severity_overrides: Dict[str, str] = field(default_factory=dict)
    thresholds: Dict[str, Any] = field(default_factory=dict)
    sanctioned_wrappers: List[str] = field(default_factory=list)


@dataclass
class ReportConfig:
    """Output settings for the diagnostic reporter."""

    format: str = "json"
    output: Optional[Path] = None


@dataclass
class RxSmellsConfig:
    """Represents the high-level settings defined in .rxsmells.yml."""

    root: Path
    detectors: DetectorsConfig = field(default_factory=DetectorsConfig)
    vocabulary: Dict[str, List[str]] = field(default_factory=dict)
    exclude_paths: List[str] = field(default_factory=list)
    workers: int = 1
    report: ReportConfig = field(default_factory=ReportConfig)

    def build_vocabulary(self) -> Vocabulary:
        if not self.vocabulary:
            return DEFAULT_VOCABULARY
        return DEFAULT_VOCABULARY.extended(self.vocabulary)


def load_config(config_path: Path) -> RxSmellsConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return RxSmellsConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")
    return config_from_mapping(data, root=root)


def config_from_mapping(data: Mapping[str, Any], *, root: Optional[Path] = None) -> RxSmellsConfig:
    """Build a validated config from an already-parsed mapping."""
    root = root or Path.cwd()

    detector_data = _as_dict(data.get("detectors"))
    detectors = DetectorsConfig()
    if detector_data:
        detectors.enabled = [name.lower() for name in _as_str_list(detector_data.get("enabled"))]
        detectors.severity_overrides = _severity_overrides(detector_data.get("severity_overrides"))
        detectors.thresholds = _thresholds(detector_data.get("thresholds"))
        detectors.sanctioned_wrappers = _as_str_list(detector_data.get("sanctioned_wrappers"))

    vocabulary = _vocabulary(data.get("vocabulary"))

    workers = data.get("workers", 1)
    workers_value = _as_int(workers)
    if workers_value is None or workers_value < 1:
        raise ConfigurationError(f"workers must be a positive integer, got {workers!r}")

    report_data = _as_dict(data.get("report"))
    report = ReportConfig()
    if report_data:
        fmt = (_as_str(report_data.get("format")) or report.format).lower()
        if fmt not in REPORT_FORMATS:
            raise ConfigurationError(f"Unknown report format '{fmt}'; expected one of {', '.join(REPORT_FORMATS)}")
        report.format = fmt
        output = _as_str(report_data.get("output"))
        report.output = root / output if output else None

    return RxSmellsConfig(
        root=root,
        detectors=detectors,
        vocabulary=vocabulary,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
        workers=workers_value,
        report=report,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _severity_overrides(value: Any) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for key, raw in _as_dict(value).items():
        severity = Severity.parse(raw)
        if severity is None:
            raise ConfigurationError(f"Invalid severity {raw!r} for detector '{key}'")
        overrides[str(key).lower()] = severity.value
    return overrides


def _thresholds(value: Any) -> Dict[str, Any]:
    thresholds: Dict[str, Any] = {}
    for key, raw in _as_dict(value).items():
        if isinstance(raw, dict):
            thresholds[str(key).lower()] = {str(name): item for name, item in raw.items()}
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            thresholds[str(key).lower()] = raw
        else:
            raise ConfigurationError(f"Threshold for detector '{key}' must be a number or a mapping, got {raw!r}")
    return thresholds


def _vocabulary(value: Any) -> Dict[str, List[str]]:
    entries = _as_dict(value)
    known = Vocabulary.entry_names()
    unknown = sorted(str(key) for key in entries if key not in known)
    if unknown:
        raise ConfigurationError(f"Unknown vocabulary entries: {', '.join(unknown)}")
    return {str(key): _as_str_list(names) for key, names in entries.items()}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


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
    "CONFIG_FILENAME",
    "ConfigError",
    "ConfigurationError",
    "DetectorsConfig",
    "REPORT_FORMATS",
    "ReportConfig",
    "RxSmellsConfig",
    "config_from_mapping",
    "load_config",
]
