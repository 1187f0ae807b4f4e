"""Rule registry: built-in detectors plus entry-point plugins."""

from __future__ import annotations

from functools import lru_cache
from importlib import metadata
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set

from ..config import ConfigurationError, DetectorsConfig
from ..logging import get_logger
from ..models import Severity
from .architecture import (
    DuplicateStateDetector,
    GodComponentDetector,
    InheritanceOverCompositionDetector,
    MixingSmartDumbDetector,
)
from .base import Detector, DetectorSettings
from .dom import ModifyDomDirectlyDetector
from .lifecycle import (
    EmptyLifecycleHookDetector,
    LeakingListenerDetector,
    NotUnsubscribingDetector,
    SubscribeInConstructorDetector,
)
from .streams import (
    ExposedSubjectDetector,
    GiveStreamsToChildrenDetector,
    ManualSubscriptionDetector,
    MultipleSubscriptionsDetector,
    NestedSubscriptionsDetector,
    StatefulStreamsDetector,
    TakeUntilNotLastDetector,
    UnboundedReplayDetector,
)
from .template import DefaultChangeDetectionDetector, LogicInTemplatesDetector, MissingTrackByDetector

_ENTRY_POINT_GROUP = "rxsmells.detectors"

_logger = get_logger("detectors.registry")

_BUILTIN_FACTORIES: Dict[str, Callable[[], Detector]] = {
    "multiple-subscriptions": MultipleSubscriptionsDetector,
    "give-streams-to-children": GiveStreamsToChildrenDetector,
    "nested-subscriptions": NestedSubscriptionsDetector,
    "not-unsubscribing": NotUnsubscribingDetector,
    "subscribe-in-constructor": SubscribeInConstructorDetector,
    "manual-subscription": ManualSubscriptionDetector,
    "takeuntil-not-last": TakeUntilNotLastDetector,
    "unbounded-replay": UnboundedReplayDetector,
    "stateful-streams": StatefulStreamsDetector,
    "exposed-subject": ExposedSubjectDetector,
    "god-component": GodComponentDetector,
    "mixing-smart-dumb": MixingSmartDumbDetector,
    "modify-dom-directly": ModifyDomDirectlyDetector,
    "inheritance-over-composition": InheritanceOverCompositionDetector,
    "logic-in-templates": LogicInTemplatesDetector,
    "duplicate-state": DuplicateStateDetector,
    "default-change-detection": DefaultChangeDetectionDetector,
    "missing-trackby": MissingTrackByDetector,
    "leaking-listener": LeakingListenerDetector,
    "empty-lifecycle-hook": EmptyLifecycleHookDetector,
}


class DetectorRegistry:
    """Ordered, read-only set of detectors keyed by id."""

    def __init__(self, detectors: Iterable[Detector]) -> None:
        ordered: Dict[str, Detector] = {}
        for detector in detectors:
            if not detector.id:
                raise TypeError(f"Detector {type(detector).__name__} has no id")
            if detector.id in ordered:
                raise ValueError(f"Duplicate detector id '{detector.id}'")
            ordered[detector.id] = detector
        self._detectors = ordered

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors.values())

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, detector_id: object) -> bool:
        return detector_id in self._detectors

    def ids(self) -> List[str]:
        return list(self._detectors)

    def get(self, detector_id: str) -> Detector:
        try:
            return self._detectors[detector_id]
        except KeyError:
            raise ConfigurationError(f"Unknown detector '{detector_id}'") from None

    def select(self, enabled: Optional[Sequence[str]] = None) -> List[Detector]:
        """Detectors to run, in registry order; unknown ids are fatal."""
        if not enabled:
            return list(self)
        wanted = {name.strip().lower() for name in enabled}
        unknown = sorted(wanted - set(self._detectors))
        if unknown:
            raise ConfigurationError(f"Unknown detectors requested: {', '.join(unknown)}")
        return [detector for detector in self if detector.id in wanted]

    def resolve_settings(self, config: Optional[DetectorsConfig] = None) -> Dict[str, DetectorSettings]:
        """Merge configured overrides into each detector's defaults."""
        config = config or DetectorsConfig()
        self._check_ids("severity_overrides", config.severity_overrides)
        self._check_ids("thresholds", config.thresholds)

        options: Dict[str, Any] = {"sanctioned_wrappers": tuple(config.sanctioned_wrappers)}
        settings: Dict[str, DetectorSettings] = {}
        for detector in self:
            severity = detector.default_severity
            raw_severity = config.severity_overrides.get(detector.id)
            if raw_severity is not None:
                parsed = Severity.parse(raw_severity)
                if parsed is None:
                    raise ConfigurationError(f"Invalid severity '{raw_severity}' for detector '{detector.id}'")
                severity = parsed
            thresholds = dict(detector.default_thresholds)
            override = config.thresholds.get(detector.id)
            if override is not None:
                thresholds.update(_threshold_override(detector, override))
            settings[detector.id] = DetectorSettings(severity, thresholds, options)
        return settings

    def describe(self) -> List[Dict[str, Any]]:
        return [detector.describe() for detector in self]

    def _check_ids(self, section: str, values: Mapping[str, Any]) -> None:
        unknown = sorted(set(values) - set(self._detectors))
        if unknown:
            raise ConfigurationError(f"Unknown detector id(s) in {section}: {', '.join(unknown)}")


def _threshold_override(detector: Detector, value: Any) -> Dict[str, float]:
    if isinstance(value, Mapping):
        items = dict(value)
    else:
        primary = detector.primary_threshold
        if primary is None:
            raise ConfigurationError(f"Detector '{detector.id}' does not take a threshold")
        items = {primary: value}
    resolved: Dict[str, float] = {}
    for name, raw in items.items():
        if name not in detector.default_thresholds:
            raise ConfigurationError(f"Unknown threshold '{name}' for detector '{detector.id}'")
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
            raise ConfigurationError(f"Threshold '{name}' for detector '{detector.id}' must be a non-negative number")
        resolved[name] = raw
    return resolved


def discover_detectors() -> List[Detector]:
    """Instantiate built-in detectors followed by entry-point plugins."""
    detectors: List[Detector] = []
    seen: Set[str] = set()

    def _add(name: str, factory: Callable[[], Detector]) -> None:
        if name in seen:
            return
        instance = factory()
        if not isinstance(instance, Detector):
            raise TypeError(f"Detector factory for '{name}' did not return a Detector instance")
        detectors.append(instance)
        seen.add(name)

    for name, factory in _BUILTIN_FACTORIES.items():
        _add(name, factory)

    for entry in _iter_entry_points():
        try:
            loaded = entry.load()
        except Exception as exc:
            raise RuntimeError(f"Failed to load detector entry point '{entry.name}': {exc}") from exc

        def _factory(obj: object = loaded) -> Detector:
            return _coerce_detector(obj)

        _add(entry.name, _factory)
        _logger.debug("Registered plugin detector %s", entry.name)

    return detectors


def _coerce_detector(obj: object) -> Detector:
    if isinstance(obj, Detector):
        return obj
    if isinstance(obj, type) and issubclass(obj, Detector):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, Detector):
            return instance
    raise TypeError("Detector entry point must be a Detector subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


@lru_cache(maxsize=1)
def default_registry() -> DetectorRegistry:
    """Process-wide registry, built once and read-only thereafter."""
    return DetectorRegistry(discover_detectors())


__all__ = [
    "DetectorRegistry",
    "default_registry",
    "discover_detectors",
]
