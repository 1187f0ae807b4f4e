"""Base classes for detector plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from ..graphs.lifecycle import LifecycleGraph
from ..graphs.stream import StreamGraph
from ..graphs.vocabulary import Vocabulary
from ..models import Finding, Severity, SourceLocation
from ..source.model import AnalysisBatch, ComponentModel


@dataclass(frozen=True)
class DetectorSettings:
    """Effective severity, thresholds, and options for one detector."""

    severity: Severity
    thresholds: Mapping[str, float] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)

    def threshold(self, name: str) -> float:
        return self.thresholds[name]


@dataclass(frozen=True)
class DetectorContext:
    """Everything a detector may read for one component; nothing is writable."""

    component: ComponentModel
    streams: StreamGraph
    lifecycle: LifecycleGraph
    batch: AnalysisBatch
    vocabulary: Vocabulary
    settings: DetectorSettings


class Detector(ABC):
    """Contract for detectors that match one smell against a component.

    Implementations are stateless: ``detect`` must not keep anything between
    calls so the engine can run detectors in any order or in parallel.
    """

    id: str = ""
    title: str = ""
    default_severity: Severity = Severity.WARNING
    default_thresholds: Mapping[str, float] = MappingProxyType({})
    needs_full_bodies: bool = False
    message_template: str = ""

    @property
    def primary_threshold(self) -> Optional[str]:
        """Threshold set when configuration provides a bare number."""
        return next(iter(self.default_thresholds), None)

    def default_settings(self) -> DetectorSettings:
        return DetectorSettings(self.default_severity, dict(self.default_thresholds))

    def applies_to(self, ctx: DetectorContext) -> bool:
        """Return True when this detector should run for the component."""
        return True

    @abstractmethod
    def detect(self, ctx: DetectorContext) -> Iterable[Finding]:
        """Produce findings for one component."""

    def finding(
        self,
        ctx: DetectorContext,
        location: SourceLocation,
        *,
        evidence: Sequence[SourceLocation] = (),
        metadata: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> Finding:
        component = ctx.component
        message = self.message_template.format(component=component.name, **fields)
        return Finding(
            detector_id=self.id,
            component_id=component.id,
            component=component.name,
            location=location,
            severity=ctx.settings.severity,
            message=message,
            evidence=tuple(evidence),
            metadata=dict(metadata or {}),
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.default_severity.value,
            "thresholds": dict(self.default_thresholds),
            "needs_full_bodies": self.needs_full_bodies,
        }


__all__ = ["Detector", "DetectorContext", "DetectorSettings"]
