"""Matching engine: runs every selected detector against every component."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence

from .detectors.base import Detector, DetectorContext, DetectorSettings
from .graphs.lifecycle import LifecycleGraphBuilder
from .graphs.stream import StreamGraphBuilder
from .graphs.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from .logging import get_logger
from .models import Finding, Severity
from .source.model import AnalysisBatch, ComponentModel

DETECTOR_FAULT = "detector-fault"
ANALYSIS_FAULT = "analysis-fault"

_logger = get_logger("engine")


class DetectorFault(RuntimeError):
    """A detector raised while matching a component."""

    def __init__(self, detector_id: str, component: ComponentModel, cause: BaseException) -> None:
        super().__init__(f"Detector '{detector_id}' failed on {component.name}: {cause}")
        self.detector_id = detector_id
        self.component = component
        self.cause = cause

    def to_finding(self) -> Finding:
        return Finding(
            detector_id=f"{DETECTOR_FAULT}:{self.detector_id}",
            component_id=self.component.id,
            component=self.component.name,
            location=self.component.location,
            severity=Severity.WARNING,
            message=str(self),
            metadata={"detector": self.detector_id, "error": type(self.cause).__name__},
        )


class CancellationToken:
    """Coarse cancellation checked between components."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class EngineResult:
    findings: List[Finding] = field(default_factory=list)
    analyzed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return bool(self.skipped)


class MatchingEngine:
    """Evaluates detectors per component; one component is one unit of work."""

    def __init__(
        self,
        detectors: Sequence[Detector],
        settings: Optional[Mapping[str, DetectorSettings]] = None,
        *,
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
        workers: int = 1,
    ) -> None:
        self.detectors = list(detectors)
        self.settings: Dict[str, DetectorSettings] = dict(settings or {})
        self.vocabulary = vocabulary
        self.workers = max(1, workers)

    def run(
        self,
        components: Sequence[ComponentModel],
        batch: Optional[AnalysisBatch] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> EngineResult:
        batch = batch or AnalysisBatch(components)
        token = token or CancellationToken()
        selectors = frozenset(batch.by_selector)

        def task(component: ComponentModel) -> Optional[List[Finding]]:
            if token.cancelled:
                return None
            return self.analyze_component(component, batch, selectors=selectors)

        if self.workers == 1 or len(components) <= 1:
            buffers = [task(component) for component in components]
        else:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="rxsmells") as executor:
                # map() yields in submission order, which keeps output order-stable
                buffers = list(executor.map(task, components))

        result = EngineResult()
        for component, buffer in zip(components, buffers):
            if buffer is None:
                result.skipped.append(component.id)
                continue
            result.analyzed.append(component.id)
            result.findings.extend(buffer)
        if result.skipped:
            _logger.warning("Analysis cancelled; skipped %d component(s)", len(result.skipped))
        _logger.info(
            "Matched %d detector(s) against %d component(s): %d finding(s)",
            len(self.detectors),
            len(result.analyzed),
            len(result.findings),
        )
        return result

    def analyze_component(
        self,
        component: ComponentModel,
        batch: AnalysisBatch,
        *,
        selectors: FrozenSet[str] = frozenset(),
    ) -> List[Finding]:
        findings: List[Finding] = []
        try:
            streams = StreamGraphBuilder(self.vocabulary, known_selectors=selectors).build(component)
            lifecycle = LifecycleGraphBuilder(self.vocabulary).build(component, streams)
        except Exception as exc:
            _logger.warning("Graph construction failed for %s: %s", component.name, exc)
            findings.append(_analysis_fault(component, exc))
            return findings

        for detector in self.detectors:
            settings = self.settings.get(detector.id) or detector.default_settings()
            ctx = DetectorContext(component, streams, lifecycle, batch, self.vocabulary, settings)
            if detector.needs_full_bodies and component.has_opaque_members:
                _logger.debug("%s abstains on %s: opaque members", detector.id, component.name)
                continue
            try:
                if not detector.applies_to(ctx):
                    continue
                found = list(detector.detect(ctx))
            except Exception as exc:
                fault = DetectorFault(detector.id, component, exc)
                _logger.warning("%s", fault)
                findings.append(fault.to_finding())
            else:
                findings.extend(found)
        return findings


def _analysis_fault(component: ComponentModel, exc: Exception) -> Finding:
    return Finding(
        detector_id=ANALYSIS_FAULT,
        component_id=component.id,
        component=component.name,
        location=component.location,
        severity=Severity.WARNING,
        message=f"Could not build graphs for {component.name}: {exc}",
        metadata={"error": type(exc).__name__},
    )


__all__ = [
    "ANALYSIS_FAULT",
    "CancellationToken",
    "DETECTOR_FAULT",
    "DetectorFault",
    "EngineResult",
    "MatchingEngine",
]
