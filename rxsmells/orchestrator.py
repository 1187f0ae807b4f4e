"""Pipeline orchestration: load, adapt, match, and report."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from .config import RxSmellsConfig, load_config
from .detectors.base import Detector, DetectorSettings
from .detectors.registry import DetectorRegistry, default_registry
from .engine import CancellationToken, MatchingEngine
from .graphs.vocabulary import Vocabulary
from .logging import get_logger
from .reporting import DiagnosticReporter
from .source import ComponentAdapter, SourceDocument, SourceFormatError, load_documents
from .source.model import AnalysisBatch, ComponentModel, SupportClass


@dataclass
class AnalysisOutcome:
    """Result of one analysis run."""

    reporter: DiagnosticReporter
    documents: int = 0
    components: int = 0
    skipped_documents: List[str] = field(default_factory=list)
    skipped_components: List[str] = field(default_factory=list)

    @property
    def exit_status(self) -> int:
        return self.reporter.exit_status()

    @property
    def cancelled(self) -> bool:
        return bool(self.skipped_components)


class Orchestrator:
    """Coordinates the analysis pipeline for the CLI and the service."""

    def __init__(self, registry: Optional[DetectorRegistry] = None) -> None:
        self._registry = registry
        self.logger = get_logger("orchestrator")

    @property
    def registry(self) -> DetectorRegistry:
        if self._registry is None:
            self._registry = default_registry()
        return self._registry

    def load_config(self, config_path: Optional[str] = None) -> RxSmellsConfig:
        """Load ``.rxsmells.yml`` from ``config_path`` or the working directory."""
        target = Path(config_path) if config_path else Path.cwd()
        return load_config(target)

    def run_analysis(
        self,
        paths: Sequence[str],
        config: Optional[RxSmellsConfig] = None,
        *,
        token: Optional[CancellationToken] = None,
    ) -> AnalysisOutcome:
        """Analyse every document under ``paths``; configuration errors are raised before any work."""
        config = config or self.load_config()
        detectors, settings, vocabulary = self._prepare(config)
        self.logger.info("Starting analysis of %s", ", ".join(paths))

        documents = load_documents(paths, config.exclude_paths)
        components, classes, skipped = self._adapt(documents, vocabulary)
        outcome = self._match(components, classes, detectors, settings, vocabulary, config.workers, token)
        outcome.documents = len(documents)
        outcome.skipped_documents = skipped
        return outcome

    def analyze_document(
        self,
        data: Any,
        config: Optional[RxSmellsConfig] = None,
        *,
        source: str = "<inline>",
    ) -> AnalysisOutcome:
        """Analyse one already-decoded document; malformed input raises ``SourceFormatError``."""
        config = config or RxSmellsConfig(root=Path.cwd())
        detectors, settings, vocabulary = self._prepare(config)
        components, classes = ComponentAdapter(vocabulary).adapt_document(data, source=source)
        outcome = self._match(components, classes, detectors, settings, vocabulary, config.workers, None)
        outcome.documents = 1
        return outcome

    def _prepare(
        self, config: RxSmellsConfig
    ) -> Tuple[List[Detector], dict[str, DetectorSettings], Vocabulary]:
        detectors = self.registry.select(config.detectors.enabled or None)
        settings = self.registry.resolve_settings(config.detectors)
        vocabulary = config.build_vocabulary()
        self.logger.debug("Selected %d detector(s)", len(detectors))
        return detectors, settings, vocabulary

    def _adapt(
        self, documents: Sequence[SourceDocument], vocabulary: Vocabulary
    ) -> Tuple[List[ComponentModel], List[SupportClass], List[str]]:
        adapter = ComponentAdapter(vocabulary)
        components: List[ComponentModel] = []
        classes: List[SupportClass] = []
        skipped: List[str] = []
        seen: set[str] = set()
        for document in documents:
            try:
                found, support = adapter.adapt_document(document.data, source=document.path)
            except SourceFormatError as exc:
                self.logger.warning("Skipping %s: %s", document.path, exc)
                skipped.append(document.path)
                continue
            for component in found:
                if component.id in seen:
                    self.logger.warning("Duplicate component id %s; keeping the first", component.id)
                    continue
                seen.add(component.id)
                components.append(component)
            classes.extend(support)
        return components, classes, skipped

    def _match(
        self,
        components: List[ComponentModel],
        classes: List[SupportClass],
        detectors: List[Detector],
        settings: dict[str, DetectorSettings],
        vocabulary: Vocabulary,
        workers: int,
        token: Optional[CancellationToken],
    ) -> AnalysisOutcome:
        batch = AnalysisBatch(components, classes)
        engine = MatchingEngine(detectors, settings, vocabulary=vocabulary, workers=workers)
        result = engine.run(components, batch, token=token)
        reporter = DiagnosticReporter()
        reporter.collect(result.findings)
        return AnalysisOutcome(
            reporter=reporter,
            components=len(result.analyzed),
            skipped_components=list(result.skipped),
        )


__all__ = ["AnalysisOutcome", "Orchestrator"]
