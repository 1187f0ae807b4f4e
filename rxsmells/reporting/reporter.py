"""Diagnostic reporter: dedupe, order, and render findings."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..logging import get_logger
from ..models import Finding, Severity, SourceLocation

_logger = get_logger("reporting")


@dataclass(frozen=True)
class Diagnostic:
    """External, flattened form of a finding."""

    detector_id: str
    severity: Severity
    component: str
    file: str
    line: int
    column: int
    message: str
    evidence: Tuple[SourceLocation, ...] = ()

    @classmethod
    def from_finding(cls, finding: Finding) -> "Diagnostic":
        location = finding.location
        return cls(
            detector_id=finding.detector_id,
            severity=finding.severity,
            component=finding.component,
            file=location.file,
            line=location.line,
            column=location.column,
            message=finding.message,
            evidence=tuple(finding.evidence),
        )

    @property
    def sort_key(self) -> Tuple[str, int, int, int, str]:
        return (self.file, self.line, -self.severity.rank, self.column, self.detector_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detectorId": self.detector_id,
            "severity": self.severity.value,
            "component": self.component,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "evidence": [location.to_dict() for location in self.evidence],
        }

    def to_text(self) -> str:
        lines = [
            f"{self.file}:{self.line}:{self.column}: {self.severity.value} "
            f"[{self.detector_id}] {self.message} ({self.component})"
        ]
        lines.extend(f"    see {location}" for location in self.evidence)
        return "\n".join(lines)


class DiagnosticReporter:
    """Collects findings from any thread and emits them in a stable order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._diagnostics: Dict[Tuple[str, SourceLocation], Diagnostic] = {}

    def collect(self, findings: Iterable[Finding]) -> int:
        """Add findings, dropping duplicates by ``(detectorId, file, line, column)``."""
        added = 0
        with self._lock:
            for finding in findings:
                key = finding.dedupe_key
                if key in self._diagnostics:
                    continue
                self._diagnostics[key] = Diagnostic.from_finding(finding)
                added += 1
        return added

    def diagnostics(self) -> List[Diagnostic]:
        with self._lock:
            collected = list(self._diagnostics.values())
        return sorted(collected, key=lambda item: item.sort_key)

    def counts(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for diagnostic in self.diagnostics():
            counts[diagnostic.severity.value] += 1
        return counts

    def exit_status(self) -> int:
        """1 when any error-severity diagnostic was reported, else 0."""
        return int(any(item.severity is Severity.ERROR for item in self.diagnostics()))

    def render(self, fmt: str = "json") -> str:
        diagnostics = self.diagnostics()
        if fmt == "json":
            return json.dumps([item.to_dict() for item in diagnostics], indent=2)
        if fmt == "jsonl":
            return "\n".join(json.dumps(item.to_dict()) for item in diagnostics)
        if fmt == "text":
            if not diagnostics:
                return "No findings."
            body = "\n".join(item.to_text() for item in diagnostics)
            counts = self.counts()
            summary = ", ".join(f"{counts[key]} {key}" for key in ("error", "warning", "info"))
            return f"{body}\n\n{len(diagnostics)} finding(s): {summary}"
        raise ValueError(f"Unknown report format '{fmt}'")

    def write(self, fmt: str = "json", output: Optional[Path] = None) -> str:
        """Render and optionally persist the report; returns the rendered text."""
        rendered = self.render(fmt)
        if output is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(rendered + "\n", encoding="utf-8")
            _logger.info("Wrote %d diagnostic(s) to %s", len(self._diagnostics), output)
        return rendered


__all__ = ["Diagnostic", "DiagnosticReporter"]
