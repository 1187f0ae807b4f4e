"""Core data models shared across rxsmells components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True, order=True)
class SourceLocation:
    """Position of a construct inside a source file (1-based line, 0-based column)."""

    file: str
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "line": self.line, "column": self.column}


UNKNOWN_LOCATION = SourceLocation(file="<unknown>")


class Severity(str, Enum):
    """Diagnostic severity levels, ordered by ``rank``."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: object) -> Optional["Severity"]:
        if isinstance(value, Severity):
            return value
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        if lowered == "warn":
            lowered = "warning"
        for member in cls:
            if member.value == lowered:
                return member
        return None


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


@dataclass(frozen=True)
class Finding:
    """A single detector match for one component.

    ``evidence`` lists the locations of the matched sub-graph (consumption
    sites, teardown points, sibling fields); ``metadata`` carries structured
    detail for debugging and machine consumers.
    """

    detector_id: str
    component_id: str
    component: str
    location: SourceLocation
    severity: Severity
    message: str
    evidence: Tuple[SourceLocation, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> Tuple[str, SourceLocation]:
        return (self.detector_id, self.location)


__all__ = ["Finding", "Severity", "SourceLocation", "UNKNOWN_LOCATION"]
