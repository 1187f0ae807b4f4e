"""Detector catalog and registry."""

from .base import Detector, DetectorContext, DetectorSettings
from .registry import DetectorRegistry, default_registry, discover_detectors

__all__ = [
    "Detector",
    "DetectorContext",
    "DetectorRegistry",
    "DetectorSettings",
    "default_registry",
    "discover_detectors",
]
