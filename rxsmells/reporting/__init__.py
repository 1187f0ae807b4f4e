"""Reporting helpers for rxsmells diagnostics."""

from .reporter import Diagnostic, DiagnosticReporter

__all__ = ["Diagnostic", "DiagnosticReporter"]
