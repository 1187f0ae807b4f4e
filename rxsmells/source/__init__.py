"""Source model: expression trees, the canonical component model, and its adapter."""

from .adapter import ComponentAdapter, SourceFormatError
from .ast import UnsupportedConstruct
from .loader import SourceDocument, load_documents
from .model import AnalysisBatch, ComponentModel, SupportClass

__all__ = [
    "AnalysisBatch",
    "ComponentAdapter",
    "ComponentModel",
    "SourceDocument",
    "SourceFormatError",
    "SupportClass",
    "UnsupportedConstruct",
    "load_documents",
]
