"""Stream and lifecycle graphs derived from one component model."""

from .lifecycle import LifecycleGraph, LifecycleGraphBuilder, TeardownRef
from .stream import ConsumptionSite, OperatorRef, StreamExpr, StreamGraph, StreamGraphBuilder
from .vocabulary import DEFAULT_VOCABULARY, CallSignature, Vocabulary

__all__ = [
    "CallSignature",
    "ConsumptionSite",
    "DEFAULT_VOCABULARY",
    "LifecycleGraph",
    "LifecycleGraphBuilder",
    "OperatorRef",
    "StreamExpr",
    "StreamGraph",
    "StreamGraphBuilder",
    "TeardownRef",
    "Vocabulary",
]
