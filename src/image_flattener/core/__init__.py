"""Runtime client and core data types."""

from .runtime_client import RuntimeClient
from .types import (
    FinalImage,
    FlattenConfig,
    HistoryEntry,
    Layer,
    LayerChain,
    RuntimeConfig,
)

__all__ = [
    "RuntimeClient",
    "RuntimeConfig",
    "FlattenConfig",
    "HistoryEntry",
    "Layer",
    "LayerChain",
    "FinalImage",
]
