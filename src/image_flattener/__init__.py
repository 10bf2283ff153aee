"""Image Flattener - collapse layered container images into a single layer."""

__version__ = "0.1.0"

from .core.runtime_client import RuntimeClient
from .core.types import FinalImage, FlattenConfig, Layer, LayerChain, RuntimeConfig
from .exceptions import (
    ArchiveError,
    CopyFailedError,
    EmptyChainError,
    FlattenError,
    ImageBuildError,
    LayerChainError,
    LayerNotFoundError,
    RuntimeAPIError,
    RuntimeUnavailableError,
    WhiteoutResolutionError,
)
from .flatten import check_runtime_connectivity, flatten_image
from .image.final import derive_final_image, normalize_command
from .layers.merger import LayerMerger
from .layers.store import LayerStore
from .layers.whiteout import resolve_whiteouts

__all__ = [
    # Pipeline
    "flatten_image",
    "check_runtime_connectivity",
    # Core
    "RuntimeClient",
    "RuntimeConfig",
    "FlattenConfig",
    "Layer",
    "LayerChain",
    "FinalImage",
    "LayerStore",
    "LayerMerger",
    "resolve_whiteouts",
    "derive_final_image",
    "normalize_command",
    # Exceptions
    "FlattenError",
    "RuntimeAPIError",
    "LayerNotFoundError",
    "RuntimeUnavailableError",
    "LayerChainError",
    "EmptyChainError",
    "CopyFailedError",
    "WhiteoutResolutionError",
    "ArchiveError",
    "ImageBuildError",
]
