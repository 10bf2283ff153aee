"""Custom exceptions for the image flattener."""


class FlattenError(Exception):
    """Base exception for all flattening errors."""

    pass


class RuntimeAPIError(FlattenError):
    """Raised when the container runtime API returns an unexpected response."""

    pass


class LayerNotFoundError(RuntimeAPIError):
    """Raised when a layer or image id is unknown to the runtime."""

    pass


class RuntimeUnavailableError(RuntimeAPIError):
    """Raised when the container runtime cannot be reached."""

    pass


class LayerChainError(FlattenError):
    """Raised when the layer history does not form a valid chain."""

    pass


class EmptyChainError(LayerChainError):
    """Raised when there are not enough layers to flatten."""

    pass


class CopyFailedError(FlattenError):
    """Raised when a layer cannot be copied into the scratch tree."""

    def __init__(self, layer_id: str, path: str, reason: str = "") -> None:
        self.layer_id = layer_id
        self.path = path
        message = f"Failed to copy layer {layer_id} at {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class WhiteoutResolutionError(FlattenError):
    """Raised when a whiteout marker or its target cannot be removed."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        message = f"Failed to resolve whiteout {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ArchiveError(FlattenError):
    """Raised when the merged tree cannot be archived."""

    pass


class ImageBuildError(FlattenError):
    """Raised when the image builder fails."""

    pass
