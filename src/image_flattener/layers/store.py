"""Lookup of layer content roots on local storage."""

import logging
import os
from pathlib import Path

from ..exceptions import LayerNotFoundError, RuntimeUnavailableError

logger = logging.getLogger(__name__)


class LayerStore:
    """Resolves layer ids to their content directories.

    Layers are laid out as ``<graph_root>/<layer_id>/layer``. Content roots
    are only ever read.
    """

    layer_dirname = "layer"

    def __init__(self, graph_root: str | Path) -> None:
        self.graph_root = Path(graph_root)
        self._resolved: dict[str, Path] = {}

    def resolve(self, layer_id: str) -> Path:
        """Return the content root of ``layer_id``.

        Raises:
            LayerNotFoundError: If no content exists for the layer
            RuntimeUnavailableError: If the graph root cannot be read
        """
        if layer_id in self._resolved:
            return self._resolved[layer_id]

        if not layer_id or "/" in layer_id or layer_id in (".", ".."):
            raise LayerNotFoundError(f"Invalid layer id: {layer_id!r}")

        if not self.graph_root.is_dir() or not os.access(
            self.graph_root, os.R_OK | os.X_OK
        ):
            raise RuntimeUnavailableError(
                f"Layer storage {self.graph_root} is not accessible"
            )

        root = self.graph_root / layer_id / self.layer_dirname
        if not root.is_dir():
            raise LayerNotFoundError(f"Layer {layer_id} not found in {self.graph_root}")

        logger.debug(f"Resolved layer {layer_id} -> {root}")
        self._resolved[layer_id] = root
        return root
