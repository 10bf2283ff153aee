"""Union of image layers into a single scratch tree."""

import logging
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from ..core.types import Layer
from ..exceptions import CopyFailedError
from .copier import LocalTreeCopier, TreeCopier
from .store import LayerStore
from .whiteout import resolve_whiteouts

logger = logging.getLogger(__name__)


class LayerMerger:
    """Merges layers the way a union filesystem exposes the top layer.

    Layers are applied base first so that content from more-derived layers
    overwrites content from their ancestors. Whiteouts are resolved once,
    after every layer has been applied.
    """

    def __init__(
        self,
        store: LayerStore,
        copier: Optional[TreeCopier] = None,
        scratch_root: Optional[str | Path] = None,
    ) -> None:
        """Initialize the merger.

        Args:
            store: Resolves layer ids to content roots
            copier: Tree copy capability (defaults to LocalTreeCopier)
            scratch_root: Directory in which scratch trees are allocated
        """
        self.store = store
        self.copier = copier or LocalTreeCopier()
        self.scratch_root = Path(scratch_root) if scratch_root else None

    def allocate_scratch(self, prefix: str = "flatten-") -> Path:
        """Create a fresh, empty scratch directory."""
        if self.scratch_root is not None:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self.scratch_root))

    def merge(
        self, layers: Sequence[Layer], destination: Optional[str | Path] = None
    ) -> Path:
        """Merge ``layers`` (most-derived first) into one tree.

        Args:
            layers: Layers ordered from most-derived to oldest
            destination: Empty or missing directory to merge into; a fresh
                scratch directory is allocated when omitted

        Returns:
            Path of the merged tree, free of whiteout markers

        Raises:
            LayerNotFoundError: If a layer's content cannot be found
            RuntimeUnavailableError: If layer storage is not accessible
            CopyFailedError: If a layer cannot be copied
            WhiteoutResolutionError: If whiteouts cannot be resolved
        """
        if destination is None:
            target = self.allocate_scratch()
        else:
            target = Path(destination)
            target.mkdir(parents=True, exist_ok=True)
            if any(target.iterdir()):
                raise FileExistsError(f"Merge destination is not empty: {target}")

        logger.info(f"Merging {len(layers)} layers into {target}")

        for layer in reversed(layers):
            source = self.store.resolve(layer.id)
            logger.debug(f"Applying layer {layer.id} from {source}")
            try:
                self.copier.copy_tree(source, target)
            except OSError as e:
                path = e.filename or source
                raise CopyFailedError(layer.id, str(path), str(e)) from e
            except subprocess.SubprocessError as e:
                raise CopyFailedError(layer.id, str(source), str(e)) from e

        resolve_whiteouts(target)
        return target
