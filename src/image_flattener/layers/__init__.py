"""Layer storage, copying, merging and whiteout resolution."""

from .chain import fetch_layer_chain
from .copier import LocalTreeCopier, RsyncCopier, make_copier
from .merger import LayerMerger
from .store import LayerStore
from .whiteout import WHITEOUT_PREFIX, is_whiteout, resolve_whiteouts, shadowed_name

__all__ = [
    "fetch_layer_chain",
    "LayerStore",
    "LayerMerger",
    "LocalTreeCopier",
    "RsyncCopier",
    "make_copier",
    "WHITEOUT_PREFIX",
    "is_whiteout",
    "shadowed_name",
    "resolve_whiteouts",
]
