"""Whiteout marker resolution for merged layer trees."""

import logging
import os
from pathlib import Path

from ..exceptions import WhiteoutResolutionError
from .copier import remove_path

logger = logging.getLogger(__name__)

# Entries starting with this prefix hide the sibling named without it.
WHITEOUT_PREFIX = ".wh."


def is_whiteout(name: str) -> bool:
    """Check if an entry name is a whiteout marker."""
    return name.startswith(WHITEOUT_PREFIX)


def shadowed_name(name: str) -> str:
    """Return the name of the entry hidden by a whiteout marker."""
    if not is_whiteout(name):
        raise ValueError(f"Not a whiteout marker: {name}")
    return name[len(WHITEOUT_PREFIX) :]


def _raise_walk_error(error: OSError) -> None:
    raise WhiteoutResolutionError(str(error.filename or ""), str(error)) from error


def resolve_whiteouts(tree: str | Path) -> int:
    """Delete whiteout markers and the entries they shadow.

    For each marker the sibling with the prefix stripped is removed (a
    directory with all of its descendants), then the marker itself. A marker
    without a target only removes itself.

    Args:
        tree: Root of the merged tree, modified in place

    Returns:
        Number of markers removed

    Raises:
        WhiteoutResolutionError: If a marker or its target cannot be removed
    """
    removed = 0
    for dirpath, dirnames, filenames in os.walk(tree, onerror=_raise_walk_error):
        markers = sorted(name for name in dirnames + filenames if is_whiteout(name))
        for marker in markers:
            target = os.path.join(dirpath, shadowed_name(marker))
            marker_path = os.path.join(dirpath, marker)

            for path in (target, marker_path):
                if not os.path.lexists(path):
                    continue
                try:
                    remove_path(Path(path))
                except OSError as e:
                    raise WhiteoutResolutionError(path, str(e)) from e
                logger.debug(f"Removed {path}")

            removed += 1

        # never descend into directories removed above
        dirnames[:] = [
            name for name in dirnames if os.path.lexists(os.path.join(dirpath, name))
        ]

    logger.info(f"Resolved {removed} whiteout markers in {tree}")
    return removed
