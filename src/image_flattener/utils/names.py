"""Helpers for turning image references into filesystem-safe names."""

import re

# Characters that cannot appear in a single path component
_SEPARATORS = re.compile(r"[/\\]")


def normalize_name(name: str) -> str:
    """Replace path separators in an image name with dashes.

    Args:
        name: Image reference (e.g. "registry.io/team/app:v1")

    Returns:
        Name usable as a directory prefix (e.g. "registry.io-team-app:v1")
    """
    return _SEPARATORS.sub("-", name)
