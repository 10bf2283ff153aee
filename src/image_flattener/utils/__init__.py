"""Utility functions for the image flattener."""

from .names import normalize_name

__all__ = ["normalize_name"]
