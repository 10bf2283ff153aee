"""Test helpers for building layer trees and fake collaborators."""

import os
from pathlib import Path
from typing import NamedTuple

from image_flattener.core.types import HistoryEntry, Layer
from image_flattener.exceptions import LayerNotFoundError


class Symlink(NamedTuple):
    """Symlink entry for write_tree."""

    target: str


def write_tree(root: Path, spec: dict) -> Path:
    """Create files, directories and symlinks under root.

    String values become file contents, dict values become directories and
    Symlink values become symbolic links.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in spec.items():
        path = root / name
        if isinstance(value, dict):
            write_tree(path, value)
        elif isinstance(value, Symlink):
            os.symlink(value.target, path)
        else:
            path.write_text(value)
    return root


def snapshot_tree(root: Path) -> dict[str, str]:
    """Describe every entry below root keyed by relative path."""
    snapshot = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = path.relative_to(root).as_posix()
            if path.is_symlink():
                snapshot[rel] = f"-> {os.readlink(path)}"
            elif path.is_dir():
                snapshot[rel] = "<dir>"
            else:
                snapshot[rel] = path.read_text()
    return snapshot


def make_layer(graph_root: Path, layer_id: str, spec: dict) -> Path:
    """Create the content root of a layer in graph storage."""
    return write_tree(graph_root / layer_id / "layer", spec)


def make_chain_layers(*specs: tuple[str, dict]) -> list[Layer]:
    """Create Layer records linked most-derived first."""
    ids = [layer_id for layer_id, _ in specs]
    return [
        Layer(id=layer_id, parent=ids[index + 1] if index + 1 < len(ids) else None)
        for index, layer_id in enumerate(ids)
    ]


class FakeRuntimeClient:
    """In-memory stand-in for RuntimeClient."""

    def __init__(self, layers: list[Layer]) -> None:
        self.layers = {layer.id: layer for layer in layers}
        self.order = [layer.id for layer in layers]
        self.inspected: list[str] = []

    async def get_history(self, image: str) -> list[HistoryEntry]:
        if not self.order:
            raise LayerNotFoundError(f"Not found: {image}")
        return [HistoryEntry(id=layer_id) for layer_id in self.order]

    async def inspect_layer(self, layer_id: str) -> Layer:
        self.inspected.append(layer_id)
        if layer_id not in self.layers:
            raise LayerNotFoundError(f"Not found: {layer_id}")
        return self.layers[layer_id]


class RecordingCopier:
    """Copier that only records the order of copied sources."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, Path]] = []

    def copy_tree(self, source: Path, destination: Path) -> None:
        self.calls.append((Path(source), Path(destination)))


class RecordingBuilder:
    """Image builder that captures the build context instead of building."""

    def __init__(self) -> None:
        self.builds: list[tuple[Path, str]] = []
        self.dockerfiles: list[str] = []
        self.context_files: list[set[str]] = []

    async def build(self, context_dir: Path, tag: str) -> None:
        self.builds.append((Path(context_dir), tag))
        self.dockerfiles.append((Path(context_dir) / "Dockerfile").read_text())
        self.context_files.append({p.name for p in Path(context_dir).iterdir()})
