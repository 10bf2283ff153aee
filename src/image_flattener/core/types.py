"""Core data types for image flattening."""

import os
import tempfile
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..exceptions import EmptyChainError, LayerChainError

DEFAULT_SOCKET_PATH = "/var/run/docker.sock"
DEFAULT_API_VERSION = "v1.24"
DEFAULT_FALLBACK_URL = "http://localhost:4243/v1.3"
DEFAULT_GRAPH_ROOT = "/var/lib/docker/graph"

COPIER_CHOICES = ("python", "rsync")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RuntimeConfig:
    """Connection settings for the container runtime API."""

    socket_path: str = DEFAULT_SOCKET_PATH
    api_version: str = DEFAULT_API_VERSION
    fallback_url: str | None = DEFAULT_FALLBACK_URL
    timeout: int = 30

    @property
    def base_url(self) -> str:
        """Base URL used for requests sent over the unix socket."""
        return f"http://localhost/{self.api_version.strip('/')}"

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build a config from FLATTEN_* environment variables."""
        fallback = os.getenv("FLATTEN_FALLBACK_URL", DEFAULT_FALLBACK_URL)
        return cls(
            socket_path=os.getenv("FLATTEN_DOCKER_SOCKET", DEFAULT_SOCKET_PATH),
            api_version=os.getenv("FLATTEN_API_VERSION", DEFAULT_API_VERSION),
            fallback_url=fallback or None,
            timeout=int(os.getenv("FLATTEN_TIMEOUT", "30")),
        )


@dataclass(frozen=True)
class FlattenConfig:
    """Local storage settings for a flatten run."""

    graph_root: Path = Path(DEFAULT_GRAPH_ROOT)
    scratch_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    copier: str = "python"
    use_sudo: bool = False
    keep_scratch: bool = False

    def __post_init__(self) -> None:
        if self.copier not in COPIER_CHOICES:
            raise ValueError(
                f"Unsupported copier: {self.copier} (expected one of {COPIER_CHOICES})"
            )

    @classmethod
    def from_env(cls) -> "FlattenConfig":
        """Build a config from FLATTEN_* environment variables."""
        return cls(
            graph_root=Path(os.getenv("FLATTEN_GRAPH_ROOT", DEFAULT_GRAPH_ROOT)),
            scratch_root=Path(
                os.getenv("FLATTEN_SCRATCH_ROOT", tempfile.gettempdir())
            ),
            copier=os.getenv("FLATTEN_COPIER", "python"),
            use_sudo=_env_flag("FLATTEN_USE_SUDO"),
            keep_scratch=_env_flag("FLATTEN_KEEP_SCRATCH"),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One entry of an image's history, most-derived first."""

    id: str
    tags: tuple[str, ...] = ()
    created_by: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "HistoryEntry":
        """Parse a history record from the runtime API."""
        return cls(
            id=data.get("Id") or data.get("id") or "",
            tags=tuple(data.get("Tags") or data.get("tags") or ()),
            created_by=data.get("CreatedBy") or data.get("created_by") or "",
        )


@dataclass(frozen=True)
class Layer:
    """A single image layer and the runtime config it carries."""

    id: str
    parent: str | None = None
    author: str = ""
    ports: tuple[str, ...] = ()
    cmd: tuple[str, ...] = ()

    @property
    def is_base(self) -> bool:
        return not self.parent

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Layer":
        """Parse an inspect response.

        Accepts both the legacy lowercase layout (``id``, ``parent``,
        ``config.PortSpecs``) and the current one (``Id``, ``Parent``,
        ``Config.ExposedPorts``).
        """
        config = data.get("Config") or data.get("config") or {}

        ports = config.get("PortSpecs") or []
        if not ports:
            ports = sorted((config.get("ExposedPorts") or {}).keys())

        return cls(
            id=data.get("Id") or data.get("id") or "",
            parent=data.get("Parent") or data.get("parent") or None,
            author=data.get("Author") or data.get("author") or "",
            ports=tuple(ports),
            cmd=tuple(config.get("Cmd") or ()),
        )


class LayerChain(Sequence):
    """Layers ordered from the most-derived one down to the base."""

    def __init__(self, layers: Sequence[Layer]) -> None:
        self._layers = tuple(layers)
        self._validate()

    def _validate(self) -> None:
        seen: set[str] = set()
        for index, layer in enumerate(self._layers):
            if layer.id in seen:
                raise LayerChainError(f"Layer {layer.id} appears twice in chain")
            seen.add(layer.id)

            if index + 1 < len(self._layers):
                expected = self._layers[index + 1].id
                if layer.parent != expected:
                    raise LayerChainError(
                        f"Layer {layer.id} has parent {layer.parent!r}, "
                        f"expected {expected!r}"
                    )

    def __getitem__(self, index):
        return self._layers[index]

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __repr__(self) -> str:
        return f"LayerChain({[layer.id for layer in self._layers]!r})"

    def _require_layers(self) -> None:
        if not self._layers:
            raise EmptyChainError("Layer chain is empty")

    @property
    def head(self) -> Layer:
        """The most-derived layer (the requested image)."""
        self._require_layers()
        return self._layers[0]

    @property
    def base(self) -> Layer:
        """The oldest ancestor."""
        self._require_layers()
        return self._layers[-1]

    @property
    def derived_layers(self) -> tuple[Layer, ...]:
        """Every layer above the base, most-derived first."""
        return self._layers[:-1]

    def merge_order(self) -> tuple[Layer, ...]:
        """Layers in the order they are applied: base first."""
        return tuple(reversed(self._layers))


@dataclass(frozen=True)
class FinalImage:
    """Definition of the flattened image handed to the builder."""

    base: str
    new_name: str
    original_name: str = ""
    author: str = ""
    ports: tuple[str, ...] = ()
    cmd: tuple[str, ...] = ()
    archive: Path | None = None

    @property
    def has_ports(self) -> bool:
        return len(self.ports) > 0

    @property
    def has_cmd(self) -> bool:
        return len(self.cmd) > 0
