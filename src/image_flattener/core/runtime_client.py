"""Docker Engine API async client for image history and layer metadata."""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from ..exceptions import (
    LayerNotFoundError,
    RuntimeAPIError,
    RuntimeUnavailableError,
)
from .types import HistoryEntry, Layer, RuntimeConfig

logger = logging.getLogger(__name__)


class RuntimeClient:
    """Async client for the container runtime's image API.

    Requests go over the runtime's unix socket. When the socket cannot be
    reached the request is retried once against the legacy TCP endpoint
    configured as ``fallback_url``.
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        connector: Optional[aiohttp.BaseConnector] = None,
    ) -> None:
        """Initialize the runtime client.

        Args:
            config: Runtime connection settings
            connector: aiohttp connector for the primary transport
        """
        self.config = config or RuntimeConfig()
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None
        self.fallback_session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RuntimeClient":
        """Enter async context manager."""
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        if not self.session:
            connector = self.connector or aiohttp.UnixConnector(
                path=self.config.socket_path
            )
            self.session = aiohttp.ClientSession(connector=connector, timeout=timeout)
        if not self.fallback_session and self.config.fallback_url:
            self.fallback_session = aiohttp.ClientSession(timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close both client sessions."""
        for session in (self.session, self.fallback_session):
            if session and not session.closed:
                await session.close()
        self.session = None
        self.fallback_session = None

    async def _get_json(self, path: str) -> Any:
        """GET ``path`` from the runtime, falling back to the legacy endpoint.

        Args:
            path: API path without version prefix (e.g. ``images/foo/json``)

        Returns:
            Decoded JSON body

        Raises:
            LayerNotFoundError: If the runtime answers 404
            RuntimeUnavailableError: If neither endpoint answers in time
            RuntimeAPIError: For any other error response
        """
        if self.session is None:
            raise RuntimeAPIError("Client session not started")

        url = f"{self.config.base_url}/{path}"
        try:
            return await self._request(self.session, url)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            reason = self._describe(e)
            if not self.fallback_session or not self.config.fallback_url:
                raise RuntimeUnavailableError(
                    f"Cannot reach runtime at {self.config.socket_path}: {reason}"
                ) from e
            logger.warning(
                f"Runtime socket {self.config.socket_path} unreachable ({reason}), "
                f"retrying against {self.config.fallback_url}"
            )
        except aiohttp.ClientError as e:
            raise RuntimeAPIError(f"Request to {url} failed: {e}") from e

        fallback_url = f"{self.config.fallback_url.rstrip('/')}/{path}"
        try:
            return await self._request(self.fallback_session, fallback_url)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise RuntimeUnavailableError(
                f"Cannot reach runtime at {self.config.socket_path} "
                f"or {self.config.fallback_url}: {self._describe(e)}"
            ) from e
        except aiohttp.ClientError as e:
            raise RuntimeAPIError(f"Request to {fallback_url} failed: {e}") from e

    def _describe(self, error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return f"timed out after {self.config.timeout}s"
        return str(error)

    async def _request(self, session: aiohttp.ClientSession, url: str) -> Any:
        logger.debug(f"GET {url}")
        async with session.get(url) as resp:
            if resp.status == 404:
                raise LayerNotFoundError(f"Not found: {url}")
            if resp.status >= 400:
                body = await resp.text()
                raise RuntimeAPIError(
                    f"Runtime returned {resp.status} for {url}: {body.strip()}"
                )
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise RuntimeAPIError(f"Invalid JSON from {url}: {e}") from e

    async def ping(self) -> bool:
        """Check whether the runtime answers on either endpoint.

        Returns:
            True if the runtime is reachable
        """
        if self.session is None:
            raise RuntimeAPIError("Client session not started")
        try:
            async with self.session.get(f"{self.config.base_url}/_ping") as resp:
                return resp.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError):
            pass

        if self.fallback_session and self.config.fallback_url:
            try:
                url = f"{self.config.fallback_url.rstrip('/')}/_ping"
                async with self.fallback_session.get(url) as resp:
                    return resp.status == 200
            except (aiohttp.ClientError, asyncio.TimeoutError):
                return False
        return False

    async def get_history(self, image: str) -> list[HistoryEntry]:
        """Get the history of an image, most-derived entry first.

        Args:
            image: Image name, tag or id

        Returns:
            List of history entries

        Raises:
            LayerNotFoundError: If the image is unknown
            RuntimeUnavailableError: If the runtime cannot be reached
        """
        data = await self._get_json(f"images/{quote(image, safe='/:@')}/history")
        if not isinstance(data, list):
            raise RuntimeAPIError(f"Unexpected history payload for {image}")
        return [HistoryEntry.from_api(entry) for entry in data]

    async def inspect_layer(self, layer_id: str) -> Layer:
        """Inspect a single layer.

        Args:
            layer_id: Layer (image) id

        Returns:
            Layer metadata

        Raises:
            LayerNotFoundError: If the layer is unknown
            RuntimeUnavailableError: If the runtime cannot be reached
        """
        data = await self._get_json(f"images/{quote(layer_id, safe=':')}/json")
        if not isinstance(data, dict):
            raise RuntimeAPIError(f"Unexpected inspect payload for {layer_id}")
        return Layer.from_api(data)
