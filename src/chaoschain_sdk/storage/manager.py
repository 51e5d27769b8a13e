"""Storage manager that picks a backend and falls back across the rest."""

import json
import logging
from typing import Any, Optional

import httpx

from ..core.errors import StorageError
from ..core.models import StorageResult
from ..core.settings import EnvironmentSettings
from .backends import (
    IrysStorage,
    LocalIPFSStorage,
    PinataStorage,
    StorageBackend,
    Uploader,
    ZeroGStorage,
)

logger = logging.getLogger(__name__)


class AutoStorageManager:
    """Stores evidence on the first working backend.

    Backends are discovered on first use in the order local IPFS, Pinata,
    Irys, 0G; the first one found is preferred. Passing ``backends`` skips
    discovery.
    """

    def __init__(
        self,
        backends: Optional[list[StorageBackend]] = None,
        settings: Optional[EnvironmentSettings] = None,
        http_client: Optional[httpx.Client] = None,
        irys_uploader: Optional[Uploader] = None,
        zerog_uploader: Optional[Uploader] = None,
    ):
        """Initialize storage manager.

        Args:
            backends: Explicit backend list, in preference order
            settings: Environment settings with storage credentials
            http_client: HTTP client shared by discovered backends
            irys_uploader: Bundler upload function for Irys
            zerog_uploader: Upload function for 0G
        """
        self.settings = settings or EnvironmentSettings()
        self.http = http_client or httpx.Client(timeout=30.0)
        self.irys_uploader = irys_uploader
        self.zerog_uploader = zerog_uploader
        self._backends = list(backends) if backends is not None else None

    @property
    def backends(self) -> list[StorageBackend]:
        if self._backends is None:
            self._backends = self._discover()
        return self._backends

    def _discover(self) -> list[StorageBackend]:
        settings = self.settings
        found: list[StorageBackend] = []

        local = LocalIPFSStorage(
            settings.ipfs_api_url, settings.ipfs_gateway_url, http_client=self.http
        )
        if local.is_available():
            found.append(local)
        else:
            logger.debug(f"No IPFS node at {settings.ipfs_api_url}")

        if settings.pinata_jwt or (settings.pinata_api_key and settings.pinata_api_secret):
            found.append(
                PinataStorage(
                    jwt=settings.pinata_jwt,
                    api_key=settings.pinata_api_key,
                    api_secret=settings.pinata_api_secret,
                    gateway=settings.pinata_gateway_url,
                    http_client=self.http,
                )
            )

        if settings.irys_wallet_key:
            found.append(
                IrysStorage(
                    settings.irys_wallet_key,
                    uploader=self.irys_uploader,
                    gateway=settings.irys_gateway_url,
                    http_client=self.http,
                )
            )

        if settings.zerog_testnet_private_key:
            found.append(
                ZeroGStorage(
                    settings.zerog_testnet_private_key,
                    uploader=self.zerog_uploader,
                    indexer_url=settings.zerog_indexer_url,
                    http_client=self.http,
                )
            )

        if found:
            logger.info(f"Storage backends: {', '.join(b.name for b in found)}")
        else:
            logger.warning("No storage backends configured")
        return found

    @property
    def preferred_backend(self) -> Optional[StorageBackend]:
        backends = self.backends
        return backends[0] if backends else None

    def get_available_backends(self) -> list[str]:
        return [backend.name for backend in self.backends]

    def put(
        self,
        data: bytes | str,
        filename: str = "data.bin",
        mime_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Store data on the preferred backend, falling back to the others.

        Raises:
            StorageError: If no backend is configured or every backend fails
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        backends = self.backends
        if not backends:
            raise StorageError("No storage backends available")

        last_error: Optional[Exception] = None
        for backend in backends:
            try:
                return backend.put(data, filename, mime_type)
            except Exception as e:
                last_error = e
                logger.warning(f"Storage backend {backend.name} failed: {e}")
        raise StorageError(f"All storage backends failed: {last_error}")

    def get(self, cid: str) -> bytes:
        """Fetch content by id, trying every backend in order.

        Raises:
            StorageError: If no backend is configured or none has the content
        """
        backends = self.backends
        if not backends:
            raise StorageError("No storage backends available")

        last_error: Optional[Exception] = None
        for backend in backends:
            try:
                return backend.get(cid)
            except Exception as e:
                last_error = e
                logger.warning(f"Storage backend {backend.name} could not retrieve {cid}: {e}")
        raise StorageError(f"All storage backends failed: {last_error}")

    def put_json(self, data: dict[str, Any], filename: str = "data.json") -> StorageResult:
        return self.put(json.dumps(data, indent=2, default=str), filename, "application/json")

    def get_json(self, cid: str) -> dict[str, Any]:
        raw = self.get(cid)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Content {cid} is not valid JSON: {e}")
