"""Storage backends: local IPFS node, Pinata, Irys and 0G."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

from ..core.errors import StorageError
from ..core.models import StorageResult

logger = logging.getLogger(__name__)

PINATA_API_URL = "https://api.pinata.cloud"

# (data, filename, mime_type) -> content id
Uploader = Callable[[bytes, str, str], str]


class StorageBackend(ABC):
    """Content-addressed blob store."""

    name: str = "backend"

    def __init__(self, http_client: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.http = http_client or httpx.Client(timeout=timeout)

    @abstractmethod
    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        """Store data and return where it lives."""

    @abstractmethod
    def get(self, cid: str) -> bytes:
        """Fetch stored data by content id."""

    @abstractmethod
    def gateway_url(self, cid: str) -> str:
        """Public URL the content can be fetched from."""

    def pin(self, cid: str) -> bool:
        return False

    def unpin(self, cid: str) -> bool:
        return False

    def is_available(self) -> bool:
        return True

    def _fetch(self, url: str, cid: str, **kwargs) -> bytes:
        try:
            response = self.http.get(url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to retrieve {cid} from {self.name}: {e}")
        return response.content


class LocalIPFSStorage(StorageBackend):
    """IPFS node reached over its HTTP RPC API."""

    name = "local-ipfs"

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        gateway: str = "http://127.0.0.1:8080/ipfs",
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__(http_client)
        self.api_url = api_url.rstrip("/")
        self.gateway = gateway.rstrip("/")

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        try:
            response = self.http.post(
                f"{self.api_url}/api/v0/add",
                params={"pin": "true"},
                files={"file": (filename, data, mime_type)},
            )
            response.raise_for_status()
            # add streams one JSON object per line; the last one is the root
            result = json.loads(response.text.strip().splitlines()[-1])
            cid = result["Hash"]
        except (httpx.HTTPError, ValueError, IndexError, KeyError) as e:
            raise StorageError(f"Failed to add {filename} to IPFS: {e}")

        logger.info(f"Stored {filename} on local IPFS: {cid}")
        return StorageResult(
            cid=cid, url=f"ipfs://{cid}", size=int(result.get("Size", len(data))), provider=self.name
        )

    def get(self, cid: str) -> bytes:
        try:
            response = self.http.post(f"{self.api_url}/api/v0/cat", params={"arg": cid})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to retrieve {cid} from {self.name}: {e}")
        return response.content

    def gateway_url(self, cid: str) -> str:
        return f"{self.gateway}/{cid}"

    def pin(self, cid: str) -> bool:
        try:
            response = self.http.post(f"{self.api_url}/api/v0/pin/add", params={"arg": cid})
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to pin {cid}: {e}")
        return response.status_code == 200

    def unpin(self, cid: str) -> bool:
        try:
            response = self.http.post(f"{self.api_url}/api/v0/pin/rm", params={"arg": cid})
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to unpin {cid}: {e}")
        return response.status_code == 200

    def is_available(self) -> bool:
        try:
            response = self.http.post(f"{self.api_url}/api/v0/version", timeout=2.0)
        except httpx.HTTPError:
            return False
        return response.status_code == 200


class PinataStorage(StorageBackend):
    """Pinata pinning service (JWT, or API key and secret)."""

    name = "pinata"

    def __init__(
        self,
        jwt: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        gateway: str = "https://gateway.pinata.cloud/ipfs",
        api_url: str = PINATA_API_URL,
        http_client: Optional[httpx.Client] = None,
    ):
        if not jwt and not (api_key and api_secret):
            raise StorageError("Pinata needs a JWT or an API key and secret")
        super().__init__(http_client)
        self.api_url = api_url.rstrip("/")
        self.gateway = gateway.rstrip("/")
        if jwt:
            self._headers = {"Authorization": f"Bearer {jwt}"}
        else:
            self._headers = {"pinata_api_key": api_key, "pinata_secret_api_key": api_secret}

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        try:
            response = self.http.post(
                f"{self.api_url}/pinning/pinFileToIPFS",
                files={"file": (filename, data, mime_type)},
                data={"pinataMetadata": json.dumps({"name": filename})},
                headers=self._headers,
            )
            response.raise_for_status()
            result = response.json()
            cid = result["IpfsHash"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise StorageError(f"Failed to pin {filename} to Pinata: {e}")

        logger.info(f"Stored {filename} on Pinata: {cid}")
        return StorageResult(
            cid=cid,
            url=f"ipfs://{cid}",
            size=int(result.get("PinSize", len(data))),
            provider=self.name,
        )

    def get(self, cid: str) -> bytes:
        return self._fetch(self.gateway_url(cid), cid)

    def gateway_url(self, cid: str) -> str:
        return f"{self.gateway}/{cid}"

    def pin(self, cid: str) -> bool:
        try:
            response = self.http.post(
                f"{self.api_url}/pinning/pinByHash",
                json={"hashToPin": cid},
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to pin {cid}: {e}")
        return response.status_code == 200

    def unpin(self, cid: str) -> bool:
        try:
            response = self.http.delete(
                f"{self.api_url}/pinning/unpin/{cid}", headers=self._headers
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to unpin {cid}: {e}")
        return response.status_code == 200

    def is_available(self) -> bool:
        try:
            response = self.http.get(
                f"{self.api_url}/data/testAuthentication", headers=self._headers, timeout=5.0
            )
        except httpx.HTTPError:
            return False
        return response.status_code == 200


class IrysStorage(StorageBackend):
    """Irys (Arweave bundler) storage.

    Data items must be signed by a bundler client, so uploads go through an
    injected ``uploader``. Retrieval uses the public gateway.
    """

    name = "irys"

    def __init__(
        self,
        wallet_key: str,
        uploader: Optional[Uploader] = None,
        gateway: str = "https://gateway.irys.xyz",
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__(http_client)
        self.wallet_key = wallet_key
        self.uploader = uploader
        self.gateway = gateway.rstrip("/")

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        if self.uploader is None:
            raise StorageError("Irys uploads need a bundler uploader")
        try:
            tx_id = self.uploader(data, filename, mime_type)
        except Exception as e:
            raise StorageError(f"Failed to upload {filename} to Irys: {e}")
        logger.info(f"Stored {filename} on Irys: {tx_id}")
        return StorageResult(cid=tx_id, url=f"ar://{tx_id}", size=len(data), provider=self.name)

    def get(self, cid: str) -> bytes:
        return self._fetch(self.gateway_url(cid), cid)

    def gateway_url(self, cid: str) -> str:
        return f"{self.gateway}/{cid}"


class ZeroGStorage(StorageBackend):
    """0G storage network.

    Uploads need the 0G client to build the merkle tree and submit the
    storage transaction, so they go through an injected ``uploader``.
    Retrieval uses the indexer.
    """

    name = "0g"

    def __init__(
        self,
        private_key: str,
        uploader: Optional[Uploader] = None,
        indexer_url: str = "https://indexer-storage-testnet-turbo.0g.ai",
        http_client: Optional[httpx.Client] = None,
    ):
        super().__init__(http_client)
        self.private_key = private_key
        self.uploader = uploader
        self.indexer_url = indexer_url.rstrip("/")

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        if self.uploader is None:
            raise StorageError("0G uploads need a storage client uploader")
        try:
            root_hash = self.uploader(data, filename, mime_type)
        except Exception as e:
            raise StorageError(f"Failed to upload {filename} to 0G: {e}")
        logger.info(f"Stored {filename} on 0G: {root_hash}")
        return StorageResult(
            cid=root_hash, url=self.gateway_url(root_hash), size=len(data), provider=self.name
        )

    def get(self, cid: str) -> bytes:
        return self._fetch(f"{self.indexer_url}/file", cid, params={"root": cid})

    def gateway_url(self, cid: str) -> str:
        return f"{self.indexer_url}/file?root={cid}"
