"""HTTP object store client for a blob proxy service."""

import logging

import httpx

from chatsync.exceptions import ObjectNotFoundError, ObjectStoreError
from chatsync.sync.object_store import JSON_CONTENT_TYPE, ObjectStore

logger = logging.getLogger(__name__)


class HttpObjectStore(ObjectStore):
    """Client for a blob proxy exposing ``/blob/{namespace}/{key}``.

    GET reads, PUT writes, DELETE removes; 404 means the object is missing.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        namespace: str = "default",
        timeout: float = 30,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Blob proxy service URL
            token: Authentication token
            namespace: Namespace identifier on the proxy
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace.strip("/")
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            timeout=timeout,
            verify=verify_ssl,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    def _url(self, key: str) -> str:
        return f"{self.base_url}/blob/{self.namespace}/{key.lstrip('/')}"

    async def get(self, key: str) -> bytes:
        try:
            response = await self.client.get(self._url(key))
            if response.status_code == 404:
                raise ObjectNotFoundError(f"Object not found: {key}")
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise ObjectStoreError(f"Failed to read object {key}: {e}") from e

    async def put(
        self, key: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        try:
            response = await self.client.put(
                self._url(key),
                content=data,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ObjectStoreError(f"Failed to write object {key}: {e}") from e
        logger.debug(f"Wrote {key} ({len(data)} bytes, status {response.status_code})")

    async def delete(self, key: str) -> None:
        try:
            response = await self.client.delete(self._url(key))
            if response.status_code == 404:
                return
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ObjectStoreError(f"Failed to delete object {key}: {e}") from e

    async def close(self) -> None:
        """Close the client."""
        await self.client.aclose()
