"""Object storage for original receipt files."""

from typing import Protocol
from urllib.parse import quote

import httpx

from tabsplit.domain.errors import StorageFailure
from tabsplit.domain.receipt import AuthContext
from tabsplit.runtime.logging import get_logger
from tabsplit.runtime.paths import DataPaths, get_paths
from tabsplit.runtime.settings import Settings

logger = get_logger(__name__)


class ObjectStore(Protocol):
    async def put(self, name: str, data: bytes, content_type: str) -> str:
        """Write ``data`` under ``name`` and return its public URL."""
        ...


class SupabaseObjectStore:
    """Bucket in the hosted storage service, written with the user's token."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str,
        bucket: str = "receipts",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.bucket = bucket
        self.timeout = timeout
        self._transport = transport

    def public_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(name)}"

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(name)}"
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": content_type,
            "x-upsert": "false",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, content=data, headers=headers)
        except httpx.RequestError as e:
            logger.error("Failed to reach object storage: %s", e)
            raise StorageFailure(f"Failed to reach object storage: {e}") from e

        if not response.is_success:
            logger.error("Object storage rejected %s: %s", name, response.status_code)
            raise StorageFailure(f"Object storage error: {response.status_code}")

        logger.info("Uploaded %s (%d bytes) to bucket %s", name, len(data), self.bucket)
        return self.public_url(name)


class LocalObjectStore:
    """Directory-backed store used when there is no hosted storage service."""

    def __init__(self, paths: DataPaths | None = None) -> None:
        self.paths = paths or get_paths()

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        self.paths.ensure_directories()
        target = self.paths.images / name
        if target.exists():
            raise StorageFailure(f"Object already exists: {name}")
        try:
            target.write_bytes(data)
        except OSError as e:
            raise StorageFailure(f"Failed to write {target}: {e}") from e

        logger.info("Saved receipt original to %s", target)
        return target.as_uri()


def select_object_store(
    settings: Settings,
    auth: AuthContext | None,
    paths: DataPaths | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ObjectStore | None:
    """Object store for an authenticated session; None means skip the upload."""
    if auth is None:
        return None
    if settings.supabase_url and settings.supabase_anon_key:
        return SupabaseObjectStore(
            settings.supabase_url,
            settings.supabase_anon_key,
            auth.access_token,
            bucket=settings.storage_bucket,
            transport=transport,
        )
    return LocalObjectStore(paths)
