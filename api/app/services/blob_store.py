"""
Blob storage for uploaded statement files.

Objects are addressed by URL.  `LocalBlobStore` keeps files under
settings.upload_dir and hands out `{blob_base_url}/{path}` URLs; http(s) URLs
that point elsewhere (files hosted by an external store) can still be fetched
read-only.  Writes always create a new object and deletes remove exactly the
object named, nothing is rewritten in place.
"""
import asyncio
import logging
from pathlib import Path
from typing import Protocol

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def put(self, path: str, content: bytes) -> str: ...

    async def delete(self, url: str) -> None: ...

    async def fetch(self, url: str) -> bytes: ...


class BlobNotFound(Exception):
    pass


class LocalBlobStore:
    def __init__(self, root: str | Path, base_url: str, http_timeout: float = 30.0):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.http_timeout = http_timeout

    def _path_for(self, url: str) -> Path:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise BlobNotFound(url)
        relative = url[len(prefix):]
        path = (self.root / relative).resolve()
        # Refuse URLs that escape the upload root
        if self.root.resolve() not in path.parents:
            raise BlobNotFound(url)
        return path

    async def put(self, path: str, content: bytes) -> str:
        url = f"{self.base_url}/{path}"
        file_path = self._path_for(url)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(file_path.write_bytes, content)
        return url

    async def delete(self, url: str) -> None:
        await asyncio.to_thread(self._path_for(url).unlink, missing_ok=True)

    async def fetch(self, url: str) -> bytes:
        if url.startswith(("http://", "https://")) and not url.startswith(self.base_url):
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content

        file_path = self._path_for(url)
        if not file_path.exists():
            raise BlobNotFound(url)
        # In a worker thread so a slow disk read can be timed out like a remote fetch
        return await asyncio.to_thread(file_path.read_bytes)


_store: LocalBlobStore | None = None


def get_blob_store() -> BlobStore:
    global _store
    if _store is None:
        _store = LocalBlobStore(
            settings.upload_dir,
            settings.blob_base_url,
            http_timeout=settings.bundle_fetch_timeout_seconds,
        )
    return _store
