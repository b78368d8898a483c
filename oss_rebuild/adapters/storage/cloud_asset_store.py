"""
Asset store over a Cloud Storage bucket, through the JSON API.

Objects live at `gs://<bucket>/<prefix>/<run_id>/<encoded_target>/<filename>`,
mirroring the filesystem layout.
"""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

import httpx

from oss_rebuild.adapters.storage.keys import asset_key
from oss_rebuild.core.contracts.repositories import AssetReader, AssetStore, AssetWriter
from oss_rebuild.core.domain.models import Asset
from oss_rebuild.exceptions import AssetIOError, NotFoundError
from oss_rebuild.infrastructure.keyed_locks import KeyedLocks

logger = logging.getLogger("oss_rebuild.storage")


def split_gs_url(url: str) -> tuple[str, str]:
    """`gs://bucket/some/prefix` -> ("bucket", "some/prefix")."""
    if not url.startswith("gs://"):
        raise ValueError(f"not a gs:// url: {url}")
    bucket, _, prefix = url[len("gs://"):].partition("/")
    if not bucket:
        raise ValueError(f"missing bucket in {url}")
    return bucket, prefix.strip("/")


class CloudAssetStore(AssetStore):
    def __init__(
        self,
        bucket: str,
        run_id: str,
        *,
        prefix: str = "",
        client: httpx.AsyncClient,
        endpoint: str = "https://storage.googleapis.com",
        token: str = "",
    ) -> None:
        self.bucket = bucket
        self.run_id = run_id
        self.prefix = prefix.strip("/")
        self.client = client
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self._locks = KeyedLocks()

    def object_name(self, asset: Asset) -> str:
        key = asset_key(self.run_id, asset)
        return f"{self.prefix}/{key}" if self.prefix else key

    def url(self, asset: Asset) -> str:
        return f"gs://{self.bucket}/{self.object_name(asset)}"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def writer(self, asset: Asset) -> AssetWriter:
        return _CloudWriter(self, asset)

    def reader(self, asset: Asset) -> AssetReader:
        return _CloudReader(self, asset)

    async def upload(self, name: str, data: bytes) -> None:
        url = f"{self.endpoint}/upload/storage/v1/b/{self.bucket}/o"
        async with self._locks.hold(name):
            try:
                response = await self.client.post(
                    url,
                    params={"uploadType": "media", "name": name},
                    content=data,
                    headers={**self._headers(), "Content-Type": "application/octet-stream"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.warning("upload of gs://%s/%s failed: %s", self.bucket, name, exc)
                raise AssetIOError(f"uploading gs://{self.bucket}/{name}: HTTP {exc.response.status_code}") from exc
            except httpx.RequestError as exc:
                raise AssetIOError(f"uploading gs://{self.bucket}/{name}: {exc}") from exc

    async def download(self, name: str) -> bytes:
        url = f"{self.endpoint}/storage/v1/b/{self.bucket}/o/{quote(name, safe='')}"
        try:
            response = await self.client.get(url, params={"alt": "media"}, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise NotFoundError(f"asset not found: gs://{self.bucket}/{name}") from exc
            raise AssetIOError(f"downloading gs://{self.bucket}/{name}: HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise AssetIOError(f"downloading gs://{self.bucket}/{name}: {exc}") from exc
        return response.content


class _CloudWriter(AssetWriter):
    def __init__(self, store: CloudAssetStore, asset: Asset) -> None:
        self.store = store
        self.asset = asset
        self._chunks: List[bytes] = []

    async def __aenter__(self) -> "_CloudWriter":
        return self

    async def write(self, data: bytes) -> None:
        self._chunks.append(bytes(data))

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.store.upload(self.store.object_name(self.asset), b"".join(self._chunks))


class _CloudReader(AssetReader):
    def __init__(self, store: CloudAssetStore, asset: Asset) -> None:
        self.store = store
        self.asset = asset
        self._data: Optional[bytes] = None

    async def __aenter__(self) -> "_CloudReader":
        self._data = await self.store.download(self.store.object_name(self.asset))
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._data = None

    async def read(self) -> bytes:
        return self._data or b""
