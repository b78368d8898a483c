"""
Copies one run's rundex records and selected assets to another location.

Destinations are `file:///path` or `gs://bucket/prefix`. The copy keeps the
same relative layout: `rundex/...` for records and `assets/...` for blobs.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from oss_rebuild.adapters.storage.cloud_asset_store import CloudAssetStore, split_gs_url
from oss_rebuild.adapters.storage.filesystem_asset_store import FilesystemAssetStore
from oss_rebuild.adapters.storage.filesystem_rundex import rebuild_record_path, run_record_path
from oss_rebuild.core.contracts.repositories import AssetStore
from oss_rebuild.core.contracts.rundex import FetchRebuildRequest, RundexReader
from oss_rebuild.core.domain.models import Asset
from oss_rebuild.core.types import AssetType
from oss_rebuild.exceptions import AssetIOError, NotFoundError, UnsupportedError
from oss_rebuild.logging import log_event

DEFAULT_EXPORT_ASSETS = (
    AssetType.REBUILD,
    AssetType.DEBUG_LOGS,
    AssetType.BUILD_INFO,
    AssetType.BUILD_DEFINITION,
    AssetType.DOCKERFILE,
    AssetType.DIFF,
)


@dataclass
class ExportSummary:
    runs: int = 0
    rebuilds: int = 0
    assets: int = 0
    missing_assets: int = 0


class ExportDestination(ABC):
    @abstractmethod
    async def write_record(self, relative_path: str, data: bytes) -> None: ...

    @abstractmethod
    def asset_store(self, run_id: str) -> AssetStore: ...


class FileDestination(ExportDestination):
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def write_record(self, relative_path: str, data: bytes) -> None:
        path = self.root / "rundex" / relative_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, mode="wb") as handle:
                await handle.write(data)
        except OSError as exc:
            raise AssetIOError(f"writing {path}: {exc}") from exc

    def asset_store(self, run_id: str) -> AssetStore:
        return FilesystemAssetStore(self.root / "assets", run_id)


class GCSDestination(ExportDestination):
    def __init__(self, bucket: str, prefix: str, client: httpx.AsyncClient, endpoint: str, token: str = "") -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client
        self.endpoint = endpoint
        self.token = token

    def _join(self, *parts: str) -> str:
        return "/".join(part for part in (self.prefix, *parts) if part)

    async def write_record(self, relative_path: str, data: bytes) -> None:
        store = CloudAssetStore(self.bucket, "", client=self.client, endpoint=self.endpoint, token=self.token)
        await store.upload(self._join("rundex", relative_path), data)

    def asset_store(self, run_id: str) -> AssetStore:
        return CloudAssetStore(
            self.bucket,
            run_id,
            prefix=self._join("assets"),
            client=self.client,
            endpoint=self.endpoint,
            token=self.token,
        )


def open_destination(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    endpoint: str = "https://storage.googleapis.com",
    token: str = "",
) -> ExportDestination:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return FileDestination(Path(unquote(parsed.path)))
    if parsed.scheme == "gs":
        if client is None:
            raise UnsupportedError("gs:// destinations need an HTTP client")
        bucket, prefix = split_gs_url(url)
        return GCSDestination(bucket, prefix, client, endpoint, token)
    raise UnsupportedError(f"unsupported export destination: {url}")


async def export_run(
    run_id: str,
    rundex: RundexReader,
    assets: AssetStore,
    destination: ExportDestination,
    asset_types: Iterable[AssetType] = DEFAULT_EXPORT_ASSETS,
) -> ExportSummary:
    """`assets` is the source store scoped to `run_id`."""
    runs = await rundex.fetch_runs([run_id])
    if not runs:
        raise NotFoundError(f"run not found: {run_id}")
    summary = ExportSummary()
    for run in runs:
        await destination.write_record(run_record_path(run.id), run.model_dump_json().encode("utf-8"))
        summary.runs += 1

    target_store = destination.asset_store(run_id)
    types = list(asset_types)
    for rebuild in await rundex.fetch_rebuilds(FetchRebuildRequest(runs=[run_id])):
        await destination.write_record(rebuild_record_path(rebuild), rebuild.model_dump_json().encode("utf-8"))
        summary.rebuilds += 1
        target = rebuild.target()
        for asset_type in types:
            if asset_type == AssetType.REBUILD and not target.artifact:
                continue
            asset = Asset(target=target, type=asset_type)
            try:
                data = await assets.read_bytes(asset)
            except NotFoundError:
                summary.missing_assets += 1
                continue
            await target_store.write_bytes(asset, data)
            summary.assets += 1
    log_event(
        "run_exported",
        run_id=run_id,
        runs=summary.runs,
        rebuilds=summary.rebuilds,
        assets=summary.assets,
        missing_assets=summary.missing_assets,
    )
    return summary
