"""
Asset store over the local filesystem.

Layout: `<root>/<run_id>/<encoded_target>/<filename>`, where `root` is
normally `<durable root>/assets`. Writers buffer in memory and replace the
destination file on close, so a failed write never leaves a partial asset.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import aiofiles

from oss_rebuild.adapters.storage.keys import asset_key
from oss_rebuild.core.contracts.repositories import AssetReader, AssetStore, AssetWriter
from oss_rebuild.core.domain.models import Asset
from oss_rebuild.exceptions import AssetIOError, NotFoundError
from oss_rebuild.infrastructure.keyed_locks import KeyedLocks


class FilesystemAssetStore(AssetStore):
    def __init__(self, root: str | Path, run_id: str) -> None:
        self.root = Path(root)
        self.run_id = run_id
        self._locks = KeyedLocks()

    def path(self, asset: Asset) -> Path:
        return self.root / asset_key(self.run_id, asset)

    def url(self, asset: Asset) -> str:
        return self.path(asset).resolve().as_uri()

    def writer(self, asset: Asset) -> AssetWriter:
        return _FileWriter(self, asset)

    def reader(self, asset: Asset) -> AssetReader:
        return _FileReader(self.path(asset))


class _FileWriter(AssetWriter):
    def __init__(self, store: FilesystemAssetStore, asset: Asset) -> None:
        self.store = store
        self.asset = asset
        self._chunks: List[bytes] = []

    async def __aenter__(self) -> "_FileWriter":
        return self

    async def write(self, data: bytes) -> None:
        self._chunks.append(bytes(data))

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            return
        path = self.store.path(self.asset)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{id(self)}.tmp")
        async with self.store._locks.hold(str(path)):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(tmp, mode="wb") as handle:
                    await handle.write(b"".join(self._chunks))
                os.replace(tmp, path)
            except OSError as exc:
                if tmp.exists():
                    tmp.unlink()
                raise AssetIOError(f"writing {path}: {exc}") from exc


class _FileReader(AssetReader):
    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: Optional[bytes] = None

    async def __aenter__(self) -> "_FileReader":
        if not self.path.exists():
            raise NotFoundError(f"asset not found: {self.path}")
        try:
            async with aiofiles.open(self.path, mode="rb") as handle:
                self._data = await handle.read()
        except OSError as exc:
            raise AssetIOError(f"reading {self.path}: {exc}") from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._data = None

    async def read(self) -> bytes:
        return self._data or b""
