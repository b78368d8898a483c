"""
Rundex as JSON documents on disk.

    rundex/runs/<run_id>.json
    rundex/runs_metadata/<run_id>/<ecosystem>/<package>/<version>/<artifact>/firestore.json

Package names are stored with `/` replaced by `!` so each target maps to a
fixed depth. Timestamps are millisecond epochs.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import aiofiles
from pydantic import ValidationError

from oss_rebuild.core.contracts.rundex import FetchRebuildRequest, Rebuild, Run, Rundex, filter_rebuilds
from oss_rebuild.exceptions import AssetIOError, MalformedError
from oss_rebuild.logging import log_event

RECORD_FILENAME = "firestore.json"


def _segment(value: str) -> str:
    return value.replace("/", "!") or "_"


def run_record_path(run_id: str) -> str:
    """Path of a run record relative to the rundex root."""
    return f"runs/{run_id}.json"


def rebuild_record_path(rebuild: Rebuild) -> str:
    """Path of a rebuild record relative to the rundex root."""
    parts = [
        "runs_metadata",
        rebuild.run_id,
        rebuild.ecosystem.value,
        _segment(rebuild.package),
        _segment(rebuild.version),
        _segment(rebuild.artifact),
        RECORD_FILENAME,
    ]
    return "/".join(parts)


class FilesystemRundex(Rundex):
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lock = asyncio.Lock()

    @property
    def runs_dir(self) -> Path:
        return self.root / "runs"

    @property
    def metadata_dir(self) -> Path:
        return self.root / "runs_metadata"

    def run_path(self, run_id: str) -> Path:
        return self.root / run_record_path(run_id)

    def rebuild_path(self, rebuild: Rebuild) -> Path:
        return self.root / rebuild_record_path(rebuild)

    async def _write(self, path: Path, payload: str) -> None:
        async with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(path, mode="w", encoding="utf-8") as handle:
                    await handle.write(payload)
            except OSError as exc:
                raise AssetIOError(f"writing {path}: {exc}") from exc

    async def _read(self, path: Path) -> str:
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as handle:
                return await handle.read()
        except OSError as exc:
            raise AssetIOError(f"reading {path}: {exc}") from exc

    async def write_run(self, run: Run) -> None:
        await self._write(self.run_path(run.id), run.model_dump_json())

    async def write_rebuild(self, rebuild: Rebuild) -> None:
        await self._write(self.rebuild_path(rebuild), rebuild.model_dump_json())
        log_event("rundex_rebuild_written", run_id=rebuild.run_id, target=rebuild.id(), success=rebuild.success)

    async def fetch_runs(self, ids: Optional[List[str]] = None, benchmark_hash: str = "") -> List[Run]:
        if ids:
            paths = [self.run_path(run_id) for run_id in ids]
        else:
            paths = sorted(await asyncio.to_thread(lambda: list(self.runs_dir.glob("*.json"))))
        runs: List[Run] = []
        for path in paths:
            if not path.exists():
                continue
            try:
                run = Run.model_validate_json(await self._read(path))
            except ValidationError as exc:
                raise MalformedError(f"invalid run record {path}: {exc}") from exc
            if benchmark_hash and run.benchmark_hash != benchmark_hash:
                continue
            runs.append(run)
        runs.sort(key=lambda run: run.created)
        return runs

    async def fetch_rebuilds(self, req: FetchRebuildRequest) -> List[Rebuild]:
        roots = [self.metadata_dir / run_id for run_id in req.runs] if req.runs else [self.metadata_dir]
        paths: List[Path] = []
        for root in roots:
            if root.exists():
                paths.extend(await asyncio.to_thread(lambda r=root: sorted(r.rglob(RECORD_FILENAME))))
        rebuilds: List[Rebuild] = []
        for path in paths:
            try:
                rebuilds.append(Rebuild.model_validate_json(await self._read(path)))
            except ValidationError as exc:
                raise MalformedError(f"invalid rebuild record {path}: {exc}") from exc
        return filter_rebuilds(rebuilds, req)
