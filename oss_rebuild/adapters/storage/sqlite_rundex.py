"""
Rundex backed by a local SQLite database via aiosqlite.
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import aiosqlite

from oss_rebuild.core.contracts.rundex import FetchRebuildRequest, Rebuild, Run, Rundex, filter_rebuilds
from oss_rebuild.time_utils import to_epoch_millis


class SQLiteRundex(Rundex):
    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._initialized = False
        self._lock = asyncio.Lock()

    async def _ensure_initialized(self, conn: aiosqlite.Connection):
        if self._initialized:
            return
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                benchmark_hash TEXT,
                created INTEGER,
                payload TEXT
            )
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS rebuilds (
                run_id TEXT,
                target_id TEXT,
                message TEXT,
                created INTEGER,
                payload TEXT,
                PRIMARY KEY (run_id, target_id)
            )
        """)
        await conn.commit()
        self._initialized = True

    async def write_run(self, run: Run) -> None:
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await self._ensure_initialized(conn)
                await conn.execute(
                    "INSERT OR REPLACE INTO runs (id, benchmark_hash, created, payload) VALUES (?, ?, ?, ?)",
                    (run.id, run.benchmark_hash, to_epoch_millis(run.created), run.model_dump_json()),
                )
                await conn.commit()

    async def write_rebuild(self, rebuild: Rebuild) -> None:
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await self._ensure_initialized(conn)
                await conn.execute(
                    "INSERT OR REPLACE INTO rebuilds (run_id, target_id, message, created, payload) VALUES (?, ?, ?, ?, ?)",
                    (
                        rebuild.run_id,
                        rebuild.id(),
                        rebuild.message,
                        to_epoch_millis(rebuild.created),
                        rebuild.model_dump_json(),
                    ),
                )
                await conn.commit()

    async def fetch_runs(self, ids: Optional[List[str]] = None, benchmark_hash: str = "") -> List[Run]:
        query = "SELECT payload FROM runs"
        clauses: List[str] = []
        params: List[object] = []
        if ids:
            clauses.append(f"id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if benchmark_hash:
            clauses.append("benchmark_hash = ?")
            params.append(benchmark_hash)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created"
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await self._ensure_initialized(conn)
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
        return [Run.model_validate(json.loads(row[0])) for row in rows]

    async def fetch_rebuilds(self, req: FetchRebuildRequest) -> List[Rebuild]:
        query = "SELECT payload FROM rebuilds"
        params: List[object] = []
        if req.runs:
            query += f" WHERE run_id IN ({', '.join('?' for _ in req.runs)})"
            params.extend(req.runs)
        query += " ORDER BY created"
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await self._ensure_initialized(conn)
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
        return filter_rebuilds((Rebuild.model_validate(json.loads(row[0])) for row in rows), req)
