from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from oss_rebuild.core.domain.models import Target, Timings, Verdict
from oss_rebuild.core.types import Ecosystem, RunType
from oss_rebuild.time_utils import from_epoch_millis, to_epoch_millis


class Run(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    benchmark_name: str = ""
    benchmark_hash: str = ""
    type: RunType
    created: datetime

    @field_serializer("created")
    def _ser_created(self, value: datetime) -> int:
        return to_epoch_millis(value)

    @field_validator("created", mode="before")
    @classmethod
    def _parse_created(cls, value):
        if isinstance(value, (int, float)):
            return from_epoch_millis(int(value))
        return value


class Rebuild(BaseModel):
    """Persisted rebuild attempt: a verdict plus executor identification."""

    model_config = ConfigDict(extra="ignore")

    ecosystem: Ecosystem
    package: str
    version: str
    artifact: str = ""
    success: bool
    message: str = ""
    strategy: Optional[dict] = None
    timings: Timings = Field(default_factory=Timings)
    executor_version: str = ""
    run_id: str
    created: datetime

    @field_serializer("created")
    def _ser_created(self, value: datetime) -> int:
        return to_epoch_millis(value)

    @field_validator("created", mode="before")
    @classmethod
    def _parse_created(cls, value):
        if isinstance(value, (int, float)):
            return from_epoch_millis(int(value))
        return value

    def target(self) -> Target:
        return Target(ecosystem=self.ecosystem, package=self.package, version=self.version, artifact=self.artifact)

    def id(self) -> str:
        return self.target().id()

    @classmethod
    def from_verdict(cls, verdict: Verdict, executor: str, run_id: str, created: datetime) -> "Rebuild":
        return cls(
            ecosystem=verdict.target.ecosystem,
            package=verdict.target.package,
            version=verdict.target.version,
            artifact=verdict.target.artifact,
            success=verdict.message == "",
            message=verdict.message,
            strategy=verdict.strategy,
            timings=verdict.timings,
            executor_version=executor,
            run_id=run_id,
            created=created,
        )


class FetchRebuildRequest(BaseModel):
    runs: List[str] = Field(default_factory=list)
    prefix: str = ""
    pattern: str = ""
    clean: bool = False
    latest_per_package: bool = False
    # ecosystem/package -> versions, when restricting to a benchmark
    bench: Optional[Dict[str, List[str]]] = None


_CLEAN_RULES = (
    ("mismatched version ", "wrong package version in manifest", "prefix"),
    ("mismatched name ", "wrong package name in manifest", "prefix"),
    ("package.json file not found", "manifest file not found", "prefix"),
    ("Cargo.toml file not found", "manifest file not found", "prefix"),
    ("clone failed", "repo: clone failed", "contains"),
    ("repo invalid or private", "repo invalid or private", "contains"),
    ("npm is known not to run on Node.js", "npm install: incompatible Node version", "contains"),
    ("failed to extract upstream WHEEL", "failed to extract upstream WHEEL", "contains"),
)


def clean_verdict(message: str) -> str:
    """Collapses verbose failure messages into short buckets for display."""
    body = message
    stage = ""
    head, sep, rest = message.partition(": ")
    if sep and head in {"inference", "fetching_upstream", "build"}:
        stage, body = head, rest
    for needle, replacement, mode in _CLEAN_RULES:
        matched = body.startswith(needle) if mode == "prefix" else needle in body
        if matched:
            body = replacement
            break
    else:
        if body.startswith("unknown npm pack failure:"):
            found = re.search(r"(\S+): not found", body)
            body = f"missing build tool: {found.group(1)}" if found else "unknown pack failure"
    return f"{stage}: {body}" if stage else body


def filter_rebuilds(rebuilds: Iterable[Rebuild], req: FetchRebuildRequest) -> List[Rebuild]:
    pattern = re.compile(req.pattern) if req.pattern else None
    selected: List[Rebuild] = []
    for rebuild in rebuilds:
        if req.runs and rebuild.run_id not in req.runs:
            continue
        if req.bench is not None:
            key = f"{rebuild.ecosystem.value}/{rebuild.package}"
            if rebuild.version not in req.bench.get(key, []):
                continue
        if req.prefix and not rebuild.message.startswith(req.prefix):
            continue
        if pattern is not None and not pattern.search(rebuild.message):
            continue
        if req.clean:
            rebuild = rebuild.model_copy(update={"message": clean_verdict(rebuild.message)})
        rebuild = rebuild.model_copy(update={"message": rebuild.message.replace("\n", "\\n")})
        selected.append(rebuild)
    if not req.latest_per_package:
        return selected
    latest: Dict[str, Rebuild] = {}
    for rebuild in selected:
        existing = latest.get(rebuild.id())
        if existing is not None and existing.created > rebuild.created:
            continue
        latest[rebuild.id()] = rebuild
    return list(latest.values())


class RundexReader(ABC):
    """Port for reading runs and rebuild attempts."""

    @abstractmethod
    async def fetch_runs(self, ids: Optional[List[str]] = None, benchmark_hash: str = "") -> List[Run]: ...

    @abstractmethod
    async def fetch_rebuilds(self, req: FetchRebuildRequest) -> List[Rebuild]: ...


class RundexWriter(ABC):
    """Port for recording runs and rebuild attempts. Writes are idempotent on (run_id, target)."""

    @abstractmethod
    async def write_run(self, run: Run) -> None: ...

    @abstractmethod
    async def write_rebuild(self, rebuild: Rebuild) -> None: ...


class Rundex(RundexReader, RundexWriter):
    pass
