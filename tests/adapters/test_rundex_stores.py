from datetime import datetime, timedelta, timezone

import pytest

from oss_rebuild.adapters.storage.filesystem_rundex import FilesystemRundex, rebuild_record_path
from oss_rebuild.adapters.storage.sqlite_rundex import SQLiteRundex
from oss_rebuild.core.contracts.rundex import FetchRebuildRequest, Rebuild, Run
from oss_rebuild.core.types import Ecosystem, RunType
from oss_rebuild.exceptions import MalformedError

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _rebuild(run_id, package="@scope/pkg", message="", minutes=0):
    return Rebuild(
        ecosystem=Ecosystem.NPM,
        package=package,
        version="1.0.0",
        artifact="scope-pkg-1.0.0.tgz",
        success=not message,
        message=message,
        run_id=run_id,
        created=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture(params=["fs", "sqlite"])
def rundex(request, tmp_path):
    if request.param == "fs":
        return FilesystemRundex(tmp_path / "rundex")
    return SQLiteRundex(tmp_path / "rundex.db")


@pytest.mark.asyncio
async def test_runs_roundtrip_and_filter_by_hash(rundex):
    await rundex.write_run(Run(id="run-b", benchmark_hash="h2", type=RunType.ATTEST, created=T0 + timedelta(hours=1)))
    await rundex.write_run(Run(id="run-a", benchmark_hash="h1", type=RunType.SMOKETEST, created=T0))
    runs = await rundex.fetch_runs()
    assert [run.id for run in runs] == ["run-a", "run-b"]
    assert runs[0].created == T0
    assert [run.id for run in await rundex.fetch_runs(benchmark_hash="h2")] == ["run-b"]
    assert [run.id for run in await rundex.fetch_runs(["run-a", "missing"])] == ["run-a"]


@pytest.mark.asyncio
async def test_rebuild_writes_are_idempotent(rundex):
    await rundex.write_rebuild(_rebuild("run-1", message="build: failed"))
    await rundex.write_rebuild(_rebuild("run-1"))
    rebuilds = await rundex.fetch_rebuilds(FetchRebuildRequest(runs=["run-1"]))
    assert len(rebuilds) == 1
    assert rebuilds[0].success is True
    assert rebuilds[0].package == "@scope/pkg"


@pytest.mark.asyncio
async def test_latest_across_runs(rundex):
    await rundex.write_rebuild(_rebuild("run-1", message="inference: no git ref", minutes=0))
    await rundex.write_rebuild(_rebuild("run-2", minutes=10))
    await rundex.write_rebuild(_rebuild("run-2", package="other", message="build: boom", minutes=10))
    everything = await rundex.fetch_rebuilds(FetchRebuildRequest())
    assert len(everything) == 3
    latest = await rundex.fetch_rebuilds(FetchRebuildRequest(latest_per_package=True))
    by_package = {rebuild.package: rebuild for rebuild in latest}
    assert by_package["@scope/pkg"].run_id == "run-2"
    failed = await rundex.fetch_rebuilds(FetchRebuildRequest(prefix="build"))
    assert [rebuild.package for rebuild in failed] == ["other"]


def test_rebuild_record_path_flattens_package_names():
    path = rebuild_record_path(_rebuild("run-1"))
    assert path == "runs_metadata/run-1/npm/@scope!pkg/1.0.0/scope-pkg-1.0.0.tgz/firestore.json"


@pytest.mark.asyncio
async def test_filesystem_rundex_rejects_corrupt_records(tmp_path):
    rundex = FilesystemRundex(tmp_path)
    await rundex.write_rebuild(_rebuild("run-1"))
    rundex.rebuild_path(_rebuild("run-1")).write_text('{"package": 1}', encoding="utf-8")
    with pytest.raises(MalformedError):
        await rundex.fetch_rebuilds(FetchRebuildRequest())
