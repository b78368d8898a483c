import asyncio

import pytest

from oss_rebuild.application.worker_pool import WorkerPool
from oss_rebuild.core.domain.models import Target, Verdict
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import InternalError
from oss_rebuild.time_utils import now_utc


def _targets(count):
    return [Target(ecosystem=Ecosystem.NPM, package=f"pkg-{i}", version="1.0.0") for i in range(count)]


def _verdict(target):
    return Verdict(target=target, success=True, created=now_utc())


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    active = 0
    peak = 0

    async def run(target):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return _verdict(target)

    verdicts = await WorkerPool(run, max_concurrency=3).run_all(_targets(10))
    assert len(verdicts) == 10
    assert {v.target.package for v in verdicts} == {f"pkg-{i}" for i in range(10)}
    assert peak == 3


@pytest.mark.asyncio
async def test_verdicts_stream_in_completion_order():
    delays = {"pkg-0": 0.05, "pkg-1": 0.0}

    async def run(target):
        await asyncio.sleep(delays[target.package])
        return _verdict(target)

    seen = [v.target.package async for v in WorkerPool(run, max_concurrency=2).process(_targets(2))]
    assert seen == ["pkg-1", "pkg-0"]


@pytest.mark.asyncio
async def test_single_worker_preserves_input_order():
    async def run(target):
        return _verdict(target)

    verdicts = await WorkerPool(run, max_concurrency=1).run_all(_targets(4))
    assert [v.target.package for v in verdicts] == ["pkg-0", "pkg-1", "pkg-2", "pkg-3"]


@pytest.mark.asyncio
async def test_internal_error_stops_the_pool():
    started = []

    async def run(target):
        started.append(target.package)
        if target.package == "pkg-1":
            raise InternalError("invariant violated")
        return _verdict(target)

    with pytest.raises(InternalError):
        await WorkerPool(run, max_concurrency=1).run_all(_targets(20))
    assert len(started) < 20


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(lambda target: None, max_concurrency=0)


@pytest.mark.asyncio
async def test_empty_input():
    async def run(target):
        raise AssertionError("no targets to run")

    assert await WorkerPool(run, max_concurrency=4).run_all([]) == []
