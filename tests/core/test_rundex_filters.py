from datetime import datetime, timedelta, timezone

from oss_rebuild.core.contracts.rundex import FetchRebuildRequest, Rebuild, Run, clean_verdict, filter_rebuilds
from oss_rebuild.core.domain.models import Target, Verdict
from oss_rebuild.core.types import Ecosystem, RunType

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _rebuild(package="left-pad", version="1.0.0", message="", run_id="run-1", minutes=0):
    return Rebuild(
        ecosystem=Ecosystem.NPM,
        package=package,
        version=version,
        artifact=f"{package}-{version}.tgz",
        success=not message,
        message=message,
        run_id=run_id,
        created=T0 + timedelta(minutes=minutes),
    )


def test_created_serializes_as_epoch_millis():
    run = Run(id="run-1", type=RunType.SMOKETEST, created=T0)
    dumped = run.model_dump(mode="json")
    assert dumped["created"] == int(T0.timestamp() * 1000)
    assert Run.model_validate(dumped).created == T0


def test_from_verdict():
    target = Target(ecosystem=Ecosystem.NPM, package="left-pad", version="1.0.0", artifact="left-pad-1.0.0.tgz")
    verdict = Verdict(target=target, success=False, message="build: failed to execute strategy.build", created=T0)
    rebuild = Rebuild.from_verdict(verdict, "exec/1", "run-9", T0)
    assert rebuild.success is False
    assert rebuild.id() == target.id()
    assert rebuild.executor_version == "exec/1"
    assert rebuild.run_id == "run-9"


def test_latest_per_package_keeps_newest():
    rebuilds = [
        _rebuild(message="build: old", run_id="run-1", minutes=0),
        _rebuild(run_id="run-2", minutes=5),
        _rebuild(package="other", run_id="run-1"),
    ]
    latest = filter_rebuilds(rebuilds, FetchRebuildRequest(latest_per_package=True))
    assert len(latest) == 2
    by_package = {rebuild.package: rebuild for rebuild in latest}
    assert by_package["left-pad"].run_id == "run-2"


def test_prefix_pattern_and_runs():
    rebuilds = [
        _rebuild(message="inference: no git ref", run_id="run-1"),
        _rebuild(package="b", message="build: primordials error", run_id="run-1"),
        _rebuild(package="c", message="build: cb.apply error", run_id="run-2"),
    ]
    assert [r.package for r in filter_rebuilds(rebuilds, FetchRebuildRequest(prefix="build"))] == ["b", "c"]
    assert [r.package for r in filter_rebuilds(rebuilds, FetchRebuildRequest(pattern="cb\\.apply"))] == ["c"]
    assert [r.package for r in filter_rebuilds(rebuilds, FetchRebuildRequest(runs=["run-1"]))] == ["left-pad", "b"]


def test_bench_restriction():
    rebuilds = [_rebuild(version="1.0.0"), _rebuild(version="2.0.0")]
    req = FetchRebuildRequest(bench={"npm/left-pad": ["2.0.0"]})
    assert [r.version for r in filter_rebuilds(rebuilds, req)] == ["2.0.0"]


def test_newlines_are_escaped():
    rebuilds = [_rebuild(message="build: unknown npm pack failure:\nline two")]
    assert filter_rebuilds(rebuilds, FetchRebuildRequest())[0].message == "build: unknown npm pack failure:\\nline two"


def test_clean_verdict_buckets():
    assert clean_verdict("inference: mismatched version [expected=1,actual=2]") == "inference: wrong package version in manifest"
    assert clean_verdict("inference: git clone failed: exit 128") == "inference: repo: clone failed"
    assert clean_verdict("build: unknown npm pack failure: sh: tsc: not found") == "build: missing build tool: tsc"
    assert clean_verdict("build: unknown npm pack failure: npm ERR! code ELIFECYCLE") == "build: unknown pack failure"
    assert clean_verdict("content differences found") == "content differences found"
