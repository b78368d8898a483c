from datetime import datetime, timezone
from typing import Dict

import pytest

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.adapters.registry.npm import NPMPackage, NPMRegistry, NPMVersion
from oss_rebuild.core.contracts.rundex import clean_verdict
from oss_rebuild.core.domain.models import BuildEnv, Location, Target
from oss_rebuild.core.domain.strategies import LocationHint, WorkflowStrategy
from oss_rebuild.core.domain.verdicts import stage_message
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.npm.rebuilder import NPMRebuilder, artifact_name, classify_npm_failure
from oss_rebuild.ecosystems.npm.strategy import NPMCustomBuild, NPMPackBuild
from oss_rebuild.ecosystems.npm.versions import pick_node_version, pick_npm_version
from oss_rebuild.exceptions import BuildFailure, InferenceError, NoValidRefError, UnsupportedError

REPO_URI = "https://github.com/test-org/test-package"
TARGET = Target(ecosystem=Ecosystem.NPM, package="test-package", version="1.0.0", artifact="test-package-1.0.0.tgz")


class FakeNPMRegistry(NPMRegistry):
    def __init__(self, versions: Dict[str, dict], package: dict = None):
        self.versions = versions
        self.package_payload = package or {}

    async def package(self, pkg: str) -> NPMPackage:
        return NPMPackage.model_validate(self.package_payload)

    async def version(self, pkg: str, version: str) -> NPMVersion:
        return NPMVersion.model_validate(self.versions[version])

    async def artifact(self, pkg: str, version: str) -> bytes:
        return b""


def _manifest(version, **extra):
    return {"name": "test-package", "version": version, **extra}


def _rebuilder(meta, package=None):
    return NPMRebuilder(RegistryMux(npm=FakeNPMRegistry({"1.0.0": meta}, package)))


@pytest.fixture
def history(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("initial-commit", {"package.json": _manifest("0.1.0")})
    repo.commit("version-bump", {"package.json": _manifest("1.0.0")})
    return repo


@pytest.mark.asyncio
async def test_registry_git_head_is_preferred(history):
    rebuilder = _rebuilder({"name": "test-package", "version": "1.0.0", "gitHead": "version-bump", "_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, history)
    assert rcfg.dir == "."
    assert rcfg.ref_map == {"1.0.0": "version-bump", "0.1.0": "initial-commit"}

    strategy = await rebuilder.infer_strategy(TARGET, history, rcfg)
    assert strategy == NPMPackBuild(
        location=Location(repo=REPO_URI, ref="version-bump", dir="."),
        npm_version="8.1.2",
    )


@pytest.mark.asyncio
async def test_tag_is_used_without_git_head(history):
    history.commit("tagged-commit", {"package.json": _manifest("1.0.0"), "README.md": "release"})
    history.tag("v1.0.0", "tagged-commit")
    rebuilder = _rebuilder({"name": "test-package", "version": "1.0.0", "_npmVersion": "7.5.0"})
    rcfg = await rebuilder.scan_repo(TARGET, history)

    strategy = await rebuilder.infer_strategy(TARGET, history, rcfg)
    assert strategy == NPMPackBuild(
        location=Location(repo=REPO_URI, ref="tagged-commit", dir="."),
        npm_version="7.5.0",
    )


@pytest.mark.asyncio
async def test_build_script_selects_custom_build(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("initial-commit", {"package.json": _manifest("0.1.0")})
    repo.commit("version-bump", {"package.json": _manifest("1.0.0", scripts={"build": "tsc"})})
    rebuilder = _rebuilder(
        {"name": "test-package", "version": "1.0.0", "gitHead": "version-bump", "_npmVersion": "8.2.0"},
        package={"name": "test-package", "time": {"1.0.0": "2023-02-10T10:00:00Z"}},
    )
    rcfg = await rebuilder.scan_repo(TARGET, repo)

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy == NPMCustomBuild(
        location=Location(repo=REPO_URI, ref="version-bump", dir="."),
        npm_version="8.2.0",
        node_version="10.17.0",
        command="build",
        registry_time=datetime(2023, 2, 10, 10, 0, 0, tzinfo=timezone.utc),
        prepack_remove_deps=True,
        keep_root=False,
    )


@pytest.mark.parametrize(
    "node_field, expected",
    [
        ({"_nodeVersion": "16.13.0"}, "16.13.0"),
        ({"_nodeVersion": "14.14.1"}, "14.15.5"),
        ({"nodeVersion": "16.13.0"}, "10.17.0"),
        ({}, "10.17.0"),
    ],
)
@pytest.mark.asyncio
async def test_custom_build_node_version_follows_registry(fake_repo, node_field, expected):
    repo = fake_repo(REPO_URI)
    repo.commit("version-bump", {"package.json": _manifest("1.0.0", scripts={"build": "tsc"})})
    rebuilder = _rebuilder(
        {"name": "test-package", "version": "1.0.0", "gitHead": "version-bump", "_npmVersion": "8.2.0", **node_field},
        package={"name": "test-package", "time": {"1.0.0": "2023-02-10T10:00:00Z"}},
    )
    rcfg = await rebuilder.scan_repo(TARGET, repo)

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert isinstance(strategy, NPMCustomBuild)
    assert strategy.node_version == expected



@pytest.mark.asyncio
async def test_custom_build_without_upload_time_fails(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"package.json": _manifest("1.0.0", scripts={"prepare": "tsc"})})
    rebuilder = _rebuilder({"gitHead": "c1", "_npmVersion": "6.14.0"}, package={"time": {}})
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    with pytest.raises(InferenceError, match="upload time not found"):
        await rebuilder.infer_strategy(TARGET, repo, rcfg)


@pytest.mark.asyncio
async def test_wrong_version_at_registry_ref_uses_override(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("stale", {"package.json": _manifest("0.9.0")})
    rebuilder = _rebuilder({"gitHead": "stale", "_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, repo)

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy.location.ref == "stale"
    assert strategy.version_override == "1.0.0"
    inst = strategy.generate_for(TARGET, BuildEnv())
    assert "npm version --prefix . --no-git-tag-version 1.0.0" in inst.build


@pytest.mark.asyncio
async def test_renamed_package_has_no_valid_ref(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"package.json": {"name": "old-name", "version": "1.0.0"}})
    rebuilder = _rebuilder({"gitHead": "c1", "_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    with pytest.raises(NoValidRefError, match="no valid git ref"):
        await rebuilder.infer_strategy(TARGET, repo, rcfg)


@pytest.mark.asyncio
async def test_no_candidate_refs(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit("c1", {"README.md": "nothing"})
    rebuilder = _rebuilder({"_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    with pytest.raises(NoValidRefError, match="no git ref"):
        await rebuilder.infer_strategy(TARGET, repo, rcfg)


@pytest.mark.asyncio
async def test_monorepo_manifest_is_found_by_grep(fake_repo):
    repo = fake_repo(REPO_URI)
    repo.commit(
        "c1",
        {
            "package.json": {"name": "monorepo-root", "private": True},
            "libs/core/package.json": _manifest("1.0.0"),
        },
    )
    rebuilder = _rebuilder({"gitHead": "c1", "_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, repo)
    assert rcfg.dir == "libs/core"

    strategy = await rebuilder.infer_strategy(TARGET, repo, rcfg)
    assert strategy.location == Location(repo=REPO_URI, ref="c1", dir="libs/core")


@pytest.mark.asyncio
async def test_location_hint_forces_ref(history):
    rebuilder = _rebuilder({"gitHead": "version-bump", "_npmVersion": "8.1.2"})
    rcfg = await rebuilder.scan_repo(TARGET, history)
    hint = LocationHint(location=Location(repo=REPO_URI, ref="initial-commit"))

    strategy = await rebuilder.infer_strategy(TARGET, history, rcfg, hint)
    assert strategy.location.ref == "initial-commit"
    with pytest.raises(UnsupportedError):
        await rebuilder.infer_strategy(TARGET, history, rcfg, WorkflowStrategy())


def test_artifact_name_sanitizes_scopes():
    target = Target(ecosystem=Ecosystem.NPM, package="@scope/pkg", version="2.0.0")
    assert artifact_name(target) == "scope-pkg-2.0.0.tgz"


def test_pick_npm_version():
    assert pick_npm_version("5.5.1") == "5.6.0"
    assert pick_npm_version("4.2.0") == "5.0.4"
    assert pick_npm_version("8.1.2") == "8.1.2"
    with pytest.raises(InferenceError):
        pick_npm_version("6.0.0-beta.1")
    with pytest.raises(InferenceError):
        pick_npm_version("")


def test_pick_node_version():
    assert pick_node_version("14.14.1") == "14.15.5"
    assert pick_node_version("14.15.5") == "14.15.5"
    assert pick_node_version("") == "10.17.0"
    assert pick_node_version("99.0.0") == "99.0.0"


def test_build_failure_classification():
    fetch_404 = (
        "Connecting to unofficial-builds.nodejs.org (104.20.22.46:443)\n"
        "wget: server returned error: HTTP/1.1 404 Not Found"
    )
    assert classify_npm_failure("deps", fetch_404) == "node version not found"
    assert classify_npm_failure("deps", "other") == "failed to execute strategy.deps"
    assert classify_npm_failure("build", "ReferenceError: primordials is not defined") == "primordials error"
    assert classify_npm_failure("build", "TypeError: cb.apply is not a function") == "cb.apply error"
    assert classify_npm_failure("build", "sh: 1: tsc: command not found") == "pack command not found: tsc"
    assert classify_npm_failure("build", "weird\nnpm ERR! code ELIFECYCLE\n") == "unknown npm pack failure: npm ERR! code ELIFECYCLE"
    assert classify_npm_failure("build", "") == "unknown npm pack failure:"


def test_unknown_failure_detail_survives_the_verdict_message():
    output = "> test-package@1.0.0 build\nsh: tsc: not found\nnpm ERR! code ELIFECYCLE\n"
    message = stage_message("build", BuildFailure(classify_npm_failure("build", output), phase="build"))
    assert message == "build: unknown npm pack failure: sh: tsc: not found"
    assert clean_verdict(message) == "build: missing build tool: tsc"
