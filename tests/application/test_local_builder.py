import asyncio
from pathlib import Path

import pytest

from oss_rebuild.application.builder import LocalBuilder, artifact_path, render_dockerfile
from oss_rebuild.core.domain.models import Instructions, Location, Target
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import BuildFailure, InternalError
from oss_rebuild.infrastructure.command_runner import CommandResult, CommandRunner

TARGET = Target(ecosystem=Ecosystem.NPM, package="test-package", version="1.0.0", artifact="test-package-1.0.0.tgz")
INSTRUCTIONS = Instructions(
    location=Location(repo="https://github.com/test-org/test-package", ref="abc123", dir="."),
    system_deps=["git", "npm"],
    source="git clone 'https://github.com/test-org/test-package' .\ngit checkout --force 'abc123'",
    deps="",
    build="npm pack",
    output_path="test-package-1.0.0.tgz",
)


class ScriptedRunner(CommandRunner):
    """Records container CLI calls and fails the phase named in `fail_phase`."""

    def __init__(self, fail_phase="", artifact=b"built-artifact"):
        self.calls = []
        self.fail_phase = fail_phase
        self.artifact = artifact

    async def run(self, *cmd, cwd=None, env=None, input_data=None, timeout=None):
        self.calls.append(list(cmd))
        verb = cmd[1]
        if verb == "build":
            phase = cmd[cmd.index("--target") + 1]
            assert (Path(cwd) / "Dockerfile").exists()
            if phase == self.fail_phase:
                return CommandResult(returncode=1, stdout=b"", stderr=b"npm ERR! missing script: build\n")
            return CommandResult(returncode=0, stdout=f"built {phase}\n".encode(), stderr=b"")
        if verb == "cp":
            if self.artifact is None:
                return CommandResult(returncode=1, stdout=b"", stderr=b"no such file\n")
            Path(cmd[3]).write_bytes(self.artifact)
        return CommandResult(returncode=0, stdout=b"", stderr=b"")


def test_dockerfile_has_one_stage_per_phase():
    dockerfile = render_dockerfile(TARGET, INSTRUCTIONS)
    lines = dockerfile.splitlines()
    assert lines[1] == "FROM alpine:3.19 AS source"
    assert "RUN apk add --no-cache git npm" in lines
    assert "FROM source AS deps" in lines
    assert "FROM deps AS build" in lines
    assert "RUN <<'__DEPS__'" not in lines
    build_at = lines.index("RUN <<'__BUILD__'")
    assert lines[build_at + 1:build_at + 4] == ["set -eux", "npm pack", "__BUILD__"]


def test_debian_targets_use_apt():
    target = Target(ecosystem=Ecosystem.DEBIAN, package="main/xz-utils", version="5.4.1", artifact="x.deb")
    dockerfile = render_dockerfile(target, INSTRUCTIONS)
    assert "FROM debian:bookworm-slim AS source" in dockerfile
    assert "apt-get install -y --no-install-recommends git npm" in dockerfile


def test_artifact_path_is_under_the_build_root():
    assert artifact_path(INSTRUCTIONS) == "/src/test-package-1.0.0.tgz"
    assert artifact_path(INSTRUCTIONS.model_copy(update={"output_path": "../out/module.zip"})) == "/out/module.zip"
    with pytest.raises(InternalError):
        artifact_path(Instructions())


@pytest.mark.asyncio
async def test_successful_build_copies_the_artifact_out(tmp_path):
    runner = ScriptedRunner()
    builder = LocalBuilder("podman", runner, work_root=tmp_path)

    result = await builder.build(TARGET, INSTRUCTIONS)
    assert result.artifact == b"built-artifact"
    assert "### source\nbuilt source" in result.logs
    assert "### build\nbuilt build" in result.logs
    assert result.dockerfile == render_dockerfile(TARGET, INSTRUCTIONS)

    verbs = [call[1] for call in runner.calls]
    assert verbs == ["build", "build", "build", "create", "cp", "rm", "rmi"]
    assert all(call[0] == "podman" for call in runner.calls)
    assert runner.calls[4][2].endswith(":/src/test-package-1.0.0.tgz")
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_failing_phase_is_classified(tmp_path):
    runner = ScriptedRunner(fail_phase="deps")
    builder = LocalBuilder("docker", runner, work_root=tmp_path)

    with pytest.raises(BuildFailure) as failure:
        await builder.build(TARGET, INSTRUCTIONS, classify=lambda phase, output: f"{phase} broke: {output.strip()}")
    assert str(failure.value) == "deps broke: npm ERR! missing script: build"
    assert failure.value.phase == "deps"
    assert "### deps" in failure.value.logs
    assert [call[1] for call in runner.calls] == ["build", "build", "rmi"]


@pytest.mark.asyncio
async def test_missing_artifact_is_a_build_failure(tmp_path):
    builder = LocalBuilder("docker", ScriptedRunner(artifact=None), work_root=tmp_path)
    with pytest.raises(BuildFailure, match="artifact not found at /src/test-package-1.0.0.tgz"):
        await builder.build(TARGET, INSTRUCTIONS)


class StallingRunner(ScriptedRunner):
    """Times out on the named verbs, as CommandRunner does when a child outlives its timeout."""

    def __init__(self, stall_phase="", stall_verbs=()):
        super().__init__()
        self.stall_phase = stall_phase
        self.stall_verbs = set(stall_verbs)

    async def run(self, *cmd, cwd=None, env=None, input_data=None, timeout=None):
        verb = cmd[1]
        if (verb == "build" and cmd[cmd.index("--target") + 1] == self.stall_phase) or verb in self.stall_verbs:
            self.calls.append(list(cmd))
            raise asyncio.TimeoutError()
        return await super().run(*cmd, cwd=cwd, env=env, input_data=input_data, timeout=timeout)


@pytest.mark.asyncio
async def test_phase_timeout_is_a_build_failure(tmp_path):
    runner = StallingRunner(stall_phase="deps", stall_verbs=["rmi"])
    builder = LocalBuilder("docker", runner, work_root=tmp_path, timeout=0.3)

    with pytest.raises(BuildFailure) as failure:
        await builder.build(TARGET, INSTRUCTIONS)
    assert str(failure.value) == "deps timed out"
    assert failure.value.phase == "deps"
    assert "### deps\ndocker build timed out after 0.3s" in failure.value.logs
    assert [call[1] for call in runner.calls] == ["build", "build", "rmi"]
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_cleanup_timeout_keeps_the_result(tmp_path):
    runner = StallingRunner(stall_verbs=["rm", "rmi"])
    result = await LocalBuilder("docker", runner, work_root=tmp_path).build(TARGET, INSTRUCTIONS)
    assert result.artifact == b"built-artifact"
    assert [call[1] for call in runner.calls][-2:] == ["rm", "rmi"]
