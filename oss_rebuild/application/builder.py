"""
Build execution.

`LocalBuilder` renders `Instructions` into a three-stage Dockerfile
(source, deps, build) and builds each stage in turn with the configured
container CLI, so a failure can be attributed to the phase that produced
it. The artifact is copied out of the final image.
"""
from __future__ import annotations

import asyncio
import logging
import posixpath
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from oss_rebuild.core.domain.models import Instructions, Target
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import BuildFailure, InternalError
from oss_rebuild.infrastructure.command_runner import CommandResult, CommandRunner
from oss_rebuild.logging import log_event

logger = logging.getLogger("oss_rebuild.builder")

BASE_IMAGE = "alpine:3.19"
DEBIAN_IMAGE = "debian:bookworm-slim"
PHASES = ("source", "deps", "build")
BUILD_ROOT = "/src"

FailureClassifier = Callable[[str, str], str]


@dataclass
class BuildResult:
    artifact: bytes
    logs: str
    dockerfile: str


class Builder(ABC):
    """Executes rendered instructions and returns the built artifact."""

    @abstractmethod
    async def build(
        self,
        target: Target,
        instructions: Instructions,
        classify: Optional[FailureClassifier] = None,
    ) -> BuildResult: ...

    def render(self, target: Target, instructions: Instructions) -> str:
        return render_dockerfile(target, instructions)


def _script_step(phase: str, script: str) -> List[str]:
    if not script.strip():
        return []
    marker = f"__{phase.upper()}__"
    return [f"RUN <<'{marker}'", "set -eux", script.rstrip("\n"), marker]


def render_dockerfile(target: Target, instructions: Instructions) -> str:
    """Three named stages: `source`, `deps` and `build`, each extending the previous one."""
    if target.ecosystem == Ecosystem.DEBIAN:
        image = DEBIAN_IMAGE
        install = "RUN apt-get update && apt-get install -y --no-install-recommends " + " ".join(instructions.system_deps)
    else:
        image = BASE_IMAGE
        install = "RUN apk add --no-cache " + " ".join(instructions.system_deps)
    lines = ["# syntax=docker/dockerfile:1.4", f"FROM {image} AS source"]
    if instructions.system_deps:
        lines.append(install)
    lines.append(f"WORKDIR {BUILD_ROOT}")
    lines.extend(_script_step("source", instructions.source))
    lines.extend(["", "FROM source AS deps"])
    lines.extend(_script_step("deps", instructions.deps))
    lines.extend(["", "FROM deps AS build"])
    lines.extend(_script_step("build", instructions.build))
    return "\n".join(lines) + "\n"


def artifact_path(instructions: Instructions) -> str:
    if not instructions.output_path:
        raise InternalError("instructions have no output path")
    return posixpath.normpath(posixpath.join(BUILD_ROOT, instructions.output_path))


class LocalBuilder(Builder):
    def __init__(
        self,
        executable: str = "docker",
        runner: Optional[CommandRunner] = None,
        *,
        work_root: Optional[Path] = None,
        timeout: Optional[float] = 3600.0,
    ) -> None:
        self.executable = executable
        self.runner = runner or CommandRunner()
        self.work_root = work_root
        self.timeout = timeout

    async def _cli(self, *args: str, cwd: Optional[Path] = None) -> CommandResult:
        return await self.runner.run(self.executable, *args, cwd=cwd, timeout=self.timeout)

    async def _step(self, phase: str, logs: List[str], *args: str, cwd: Optional[Path] = None) -> CommandResult:
        try:
            return await self._cli(*args, cwd=cwd)
        except asyncio.TimeoutError as exc:
            logs.append(f"### {phase}\n{self.executable} {args[0]} timed out after {self.timeout}s")
            raise BuildFailure(f"{phase} timed out", phase=phase, logs="\n".join(logs)) from exc

    async def _discard(self, *args: str) -> None:
        try:
            result = await self._cli(*args)
        except asyncio.TimeoutError:
            log_event("build_cleanup_timed_out", level=logging.WARNING, command=" ".join(args[:2]))
            return
        if not result.ok:
            logger.debug("cleanup %s failed: %s", " ".join(args), result.output.strip())

    async def build(
        self,
        target: Target,
        instructions: Instructions,
        classify: Optional[FailureClassifier] = None,
    ) -> BuildResult:
        dockerfile = self.render(target, instructions)
        workdir = Path(tempfile.mkdtemp(prefix="oss-rebuild-build-", dir=self.work_root))
        tag = f"oss-rebuild-{uuid.uuid4().hex[:12]}"
        logs: List[str] = []
        try:
            (workdir / "Dockerfile").write_text(dockerfile, encoding="utf-8")
            for phase in PHASES:
                log_event("build_phase_started", target=str(target), phase=phase)
                result = await self._step(phase, logs, "build", "--target", phase, "-t", f"{tag}:{phase}", ".", cwd=workdir)
                logs.append(f"### {phase}\n{result.output}")
                if not result.ok:
                    message = classify(phase, result.output) if classify else f"failed to execute strategy.{phase}"
                    raise BuildFailure(message, phase=phase, logs="\n".join(logs))
            artifact = await self._extract(tag, artifact_path(instructions), workdir, logs)
            return BuildResult(artifact=artifact, logs="\n".join(logs), dockerfile=dockerfile)
        finally:
            await self._cleanup(tag)
            shutil.rmtree(workdir, ignore_errors=True)

    async def _extract(self, tag: str, path: str, workdir: Path, logs: List[str]) -> bytes:
        container = f"{tag}-out"
        created = await self._step("build", logs, "create", "--name", container, f"{tag}:build")
        if not created.ok:
            logs.append(created.output)
            raise BuildFailure("failed to create build container", phase="build", logs="\n".join(logs))
        try:
            out = workdir / "artifact"
            copied = await self._step("build", logs, "cp", f"{container}:{path}", str(out))
            if not copied.ok or not out.exists():
                logs.append(copied.output)
                raise BuildFailure(f"artifact not found at {path}", phase="build", logs="\n".join(logs))
            return out.read_bytes()
        finally:
            await self._discard("rm", "-f", container)

    async def _cleanup(self, tag: str) -> None:
        await self._discard("rmi", "-f", *(f"{tag}:{phase}" for phase in PHASES))
