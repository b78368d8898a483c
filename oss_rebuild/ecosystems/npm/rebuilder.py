from __future__ import annotations

import posixpath
import re
from typing import Optional

from oss_rebuild.adapters.registry.npm import NPMRegistry
from oss_rebuild.adapters.vcs.uri import canonicalize_repo_uri
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.semver import Semver
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.common import hint_location
from oss_rebuild.ecosystems.npm.infer import MANIFEST, infer_from_repo, read_package_json, scan_repo
from oss_rebuild.ecosystems.npm.strategy import NPMCustomBuild, NPMPackBuild
from oss_rebuild.ecosystems.npm.versions import pick_node_version, pick_npm_version
from oss_rebuild.exceptions import InferenceError
from oss_rebuild.logging import log_event

_DETAIL_LIMIT = 200
_NODE_FETCH_404 = re.compile(
    r"Connecting to unofficial-builds.nodejs.org [^\n]*?\nwget: server returned error: HTTP/1.1 404 Not Found"
)
_CUSTOM_BUILD_SCRIPTS = ("prepack", "prepare", "build")


def sanitize(name: str) -> str:
    return name.replace("@", "").replace("/", "-")


def artifact_name(target: Target) -> str:
    return f"{sanitize(target.package)}-{target.version}.tgz"


def classify_npm_failure(phase: str, output: str) -> str:
    if phase == "deps" and _NODE_FETCH_404.search(output):
        return "node version not found"
    if phase != "build":
        return f"failed to execute strategy.{phase}"
    if "primordials is not defined" in output:
        return "primordials error"
    if "cb.apply is not a function" in output:
        return "cb.apply error"
    marker = ": command not found"
    end = output.find(marker)
    if end != -1:
        start = output.rfind(": ", 0, end)
        return f"pack command not found: {output[start + 2 if start != -1 else 0:end]}"
    # Verdict messages are one line: keep the missing-tool line, else the last line.
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    detail = next((line for line in reversed(lines) if line.endswith(": not found")), lines[-1] if lines else "")
    return f"unknown npm pack failure: {detail[:_DETAIL_LIMIT]}".rstrip()


class NPMRebuilder(Rebuilder):
    ecosystem = Ecosystem.NPM

    @property
    def npm(self) -> NPMRegistry:
        return self._require(self.registries.npm)

    async def infer_repo(self, target: Target) -> str:
        vmeta = await self.npm.version(target.package, target.version)
        return canonicalize_repo_uri(vmeta.repository.url)

    async def scan_repo(self, target: Target, repo: Repo) -> RepoConfig:
        return await scan_repo(repo, target)

    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        vmeta = await self.npm.version(target.package, target.version)
        npm_version = pick_npm_version(vmeta.npm_version)

        forced = hint_location(hint)
        override = ""
        if forced is not None:
            ref, directory = forced.ref, forced.dir or rcfg.dir
        else:
            ref, directory, override = await infer_from_repo(repo, target, vmeta, rcfg)
        location = Location(repo=rcfg.uri, ref=ref, dir=directory or ".")

        manifest = await read_package_json(repo, ref, posixpath.join(location.dir, MANIFEST))
        if manifest is None:
            log_event("package_json_unreadable", pkg=target.package, ref=ref, dir=location.dir)
        elif any(script in manifest.scripts for script in _CUSTOM_BUILD_SCRIPTS):
            pmeta = await self.npm.package(target.package)
            registry_time = pmeta.upload_times.get(target.version)
            if registry_time is None:
                raise InferenceError("upload time not found")
            scripts = manifest.scripts
            return NPMCustomBuild(
                location=location,
                npm_version=npm_version,
                node_version=pick_node_version(vmeta.node_version),
                command="build" if "build" in scripts else "",
                registry_time=registry_time,
                prepack_remove_deps="prepare" not in scripts and "prepack" not in scripts,
                keep_root=Semver.parse(npm_version).major <= 6,
                version_override=override,
            )
        return NPMPackBuild(location=location, npm_version=npm_version, version_override=override)

    async def guess_artifact(self, target: Target) -> str:
        return artifact_name(target)

    async def upstream_artifact(self, target: Target) -> bytes:
        return await self.npm.artifact(target.package, target.version)

    def classify_build_failure(self, phase: str, output: str) -> str:
        return classify_npm_failure(phase, output)
