from __future__ import annotations

import re
import tomllib
from typing import Dict, List, Optional

from oss_rebuild.adapters.registry.pypi import Artifact, PyPIRegistry, Release
from oss_rebuild.adapters.vcs.uri import canonicalize_repo_uri, find_common_repo
from oss_rebuild.archive.zip import read_zip
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.common import find_tag_match, hint_location
from oss_rebuild.ecosystems.pypi.strategy import PureWheelBuild
from oss_rebuild.exceptions import InferenceError, NoValidRefError, NotFoundError, UnsupportedError
from oss_rebuild.logging import log_event

REPO_LINK_KEYS = ("source", "sourcecode", "repository", "project", "github")

_GENERATORS = (
    (re.compile(r"^Generator: bdist_wheel \(([\d.]+)\)"), ("wheel",)),
    (re.compile(r"^Generator: flit ([\d.]+)"), ("flit_core", "flit")),
    (re.compile(r"^Generator: hatchling ([\d.]+)"), ("hatchling",)),
    (re.compile(r"^Generator: poetry ([\d.]+)"), ("poetry",)),
    (re.compile(r"^Generator: poetry-core ([\d.]+)"), ("poetry-core",)),
)
_WHEEL_FILE = re.compile(r"^[^/]+\.dist-info/WHEEL$")
_METADATA_FILE = re.compile(r"^[^/]+\.dist-info/METADATA$")


def find_pure_wheel(artifacts: List[Artifact]) -> Artifact:
    for artifact in artifacts:
        if artifact.filename.endswith("none-any.whl"):
            return artifact
    raise UnsupportedError("no pure wheel found")


def generator_requirements(wheel: str) -> List[str]:
    """Pins the build backend recorded in a wheel's WHEEL file."""
    for line in wheel.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            raise InferenceError("unexpected WHEEL file format")
        if key != "Generator":
            continue
        for pattern, packages in _GENERATORS:
            found = pattern.match(line)
            if found is not None:
                return [f"{package}=={found.group(1)}" for package in packages]
        raise UnsupportedError(f"unsupported generator: {value.strip()}")
    raise InferenceError("no generator found")


def setuptools_requirement(metadata: str) -> str:
    if "License-File" not in metadata:
        return "setuptools==56.2.0"
    if "Platform: UNKNOWN" in metadata:
        return "setuptools==57.5.0"
    return "setuptools==67.7.2"


def infer_requirements(wheel_bytes: bytes) -> List[str]:
    members: Dict[str, bytes] = {member.name: member.body for member in read_zip(wheel_bytes)}
    wheel = next((body for name, body in members.items() if _WHEEL_FILE.match(name)), None)
    if wheel is None:
        raise InferenceError("failed to extract upstream WHEEL")
    metadata = next((body for name, body in members.items() if _METADATA_FILE.match(name)), None)
    if metadata is None:
        raise InferenceError("failed to extract upstream dist-info/METADATA")
    requirements = generator_requirements(wheel.decode("utf-8", errors="replace"))
    requirements.append(setuptools_requirement(metadata.decode("utf-8", errors="replace")))
    return requirements


def pyproject_requirements(raw: bytes) -> List[str]:
    try:
        payload = tomllib.loads(raw.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise InferenceError(f"failed to decode pyproject.toml: {exc}") from exc
    build_system = payload.get("build-system")
    requires = build_system.get("requires") if isinstance(build_system, dict) else None
    if not isinstance(requires, list):
        return []
    return [requirement.replace(" ", "") for requirement in requires if isinstance(requirement, str)]


def repo_from_project_urls(project_urls: Dict[str, str], description: str = "") -> str:
    """Picks a source repository from PyPI project links, then the description."""
    links = [url for name, url in project_urls.items() if name.lower() in REPO_LINK_KEYS]
    for url in links:
        repo = find_common_repo(url)
        if repo:
            return repo
    if links:
        return links[0]
    repo = find_common_repo(description)
    if repo and "sponsors" not in repo:
        return repo
    for url in project_urls.values():
        if "sponsors" in url:
            continue
        repo = find_common_repo(url)
        if repo:
            return repo
    raise NotFoundError("no git repo")


class PyPIRebuilder(Rebuilder):
    ecosystem = Ecosystem.PYPI

    @property
    def pypi(self) -> PyPIRegistry:
        return self._require(self.registries.pypi)

    async def infer_repo(self, target: Target) -> str:
        project = await self.pypi.project(target.package)
        return canonicalize_repo_uri(repo_from_project_urls(project.info.project_urls, project.info.description))

    async def _release(self, target: Target) -> Release:
        return await self.pypi.release(target.package, target.version)

    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        release = await self._release(target)
        forced = hint_location(hint)
        if forced is not None:
            ref, directory = forced.ref, forced.dir or rcfg.dir
        else:
            ref = await find_tag_match(repo, release.info.name or target.package, target.version)
            if not ref:
                raise NoValidRefError("no git ref")
            if await repo.resolve(ref) is None:
                raise NoValidRefError(f"commit from tag heuristic not found in repo [ref={ref}]")
            directory = rcfg.dir
        wheel = find_pure_wheel(release.artifacts)
        upstream = await self.pypi.artifact(target.package, target.version, wheel.filename)
        requirements = infer_requirements(upstream)
        try:
            raw = await repo.read_file(ref, "pyproject.toml")
        except NotFoundError:
            log_event("pyproject_missing", pkg=target.package, ref=ref)
        else:
            try:
                requirements.extend(pyproject_requirements(raw))
            except InferenceError as exc:
                log_event("pyproject_unreadable", pkg=target.package, ref=ref, error=str(exc))
        return PureWheelBuild(
            location=Location(repo=rcfg.uri, ref=ref, dir=directory or "."),
            requirements=requirements,
            registry_time=wheel.upload_time,
        )

    async def guess_artifact(self, target: Target) -> str:
        release = await self._release(target)
        return find_pure_wheel(release.artifacts).filename

    async def upstream_artifact(self, target: Target) -> bytes:
        return await self.pypi.artifact(target.package, target.version, target.artifact)
