from __future__ import annotations

import posixpath
import re
from typing import Dict, List, Optional, Tuple

from oss_rebuild.adapters.registry.maven import TYPE_JAR, TYPE_POM, MavenRegistry, split_coordinates
from oss_rebuild.adapters.vcs.uri import canonicalize_repo_uri
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.common import find_tag_match, hint_location, short_ref
from oss_rebuild.ecosystems.maven.pom import DEFAULT_JDK, PomXML, infer_jdk, parse_pom
from oss_rebuild.ecosystems.maven.strategy import MavenBuild
from oss_rebuild.exceptions import MalformedError, NoValidRefError, NotFoundError
from oss_rebuild.logging import log_event

MANIFEST = "pom.xml"
_MANIFEST_PATHSPEC = r"(^|/)pom\.xml$"


def artifact_name(target: Target) -> str:
    _, artifact = split_coordinates(target.package)
    return f"{artifact}-{target.version}.jar"


def _in_sources(path: str) -> bool:
    # Poms under a `src` tree are fixtures rather than build descriptors.
    return path.startswith("src/") or "/src/" in path


async def read_pom(repo: Repo, ref: str, path: str) -> Optional[PomXML]:
    try:
        raw = await repo.read_file(ref, path)
    except NotFoundError:
        return None
    try:
        return parse_pom(raw)
    except MalformedError:
        return None


async def find_pom_xml(repo: Repo, ref: str, pkg: str) -> Tuple[PomXML, str]:
    pom = await read_pom(repo, ref, MANIFEST)
    if pom is not None and pom.name == pkg:
        return pom, MANIFEST
    _, artifact = split_coordinates(pkg)
    pattern = r"<artifactId>\s*" + re.escape(artifact) + r"\s*</artifactId>"
    candidates: List[Tuple[str, PomXML]] = []
    for match in await repo.grep(ref, _MANIFEST_PATHSPEC, pattern):
        if _in_sources(match.file) or any(path == match.file for path, _ in candidates):
            continue
        found = await read_pom(repo, ref, match.file)
        if found is not None and found.name == pkg:
            candidates.append((match.file, found))
    if not candidates:
        raise NotFoundError("pom.xml heuristic found no matches")
    candidates.sort(key=lambda item: (len(item[0]), item[0]))
    if len(candidates) > 1:
        log_event("pom_xml_candidates", pkg=pkg, ref=ref, matches=[path for path, _ in candidates])
    path, pom = candidates[0]
    return pom, path


async def pom_xml_search(repo: Repo, pkg: str, manifest_path: str) -> Dict[str, str]:
    """Maps each version to the commit that introduced it in the pom at `manifest_path`."""
    found: Dict[str, str] = {}
    duplicates: Dict[str, List[str]] = {}
    for commit in await repo.log_touching(manifest_path):
        pom = await read_pom(repo, commit.sha, manifest_path)
        if pom is None:
            continue
        if pom.name != pkg:
            log_event("package_name_mismatch", expected=pkg, actual=pom.name, path=manifest_path, ref=commit.sha)
            continue
        if not pom.version:
            continue
        unchanged = False
        for parent in commit.parents:
            previous = await read_pom(repo, parent, manifest_path)
            if previous is not None and previous.name == pkg and previous.version == pom.version:
                unchanged = True
                break
        if unchanged:
            continue
        if pom.version in found:
            duplicates.setdefault(pom.version, [found[pom.version]]).append(commit.sha)
            continue
        found[pom.version] = commit.sha
    for version, commits in duplicates.items():
        log_event("pom_xml_version_collision", pkg=pkg, version=version, commits=commits)
    return found


async def find_build_dir(repo: Repo, ref: str, target: Target) -> str:
    """Directory of the module's pom at `ref`, or "" when no pom names the package."""
    try:
        pom, path = await find_pom_xml(repo, ref, target.package)
    except NotFoundError:
        log_event("pom_xml_not_found", pkg=target.package, ref=short_ref(ref))
        return ""
    directory = posixpath.dirname(path) or "."
    if pom.version != target.version:
        log_event(
            "pom_xml_version_mismatch",
            expected=target.version,
            actual=pom.version,
            path=path,
            ref=short_ref(ref),
        )
    return directory


class MavenRebuilder(Rebuilder):
    ecosystem = Ecosystem.MAVEN

    @property
    def maven(self) -> MavenRegistry:
        return self._require(self.registries.maven)

    async def infer_repo(self, target: Target) -> str:
        pom = parse_pom(await self.maven.release_file(target.package, target.version, TYPE_POM))
        if not pom.repo:
            raise NotFoundError("no git repo")
        return canonicalize_repo_uri(pom.repo)

    async def scan_repo(self, target: Target, repo: Repo) -> RepoConfig:
        try:
            head = await repo.head()
            _, manifest_path = await find_pom_xml(repo, head.sha, target.package)
        except NotFoundError as exc:
            log_event("pom_xml_path_heuristic_failed", pkg=target.package, repo=repo.uri, error=str(exc))
            return RepoConfig(uri=repo.uri, dir=".")
        ref_map = await pom_xml_search(repo, target.package, manifest_path)
        return RepoConfig(uri=repo.uri, dir=posixpath.dirname(manifest_path) or ".", ref_map=ref_map)

    async def _infer_ref_and_dir(self, target: Target, repo: Repo, rcfg: RepoConfig) -> Tuple[str, str]:
        candidates = [
            ("tag", await find_tag_match(repo, target.package, target.version)),
            ("git log", rcfg.ref_map.get(target.version, "")),
        ]
        for source, ref in candidates:
            if not ref:
                continue
            commit = await repo.resolve(ref)
            if commit is None:
                log_event("ref_not_found", source=source, ref=ref)
                continue
            directory = await find_build_dir(repo, commit.sha, target)
            if directory:
                log_event("ref_selected", source=source, ref=short_ref(commit.sha))
                return commit.sha, directory
        if not any(ref for _, ref in candidates):
            raise NoValidRefError("no git ref")
        raise NoValidRefError("no valid git ref")

    async def _jdk(self, target: Target) -> str:
        try:
            jar = await self.maven.release_file(target.package, target.version, TYPE_JAR)
            return infer_jdk(jar)
        except (NotFoundError, MalformedError) as exc:
            log_event("jdk_inference_fallback", pkg=target.package, version=target.version, error=str(exc))
            return DEFAULT_JDK

    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        forced = hint_location(hint)
        if forced is not None:
            ref, directory = forced.ref, forced.dir or rcfg.dir
        else:
            ref, directory = await self._infer_ref_and_dir(target, repo, rcfg)
        return MavenBuild(
            location=Location(repo=rcfg.uri, ref=ref, dir=directory or "."),
            jdk_version=await self._jdk(target),
        )

    async def guess_artifact(self, target: Target) -> str:
        return artifact_name(target)

    async def upstream_artifact(self, target: Target) -> bytes:
        return await self.maven.release_file(target.package, target.version, TYPE_JAR)
