"""
Locating and validating Cargo.toml across repository history.

Refs are tried in order: the commit recorded in the published crate's
`.cargo_vcs_info.json`, a tag naming the version, and the version map built
from every commit that touched the manifest.
"""
from __future__ import annotations

import json
import posixpath
import re
import tomllib
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from oss_rebuild.archive.tar import read_targz_file
from oss_rebuild.core import semver
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import RepoConfig, Target
from oss_rebuild.ecosystems.common import find_tag_match, short_ref
from oss_rebuild.exceptions import InferenceError, MalformedError, NoValidRefError, NotFoundError
from oss_rebuild.logging import log_event

MANIFEST = "Cargo.toml"
VCS_INFO = ".cargo_vcs_info.json"
WORKSPACE_VERSION = "workspace"
_MANIFEST_PATHSPEC = r".*/Cargo.toml$"


@dataclass
class CargoManifest:
    name: str = ""
    version: str = ""

    def version_matches(self, version: str) -> bool:
        # TODO: resolve workspace-inherited versions against the workspace root manifest.
        return self.version in (version, WORKSPACE_VERSION)


def parse_cargo_toml(raw: bytes) -> CargoManifest:
    try:
        payload = tomllib.loads(raw.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise MalformedError(f"failed to parse Cargo.toml: {exc}") from exc
    package = payload.get("package")
    if not isinstance(package, dict):
        return CargoManifest()
    name = package.get("name")
    version = package.get("version")
    if isinstance(version, dict):
        version = WORKSPACE_VERSION
    return CargoManifest(
        name=name if isinstance(name, str) else "",
        version=version if isinstance(version, str) else "",
    )


async def read_cargo_toml(repo: Repo, ref: str, path: str) -> Optional[CargoManifest]:
    """Returns None when the file is missing; undecodable manifests raise MalformedError."""
    try:
        raw = await repo.read_file(ref, path)
    except NotFoundError:
        return None
    return parse_cargo_toml(raw)


def crate_vcs_ref(crate: bytes, top_level: str) -> str:
    """Commit recorded by `cargo package` in the published crate, or "" when absent."""
    try:
        raw = read_targz_file(crate, f"{top_level}/{VCS_INFO}")
    except MalformedError as exc:
        raise InferenceError(f"failed to extract upstream {VCS_INFO}: {exc}") from exc
    if raw is None:
        log_event("cargo_vcs_info_missing", crate=top_level)
        return ""
    try:
        info = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InferenceError(f"failed to extract upstream {VCS_INFO}: {exc}") from exc
    git = info.get("git") if isinstance(info, dict) else None
    sha1 = git.get("sha1") if isinstance(git, dict) else None
    return sha1 if isinstance(sha1, str) else ""


async def find_cargo_toml(repo: Repo, ref: str, pkg: str) -> Tuple[CargoManifest, str]:
    try:
        manifest = await read_cargo_toml(repo, ref, MANIFEST)
    except MalformedError as exc:
        log_event("cargo_toml_root_unreadable", pkg=pkg, ref=ref, error=str(exc))
        manifest = None
    if manifest is not None and manifest.name == pkg:
        return manifest, MANIFEST

    pattern = r'name\s*=\s*"' + re.escape(pkg) + '"'
    candidates: List[Tuple[str, CargoManifest]] = []
    for match in await repo.grep(ref, _MANIFEST_PATHSPEC, pattern):
        if any(path == match.file for path, _ in candidates):
            continue
        try:
            found = await read_cargo_toml(repo, ref, match.file)
        except MalformedError:
            continue
        if found is not None and found.name == pkg:
            candidates.append((match.file, found))
    if not candidates:
        raise NotFoundError("Cargo.toml heuristic found no matches")
    candidates.sort(key=lambda item: (len(item[0]), item[0]))
    if len(candidates) > 1:
        log_event("cargo_toml_candidates", pkg=pkg, ref=ref, matches=[path for path, _ in candidates])
    path, manifest = candidates[0]
    return manifest, path


async def find_and_validate_cargo_toml(repo: Repo, ref: str, name: str, version: str, guess: str) -> str:
    """Returns the manifest path at `ref` once name and version both match."""
    path = posixpath.normpath(posixpath.join(guess or ".", MANIFEST))
    try:
        manifest = await read_cargo_toml(repo, ref, path)
    except MalformedError:
        manifest = None
    if manifest is None or manifest.name != name or not manifest.version_matches(version):
        try:
            manifest, path = await find_cargo_toml(repo, ref, name)
        except NotFoundError as exc:
            if manifest is None:
                raise InferenceError(f"Cargo.toml file not found [path={guess}]") from exc
    if manifest.name != name:
        raise InferenceError(f"mismatched name [expected={name},actual={manifest.name},path={guess}]")
    if not manifest.version_matches(version):
        raise InferenceError(f"mismatched version [expected={version},actual={manifest.version}]")
    return path


async def cargo_toml_search(repo: Repo, pkg: str, manifest_path: str) -> Dict[str, str]:
    """Maps each version to the commit that introduced it in the manifest at `manifest_path`."""
    found: Dict[str, str] = {}
    duplicates: Dict[str, List[str]] = {}
    for commit in await repo.log_touching(manifest_path):
        try:
            manifest = await read_cargo_toml(repo, commit.sha, manifest_path)
        except MalformedError:
            continue
        if manifest is None:
            continue
        if manifest.name != pkg:
            log_event("package_name_mismatch", expected=pkg, actual=manifest.name, path=manifest_path, ref=commit.sha)
            continue
        if not manifest.version or manifest.version == WORKSPACE_VERSION:
            continue
        unchanged = False
        for parent in commit.parents:
            try:
                previous = await read_cargo_toml(repo, parent, manifest_path)
            except MalformedError:
                continue
            if previous is not None and previous.name == pkg and previous.version == manifest.version:
                unchanged = True
                break
        if unchanged:
            continue
        if manifest.version in found:
            duplicates.setdefault(manifest.version, [found[manifest.version]]).append(commit.sha)
            continue
        found[manifest.version] = commit.sha
    for version, commits in duplicates.items():
        log_event("cargo_toml_version_collision", pkg=pkg, version=version, commits=commits)
    return found


async def scan_repo(repo: Repo, target: Target) -> RepoConfig:
    try:
        head = await repo.head()
        _, manifest_path = await find_cargo_toml(repo, head.sha, target.package)
    except NotFoundError as exc:
        log_event("cargo_toml_path_heuristic_failed", pkg=target.package, repo=repo.uri, error=str(exc))
        return RepoConfig(uri=repo.uri, dir=".")
    ref_map: Dict[str, str] = {}
    try:
        ref_map = await cargo_toml_search(repo, target.package, manifest_path)
    except InferenceError as exc:
        log_event("cargo_toml_version_heuristic_failed", pkg=target.package, repo=repo.uri, error=str(exc))
    return RepoConfig(uri=repo.uri, dir=posixpath.dirname(manifest_path) or ".", ref_map=ref_map)


async def infer_ref_and_dir(repo: Repo, target: Target, vcs_ref: str, rcfg: RepoConfig) -> Tuple[str, str]:
    candidates = [
        ("cargo_vcs_info", vcs_ref),
        ("tag", await find_tag_match(repo, target.package, target.version)),
        ("git log", rcfg.ref_map.get(target.version, "")),
    ]
    directory = rcfg.dir or "."
    for source, ref in candidates:
        if not ref:
            continue
        commit = await repo.resolve(ref)
        if commit is None:
            log_event("ref_not_found", source=source, ref=ref)
            continue
        try:
            path = await find_and_validate_cargo_toml(repo, commit.sha, target.package, target.version, directory)
        except InferenceError as exc:
            log_event("ref_invalid", source=source, ref=commit.sha, error=str(exc))
            continue
        log_event("ref_selected", source=source, ref=short_ref(commit.sha))
        return commit.sha, posixpath.dirname(path) or "."
    if not any(ref for _, ref in candidates):
        raise NoValidRefError("no git ref")
    raise NoValidRefError("no valid git ref")


_DEBUG_DENORMALIZED = re.compile(r"^\s*debug\s*=\s*(true|false)\s*$", re.M)
_RESOLVER_TWO = re.compile(r"""^\s*resolver\s*=\s*["']?2["']?\s*$""", re.M)
_PRETTY_ARRAY = re.compile(r"\[\s*\n\s+.*\n\s*\]", re.S)
_CUDDLED_ARRAY = re.compile(r"^\s*\w+\s*=\s*\[[^\n\[\]]*\]", re.M)
_MODERN_HEADER = re.compile(r"#.*to registry \(e\.g\., crates\.io\) dependencies\.")
_DOC_SCRAPE_EXAMPLES = re.compile(r"^\s*doc-scrape-examples\s*=\s*(true|false)\s*$", re.M)


def _raise_floor(current: Optional[str], floor: str) -> str:
    return floor if current is None or semver.cmp(floor, current) > 0 else current


def _lower_ceiling(current: Optional[str], ceiling: str) -> str:
    return ceiling if current is None or semver.cmp(ceiling, current) < 0 else current


def rust_version_bounds(cargo_toml: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Bounds the cargo release that normalized a published Cargo.toml.

    `cargo package` rewrites the manifest, and the rewrite changed shape
    across releases, so formatting details pin a (low, high) range. Either
    side may be None.
    """
    low: Optional[str] = None
    high: Optional[str] = None
    if _DEBUG_DENORMALIZED.search(cargo_toml):
        high = "1.70.0"
    if _DOC_SCRAPE_EXAMPLES.search(cargo_toml):
        low = "1.67.0"
    if _PRETTY_ARRAY.search(cargo_toml):
        low = _raise_floor(low, "1.60.0")
    elif _CUDDLED_ARRAY.search(cargo_toml):
        high = _lower_ceiling(high, "1.59.0")
    if _MODERN_HEADER.search(cargo_toml):
        low = _raise_floor(low, "1.55.0")
    else:
        high = _lower_ceiling(high, "1.54.0")
    if _RESOLVER_TWO.search(cargo_toml):
        high = _lower_ceiling(high, "1.63.0")
        low = _raise_floor(low, "1.51.0")
    elif low is not None and semver.cmp(low, "1.51.0") > 0:
        if high is None or semver.cmp(high, "1.64.0") >= 0:
            low = _raise_floor(low, "1.64.0")
    elif high is not None and semver.cmp(high, "1.63.0") < 0:
        high = _lower_ceiling(high, "1.50.0")
    return low, high
