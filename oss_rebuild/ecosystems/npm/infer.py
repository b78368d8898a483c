"""
Locating and validating package.json across repository history.

The ref search tries, in order: the registry's recorded commit, a tag
naming the version, and the version map built by walking every commit that
touched the manifest. A commit whose manifest has the right name but the
wrong version is kept as a last resort and rebuilt with a version override.
"""
from __future__ import annotations

import posixpath
import re
from typing import Dict, List, Optional, Tuple

from oss_rebuild.adapters.registry.npm import NPMVersion, PackageJSON, parse_package_json
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import RepoConfig, Target
from oss_rebuild.ecosystems.common import find_tag_match, short_ref
from oss_rebuild.exceptions import InferenceError, NoValidRefError, NotFoundError, VersionMismatchError
from oss_rebuild.logging import log_event

MANIFEST = "package.json"
_MANIFEST_PATHSPEC = r".*/package.json$"


async def read_package_json(repo: Repo, ref: str, path: str) -> Optional[PackageJSON]:
    """Returns the parsed manifest, or None when it is missing or not a JSON object."""
    try:
        raw = await repo.read_file(ref, path)
    except NotFoundError:
        return None
    return parse_package_json(raw)


def _manifest_dir(path: str) -> str:
    return posixpath.dirname(path) or "."


async def find_package_json(repo: Repo, ref: str, pkg: str) -> Tuple[PackageJSON, str]:
    tail = pkg[pkg.index("/") + 1:] if "/" in pkg else pkg
    for path in (MANIFEST, posixpath.join("packages", tail, MANIFEST)):
        manifest = await read_package_json(repo, ref, path)
        if manifest is not None and manifest.name == pkg:
            return manifest, path

    pattern = r'"name":\s*"' + re.escape(pkg) + '"'
    candidates: List[Tuple[str, PackageJSON]] = []
    for match in await repo.grep(ref, _MANIFEST_PATHSPEC, pattern):
        if any(path == match.file for path, _ in candidates):
            continue
        manifest = await read_package_json(repo, ref, match.file)
        if manifest is not None and manifest.name == pkg:
            candidates.append((match.file, manifest))
    if not candidates:
        raise NotFoundError("package.json heuristic found no matches")
    candidates.sort(key=lambda item: (len(item[0]), item[0]))
    if len(candidates) > 1:
        log_event("package_json_candidates", pkg=pkg, ref=ref, matches=[path for path, _ in candidates])
    path, manifest = candidates[0]
    return manifest, path


async def find_and_validate_package_json(repo: Repo, ref: str, name: str, version: str, guess: str) -> str:
    """Returns the manifest path at `ref` once name and version both match."""
    path = posixpath.normpath(posixpath.join(guess or ".", MANIFEST))
    manifest = await read_package_json(repo, ref, path)
    if manifest is None or manifest.name != name:
        try:
            manifest, path = await find_package_json(repo, ref, name)
        except NotFoundError as exc:
            if manifest is None:
                raise InferenceError(f"package.json file not found [path={guess}]") from exc
    if manifest.name != name:
        raise InferenceError(f"mismatched name [expected={name},actual={manifest.name},path={guess}]")
    if manifest.version != version:
        raise VersionMismatchError(f"mismatched version [expected={version},actual={manifest.version}]")
    return path


async def pkg_json_search(repo: Repo, pkg: str, manifest_path: str) -> Dict[str, str]:
    """Maps each version to the commit that introduced it in the manifest at `manifest_path`."""
    found: Dict[str, str] = {}
    duplicates: Dict[str, List[str]] = {}
    for commit in await repo.log_touching(manifest_path):
        manifest = await read_package_json(repo, commit.sha, manifest_path)
        if manifest is None:
            continue
        if manifest.name != pkg:
            log_event(
                "package_name_mismatch",
                expected=pkg,
                actual=manifest.name,
                path=manifest_path,
                ref=commit.sha,
            )
            continue
        if not manifest.version:
            continue
        unchanged = False
        for parent in commit.parents:
            previous = await read_package_json(repo, parent, manifest_path)
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
        log_event("package_json_version_collision", pkg=pkg, version=version, commits=commits)
    return found


async def scan_repo(repo: Repo, target: Target) -> RepoConfig:
    """Locates the manifest at HEAD and builds the version-to-commit map."""
    manifest_path = MANIFEST
    try:
        head = await repo.head()
        _, manifest_path = await find_package_json(repo, head.sha, target.package)
    except NotFoundError as exc:
        log_event("package_json_path_heuristic_failed", pkg=target.package, repo=repo.uri, error=str(exc))
    ref_map: Dict[str, str] = {}
    try:
        ref_map = await pkg_json_search(repo, target.package, manifest_path)
    except InferenceError as exc:
        log_event("package_json_version_heuristic_failed", pkg=target.package, repo=repo.uri, error=str(exc))
    return RepoConfig(uri=repo.uri, dir=_manifest_dir(manifest_path), ref_map=ref_map)


async def infer_from_repo(
    repo: Repo, target: Target, vmeta: NPMVersion, rcfg: RepoConfig
) -> Tuple[str, str, str]:
    """Returns (ref, dir, version_override) for the first heuristic that validates."""
    if vmeta.repository.directory:
        if rcfg.dir not in ("", ".") and rcfg.dir != vmeta.repository.directory:
            log_event("package_json_path_disagreement", metadata=vmeta.repository.directory, heuristic=rcfg.dir)
        directory = vmeta.repository.directory
    else:
        directory = rcfg.dir or "."

    candidates = [
        ("registry", vmeta.git_head),
        ("tag", await find_tag_match(repo, target.package, target.version)),
        ("git log", rcfg.ref_map.get(target.version, "")),
    ]
    bad_version_ref = ""
    for source, ref in candidates:
        if not ref:
            continue
        commit = await repo.resolve(ref)
        if commit is None:
            log_event("ref_not_found", source=source, ref=ref)
            continue
        try:
            path = await find_and_validate_package_json(repo, commit.sha, target.package, target.version, directory)
        except VersionMismatchError as exc:
            log_event("ref_invalid", source=source, ref=commit.sha, error=str(exc))
            if source != "git log" and not bad_version_ref:
                bad_version_ref = commit.sha
            continue
        except InferenceError as exc:
            log_event("ref_invalid", source=source, ref=commit.sha, error=str(exc))
            continue
        log_event("ref_selected", source=source, ref=short_ref(commit.sha))
        return commit.sha, _manifest_dir(path), ""

    if bad_version_ref:
        log_event("ref_selected", source="version override", ref=short_ref(bad_version_ref))
        return bad_version_ref, directory, target.version
    if not any(ref for _, ref in candidates):
        raise NoValidRefError("no git ref")
    raise NoValidRefError("no valid git ref")
