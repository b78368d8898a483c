from __future__ import annotations

import posixpath
from datetime import timedelta
from typing import List, Optional

from oss_rebuild.adapters.registry.cratesio import CratesIORegistry, CrateVersion
from oss_rebuild.adapters.vcs.uri import canonicalize_repo_uri
from oss_rebuild.archive.summary import ContentSummary
from oss_rebuild.archive.tar import read_targz_file
from oss_rebuild.core import semver
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.domain.verdicts import (
    VERDICT_CARGO_VERSION,
    VERDICT_CARGO_VERSION_GIT,
    VERDICT_CONTENT_DIFF,
    VERDICT_DS_STORE,
    VERDICT_LINE_ENDINGS,
    VERDICT_MISMATCHED_FILES,
    VERDICT_REBUILD_ONLY,
    VERDICT_UPSTREAM_ONLY,
)
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.common import hint_location
from oss_rebuild.ecosystems.cratesio.infer import (
    MANIFEST,
    VCS_INFO,
    crate_vcs_ref,
    infer_ref_and_dir,
    read_cargo_toml,
    rust_version_bounds,
    scan_repo,
)
from oss_rebuild.ecosystems.cratesio.rust_releases import has_musl_build, rust_version_at
from oss_rebuild.ecosystems.cratesio.strategy import CratesIOCargoPackage
from oss_rebuild.exceptions import InferenceError, MalformedError
from oss_rebuild.logging import log_event

_TOOLCHAIN_MARGIN = timedelta(days=7)


def artifact_name(target: Target) -> str:
    return f"{target.package}-{target.version}.crate"


def pick_rust_version(vmeta: CrateVersion, upstream_manifest: str) -> str:
    """Declared `rust-version`, else the release current a week before publication, clamped by manifest shape."""
    rust_version = vmeta.rust_version
    if not rust_version:
        if vmeta.updated is None:
            raise InferenceError("rust version heuristic failed")
        rust_version = rust_version_at(vmeta.updated - _TOOLCHAIN_MARGIN)
    elif rust_version.count(".") == 1:
        rust_version += ".0"
    low, high = rust_version_bounds(upstream_manifest)
    if low is not None and semver.cmp(rust_version, low) < 0:
        rust_version = low
    if high is not None and semver.cmp(rust_version, high) > 0:
        rust_version = high
    if not has_musl_build(rust_version):
        raise InferenceError("rust version unsupported in MUSL builds")
    return rust_version


class CratesIORebuilder(Rebuilder):
    ecosystem = Ecosystem.CRATESIO

    @property
    def cratesio(self) -> CratesIORegistry:
        return self._require(self.registries.cratesio)

    async def infer_repo(self, target: Target) -> str:
        crate = await self.cratesio.crate(target.package)
        return canonicalize_repo_uri(crate.crate.repository)

    async def scan_repo(self, target: Target, repo: Repo) -> RepoConfig:
        return await scan_repo(repo, target)

    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        vmeta = await self.cratesio.version(target.package, target.version)
        crate = await self.cratesio.artifact(target.package, target.version)
        top_level = f"{target.package}-{vmeta.version or target.version}"

        forced = hint_location(hint)
        if forced is not None:
            ref, directory = forced.ref, forced.dir or rcfg.dir
        else:
            ref, directory = await infer_ref_and_dir(repo, target, crate_vcs_ref(crate, top_level), rcfg)

        try:
            manifest = await read_cargo_toml(repo, ref, posixpath.join(directory or ".", MANIFEST))
        except MalformedError as exc:
            raise InferenceError(str(exc)) from exc
        if manifest is None:
            raise InferenceError(f"Cargo.toml file not found [heuristic={rcfg.dir}]")
        if manifest.name != target.package:
            raise InferenceError(
                f"mismatched name [expected={target.package},actual={manifest.name},heuristic={rcfg.dir}]"
            )
        if not manifest.version_matches(target.version):
            raise InferenceError(f"mismatched version [expected={target.version},actual={manifest.version}]")

        try:
            published = read_targz_file(crate, f"{top_level}/{MANIFEST}")
        except MalformedError as exc:
            raise InferenceError(f"failed to extract upstream Cargo.toml: {exc}") from exc
        if published is None:
            raise InferenceError("failed to extract upstream Cargo.toml")
        return CratesIOCargoPackage(
            location=Location(repo=rcfg.uri, ref=ref, dir=directory or "."),
            rust_version=pick_rust_version(vmeta, published.decode("utf-8", errors="replace")),
        )

    async def guess_artifact(self, target: Target) -> str:
        return artifact_name(target)

    async def upstream_artifact(self, target: Target) -> bytes:
        return await self.cratesio.artifact(target.package, target.version)

    def verdict(
        self,
        target: Target,
        up: ContentSummary,
        rb: ContentSummary,
        upstream_only: List[str],
        diffs: List[str],
        rebuild_only: List[str],
        upstream: bytes,
        ref: str,
    ) -> Optional[str]:
        prefix = target.artifact.removesuffix(".crate")
        manifest = posixpath.join(prefix, MANIFEST)
        original = posixpath.join(prefix, "Cargo.toml.orig")
        generated = {manifest, posixpath.join(prefix, VCS_INFO)}
        if original not in up.files and manifest in up.files and original in rb.files:
            # Older cargo wrote no .orig, so the published manifest is the user-authored one.
            if up.file_hashes[up.files.index(manifest)] == rb.file_hashes[rb.files.index(original)]:
                generated.add(original)
        changed = [*rebuild_only, *upstream_only, *diffs]
        cargo_only = bool(changed) and all(path in generated for path in changed)

        upstream_ref = ""
        try:
            upstream_ref = crate_vcs_ref(upstream, prefix)
        except InferenceError as exc:
            log_event("cargo_vcs_info_unreadable", artifact=target.artifact, error=str(exc))

        if any(path.endswith("/.DS_STORE") for path in upstream_only):
            return VERDICT_DS_STORE
        if up.crlf_count > rb.crlf_count:
            return VERDICT_LINE_ENDINGS
        if cargo_only:
            return VERDICT_CARGO_VERSION_GIT if upstream_ref != ref else VERDICT_CARGO_VERSION
        if upstream_only and rebuild_only:
            return VERDICT_MISMATCHED_FILES
        if upstream_only:
            return VERDICT_UPSTREAM_ONLY
        if rebuild_only:
            return VERDICT_REBUILD_ONLY
        if diffs:
            return VERDICT_CONTENT_DIFF
        return None
