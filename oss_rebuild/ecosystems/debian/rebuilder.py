from __future__ import annotations

import re
from typing import List, Optional

from oss_rebuild.adapters.registry.debian import DSC, DebianRegistry, artifact_name, pool_url, split_package_id
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.domain.verdicts import VERDICT_CONTENT_DIFF, VERDICT_REBUILD_LARGER, VERDICT_UPSTREAM_LARGER
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Comparison, Rebuilder
from oss_rebuild.ecosystems.debian.strategy import DebianPackage, FileWithChecksum
from oss_rebuild.exceptions import InferenceError, UnsupportedError

_ORIG = re.compile(r"\.orig\.tar\.(gz|xz|bz2)$")
_DEBIAN = re.compile(r"\.(debian\.tar|diff)\.(gz|xz|bz2)$")
_NATIVE = re.compile(r"\.tar\.(gz|xz|bz2)$")


def build_requirements(value: str) -> List[str]:
    """Package names from a Build-Depends field, dropping version constraints and arch qualifiers."""
    names: List[str] = []
    for dep in value.split(","):
        dep = dep.strip()
        if not dep:
            continue
        names.append(dep.split(" ")[0].strip())
    return names


def strategy_from_dsc(component: str, name: str, dsc_url: str, dsc: DSC) -> DebianPackage:
    strategy = DebianPackage(dsc=FileWithChecksum(url=dsc_url))
    for stanza in dsc.stanzas:
        for field_name, values in stanza.fields.items():
            if field_name == "Files":
                for value in values:
                    elems = value.strip().split(" ")
                    if len(elems) != 3:
                        raise InferenceError(f"unexpected dsc File element: {value}")
                    md5, _, filename = elems
                    entry = FileWithChecksum(url=pool_url(component, name, filename), md5=md5)
                    if _ORIG.search(filename):
                        strategy.orig = entry
                    elif _DEBIAN.search(filename):
                        strategy.debian = entry
                    elif _NATIVE.search(filename):
                        if strategy.native.url:
                            raise InferenceError(f"multiple matches for native source: {strategy.native.url}, {filename}")
                        strategy.native = entry
            elif field_name in ("Build-Depends", "Build-Depends-Indep") and values:
                strategy.requirements.extend(build_requirements(values[0]))
    if (not strategy.orig.url or not strategy.debian.url) and not strategy.native.url:
        raise InferenceError(f"failed to find source files in the .dsc file: {dsc_url}")
    return strategy


class DebianRebuilder(Rebuilder):
    """Source packages come from the archive itself, so no repository is cloned."""

    ecosystem = Ecosystem.DEBIAN
    needs_repo = False

    @property
    def debian(self) -> DebianRegistry:
        return self._require(self.registries.debian)

    async def infer_repo(self, target: Target) -> str:
        return ""

    async def infer_strategy(
        self, target: Target, repo: Optional[Repo], rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        if hint is not None:
            raise UnsupportedError(f"unsupported hint type: {type(hint).__name__}")
        component, name = split_package_id(target.package)
        dsc_url, dsc = await self.debian.dsc(component, name, target.version)
        return strategy_from_dsc(component, name, dsc_url, dsc)

    async def guess_artifact(self, target: Target) -> str:
        _, name = split_package_id(target.package)
        return artifact_name(name, target.version)

    async def upstream_artifact(self, target: Target) -> bytes:
        component, name = split_package_id(target.package)
        return await self.debian.artifact(component, name, target.artifact)

    def compare(self, target: Target, upstream: bytes, rebuild: bytes, ref: str = "") -> Comparison:
        comparison = super().compare(target, upstream, rebuild, ref)
        if len(comparison.stable_rebuild) > len(comparison.stable_upstream):
            comparison.verdict = VERDICT_REBUILD_LARGER
        elif len(comparison.stable_rebuild) < len(comparison.stable_upstream):
            comparison.verdict = VERDICT_UPSTREAM_LARGER
        elif comparison.stable_rebuild != comparison.stable_upstream:
            comparison.verdict = VERDICT_CONTENT_DIFF
        else:
            comparison.verdict = None
        return comparison
