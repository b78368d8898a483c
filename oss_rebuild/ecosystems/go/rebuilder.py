from __future__ import annotations

from typing import Optional

from oss_rebuild.adapters.registry.go import GoProxy
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import Location, RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.common import hint_location
from oss_rebuild.ecosystems.go.strategy import GoBuild
from oss_rebuild.exceptions import NotFoundError

_REPO_HOSTS = ("github.com/", "golang.org/")


def repo_for_module(module: str) -> str:
    """Repository URL encoded in a module path hosted on a known forge."""
    if module.startswith(_REPO_HOSTS):
        parts = module.split("/")
        if len(parts) >= 3:
            return "https://" + "/".join(parts[:3])
    raise NotFoundError("could not infer repository for go module")


class GoRebuilder(Rebuilder):
    ecosystem = Ecosystem.GO

    @property
    def proxy(self) -> GoProxy:
        return self._require(self.registries.go)

    async def infer_repo(self, target: Target) -> str:
        return repo_for_module(target.package)

    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy:
        forced = hint_location(hint)
        if forced is not None:
            return GoBuild(location=Location(repo=rcfg.uri, ref=forced.ref, dir=forced.dir))
        # Module versions are tags in the source repository.
        return GoBuild(location=Location(repo=rcfg.uri, ref=target.version))

    async def guess_artifact(self, target: Target) -> str:
        return f"{target.version}.zip"

    async def upstream_artifact(self, target: Target) -> bytes:
        return await self.proxy.artifact(target.package, target.version)
