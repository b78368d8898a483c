from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.archive.formats import format_for_artifact
from oss_rebuild.archive.stabilize import stabilize
from oss_rebuild.archive.summary import ContentSummary, summarize
from oss_rebuild.core.contracts.repositories import Repo
from oss_rebuild.core.domain.models import RepoConfig, Target
from oss_rebuild.core.domain.strategies import Strategy
from oss_rebuild.core.domain.verdicts import classify
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import InternalError

RepoOpener = Callable[[str], Awaitable[Repo]]


@dataclass
class Comparison:
    verdict: Optional[str]
    upstream: ContentSummary
    rebuild: ContentSummary
    upstream_only: List[str] = field(default_factory=list)
    diffs: List[str] = field(default_factory=list)
    rebuild_only: List[str] = field(default_factory=list)
    stable_upstream: bytes = b""
    stable_rebuild: bytes = b""

    def render(self) -> str:
        lines = [f"verdict: {self.verdict or 'match'}"]
        lines.extend(f"- {path}" for path in self.upstream_only)
        lines.extend(f"~ {path}" for path in self.diffs)
        lines.extend(f"+ {path}" for path in self.rebuild_only)
        lines.append(f"crlf: upstream={self.upstream.crlf_count} rebuild={self.rebuild.crlf_count}")
        return "\n".join(lines) + "\n"


class Rebuilder(ABC):
    """Per-ecosystem inference, artifact naming and comparison."""

    ecosystem: Ecosystem
    needs_repo = True

    def __init__(self, registries: RegistryMux) -> None:
        self.registries = registries

    def _require(self, client):
        if client is None:
            raise InternalError(f"{self.ecosystem.value} registry client is not configured")
        return client

    @abstractmethod
    async def infer_repo(self, target: Target) -> str: ...

    async def clone_repo(self, target: Target, repo_uri: str, opener: RepoOpener) -> Tuple[Repo, RepoConfig]:
        repo = await opener(repo_uri)
        try:
            rcfg = await self.scan_repo(target, repo)
        except BaseException:
            await repo.close()
            raise
        return repo, rcfg

    async def scan_repo(self, target: Target, repo: Repo) -> RepoConfig:
        return RepoConfig(uri=repo.uri)

    @abstractmethod
    async def infer_strategy(
        self, target: Target, repo: Repo, rcfg: RepoConfig, hint: Optional[Strategy] = None
    ) -> Strategy: ...

    @abstractmethod
    async def guess_artifact(self, target: Target) -> str: ...

    @abstractmethod
    async def upstream_artifact(self, target: Target) -> bytes: ...

    def classify_build_failure(self, phase: str, output: str) -> str:
        return f"failed to execute strategy.{phase}"

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
        return classify(up, rb, upstream_only, diffs, rebuild_only)

    def compare(self, target: Target, upstream: bytes, rebuild: bytes, ref: str = "") -> Comparison:
        """Stabilizes both artifacts and classifies the first discrepancy. `ref` is the commit that was built."""
        fmt = format_for_artifact(target.artifact)
        stable_upstream = stabilize(upstream, fmt, self.ecosystem)
        stable_rebuild = stabilize(rebuild, fmt, self.ecosystem)
        up = summarize(stable_upstream, fmt, target.artifact)
        rb = summarize(stable_rebuild, fmt, target.artifact)
        upstream_only, diffs, rebuild_only = up.diff(rb)
        return Comparison(
            verdict=self.verdict(target, up, rb, upstream_only, diffs, rebuild_only, upstream, ref),
            upstream=up,
            rebuild=rb,
            upstream_only=upstream_only,
            diffs=diffs,
            rebuild_only=rebuild_only,
            stable_upstream=stable_upstream,
            stable_rebuild=stable_rebuild,
        )
