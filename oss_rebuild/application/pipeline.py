"""
Per-target rebuild pipeline.

Walks one target through inferring -> fetching_upstream -> building ->
stabilizing -> comparing -> done, recording timings, writing assets and
producing exactly one Verdict. Failures short-circuit to done with a
stage-tagged message; transient failures are retried once. InternalError
is never turned into a verdict.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.application.builder import Builder, BuildResult
from oss_rebuild.core.contracts.repositories import AssetStore, Repo
from oss_rebuild.core.contracts.rundex import Rebuild, RundexWriter
from oss_rebuild.core.domain.models import Asset, BuildEnv, RepoConfig, Target, Timings, Verdict
from oss_rebuild.core.domain.state_machine import PipelineStateMachine
from oss_rebuild.core.domain.strategies import LocationHint, Strategy
from oss_rebuild.core.domain.verdicts import (
    STAGE_BUILD,
    STAGE_COMPARE,
    STAGE_FETCHING_UPSTREAM,
    STAGE_INFERENCE,
    stage_message,
)
from oss_rebuild.core.types import AssetType, PipelineState
from oss_rebuild.ecosystems.base import Comparison, Rebuilder, RepoOpener
from oss_rebuild.ecosystems.registry import encode_build_definition, rebuilder_for
from oss_rebuild.exceptions import (
    AssetIOError,
    BuildFailure,
    CompareMismatch,
    InternalError,
    RebuildError,
    TransientError,
)
from oss_rebuild.logging import log_event
from oss_rebuild.time_utils import now_utc

EXECUTOR_VERSION = "oss-rebuild-core/0.1.0"
MAX_ATTEMPTS = 2


class StageFailure(Exception):
    """A RebuildError raised inside a named stage."""

    def __init__(self, stage: str, cause: RebuildError):
        super().__init__(stage_message(stage, cause))
        self.stage = stage
        self.cause = cause


@dataclass
class _Attempt:
    target: Target
    timings: Timings = field(default_factory=Timings)
    strategy: Optional[Strategy] = None
    machine: PipelineStateMachine = field(default_factory=PipelineStateMachine)


class RebuildPipeline:
    def __init__(
        self,
        *,
        registries: RegistryMux,
        builder: Builder,
        repo_opener: RepoOpener,
        assets: Optional[AssetStore] = None,
        rundex: Optional[RundexWriter] = None,
        run_id: str = "",
        timewarp_host: str = "",
        rebuilder_factory: Optional[Callable[[Target], Rebuilder]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registries = registries
        self.builder = builder
        self.repo_opener = repo_opener
        self.assets = assets
        self.rundex = rundex
        self.run_id = run_id
        self.timewarp_host = timewarp_host
        self.rebuilder_factory = rebuilder_factory or (lambda target: rebuilder_for(target.ecosystem, registries))
        self.clock = clock

    async def run(self, target: Target, hint: Optional[Strategy] = None) -> Verdict:
        log_event("rebuild_started", target=str(target), run_id=self.run_id)
        for attempt_number in range(1, MAX_ATTEMPTS + 1):
            attempt = _Attempt(target=target)
            try:
                await self._attempt(attempt, hint)
                message = ""
            except CompareMismatch as mismatch:
                message = mismatch.verdict
            except StageFailure as failure:
                self._finish(attempt)
                if isinstance(failure.cause, TransientError) and attempt_number < MAX_ATTEMPTS:
                    log_event("rebuild_retry", target=str(target), stage=failure.stage, error=str(failure.cause))
                    continue
                message = str(failure)
            return await self._emit(attempt, message)
        raise InternalError("rebuild attempts exhausted without a verdict")

    def _advance(self, attempt: _Attempt, state: PipelineState) -> None:
        attempt.machine.advance(state)
        log_event("pipeline_state", target=str(attempt.target), state=state.value)

    def _finish(self, attempt: _Attempt) -> None:
        if not attempt.machine.done:
            self._advance(attempt, PipelineState.DONE)

    async def _stage(self, stage: str, awaitable: Awaitable):
        try:
            return await awaitable
        except InternalError:
            raise
        except RebuildError as exc:
            raise StageFailure(stage, exc) from exc
        except asyncio.TimeoutError as exc:
            raise StageFailure(stage, TransientError("timed out")) from exc

    async def _attempt(self, attempt: _Attempt, hint: Optional[Strategy]) -> None:
        rebuilder = self.rebuilder_factory(attempt.target)
        await self._stage(STAGE_INFERENCE, self._infer(attempt, rebuilder, hint))

        self._advance(attempt, PipelineState.FETCHING_UPSTREAM)
        upstream = await self._stage(STAGE_FETCHING_UPSTREAM, rebuilder.upstream_artifact(attempt.target))

        self._advance(attempt, PipelineState.BUILDING)
        result = await self._stage(STAGE_BUILD, self._build(attempt, rebuilder))

        self._advance(attempt, PipelineState.STABILIZING)
        ref = attempt.strategy.location.ref if attempt.strategy is not None else ""
        comparison = await self._stage(STAGE_COMPARE, self._compare(rebuilder, attempt.target, upstream, result.artifact, ref))
        self._advance(attempt, PipelineState.COMPARING)
        self._finish(attempt)
        if comparison.verdict:
            raise CompareMismatch(comparison.verdict)

    async def _infer(self, attempt: _Attempt, rebuilder: Rebuilder, hint: Optional[Strategy]) -> None:
        started = self.clock()
        target = attempt.target
        if not target.artifact:
            target = target.with_artifact(await rebuilder.guess_artifact(target))
            attempt.target = target
        if hint is not None and not isinstance(hint, LocationHint):
            attempt.strategy = hint
            attempt.timings.infer = self.clock() - started
            log_event("strategy_from_hint", target=str(target), strategy=type(hint).__name__)
            return

        repo: Optional[Repo] = None
        rcfg = RepoConfig(uri="")
        try:
            if rebuilder.needs_repo:
                repo, rcfg = await self._clone(rebuilder, target, hint, attempt)
            attempt.strategy = await rebuilder.infer_strategy(target, repo, rcfg, hint)
        finally:
            if repo is not None:
                await repo.close()
        attempt.timings.infer = self.clock() - started - attempt.timings.source
        log_event(
            "strategy_inferred",
            target=str(target),
            strategy=type(attempt.strategy).__name__,
            ref=attempt.strategy.location.ref,
            dir=attempt.strategy.location.dir,
        )

    async def _clone(
        self, rebuilder: Rebuilder, target: Target, hint: Optional[Strategy], attempt: _Attempt
    ) -> Tuple[Repo, RepoConfig]:
        if hint is not None and hint.location.repo:
            uri = hint.location.repo
        else:
            uri = await rebuilder.infer_repo(target)
        started = self.clock()
        repo, rcfg = await rebuilder.clone_repo(target, uri, self.repo_opener)
        attempt.timings.source = self.clock() - started
        attempt.timings.clone_estimate = attempt.timings.source
        return repo, rcfg

    async def _build(self, attempt: _Attempt, rebuilder: Rebuilder) -> BuildResult:
        if attempt.strategy is None:
            raise InternalError("build reached without a strategy")
        target = attempt.target
        instructions = attempt.strategy.generate_for(target, BuildEnv(timewarp_host=self.timewarp_host))
        await self._write(target, AssetType.BUILD_DEFINITION, encode_build_definition(attempt.strategy))
        await self._write(target, AssetType.DOCKERFILE, self.builder.render(target, instructions).encode("utf-8"))
        started = self.clock()
        try:
            result = await self.builder.build(target, instructions, rebuilder.classify_build_failure)
        except BuildFailure as failure:
            attempt.timings.build = self.clock() - started
            await self._write(target, AssetType.DEBUG_LOGS, failure.logs.encode("utf-8"))
            raise
        attempt.timings.build = self.clock() - started
        await self._write(target, AssetType.DEBUG_LOGS, result.logs.encode("utf-8"))
        await self._write(target, AssetType.REBUILD, result.artifact)
        return result

    async def _compare(self, rebuilder: Rebuilder, target: Target, upstream: bytes, rebuild: bytes, ref: str) -> Comparison:
        comparison = rebuilder.compare(target, upstream, rebuild, ref=ref)
        await self._write(target, AssetType.DEBUG_UPSTREAM, comparison.stable_upstream)
        await self._write(target, AssetType.DEBUG_REBUILD, comparison.stable_rebuild)
        await self._write(target, AssetType.DIFF, comparison.render().encode("utf-8"))
        return comparison

    async def _write(self, target: Target, asset_type: AssetType, data: bytes) -> None:
        if self.assets is None:
            return
        await self.assets.write_bytes(Asset(target=target, type=asset_type), data)

    def _build_info(self, attempt: _Attempt, verdict: Verdict) -> Dict[str, object]:
        return {
            "target": attempt.target.model_dump(mode="json"),
            "run_id": self.run_id,
            "executor_version": EXECUTOR_VERSION,
            "success": verdict.success,
            "message": verdict.message,
            "strategy": verdict.strategy,
            "timings": attempt.timings.model_dump(),
            "states": [state.value for state in attempt.machine.history],
        }

    async def _emit(self, attempt: _Attempt, message: str) -> Verdict:
        verdict = Verdict(
            target=attempt.target,
            run_id=self.run_id,
            success=message == "",
            message=message,
            strategy=attempt.strategy.to_oneof() if attempt.strategy is not None else None,
            timings=attempt.timings,
            created=now_utc(),
        )
        try:
            await self._write(
                attempt.target,
                AssetType.BUILD_INFO,
                json.dumps(self._build_info(attempt, verdict), indent=2).encode("utf-8"),
            )
        except AssetIOError as exc:
            log_event("build_info_write_failed", level=logging.WARNING, target=str(attempt.target), error=str(exc))
        if self.rundex is not None:
            await self.rundex.write_rebuild(
                Rebuild.from_verdict(verdict, EXECUTOR_VERSION, self.run_id, verdict.created)
            )
        log_event(
            "rebuild_verdict",
            target=str(attempt.target),
            run_id=self.run_id,
            success=verdict.success,
            message=verdict.message,
        )
        return verdict
