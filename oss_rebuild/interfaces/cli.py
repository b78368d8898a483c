import argparse
import asyncio
import json
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from oss_rebuild.adapters.registry.mux import RegistryMux, build_registry_mux
from oss_rebuild.adapters.storage.filesystem_asset_store import FilesystemAssetStore
from oss_rebuild.adapters.storage.filesystem_rundex import FilesystemRundex
from oss_rebuild.adapters.storage.sqlite_rundex import SQLiteRundex
from oss_rebuild.adapters.vcs.git_repository import GitRepository
from oss_rebuild.application.benchmark import load_benchmark
from oss_rebuild.application.builder import Builder, LocalBuilder
from oss_rebuild.application.export import export_run, open_destination
from oss_rebuild.application.pipeline import RebuildPipeline
from oss_rebuild.application.worker_pool import WorkerPool
from oss_rebuild.core.contracts.rundex import Run, Rundex
from oss_rebuild.core.domain.models import Location, Target, Verdict
from oss_rebuild.core.domain.strategies import LocationHint, Strategy
from oss_rebuild.core.types import AssetType, Ecosystem, RunType
from oss_rebuild.ecosystems.registry import decode_build_definition
from oss_rebuild.exceptions import InternalError, RebuildError
from oss_rebuild.logging import log_event, setup_logging, subscribe_to_events, unsubscribe_from_events
from oss_rebuild.runtime_paths import (
    resolve_assets_root,
    resolve_repo_cache_root,
    resolve_rundex_root,
)
from oss_rebuild.settings import Settings, load_settings
from oss_rebuild.time_utils import now_utc

EXIT_OK = 0
EXIT_FAILED_VERDICT = 1
EXIT_INTERNAL = 2


def parse_target(raw: str, artifact: str = "") -> Target:
    """`<ecosystem>/<package>@<version>`; the package may itself contain `/` and a leading `@`."""
    ecosystem, sep, rest = raw.partition("/")
    package, at, version = rest.rpartition("@")
    if not sep or not at or not package or not version:
        raise ValueError(f"target must look like <ecosystem>/<package>@<version>: {raw!r}")
    try:
        eco = Ecosystem(ecosystem)
    except ValueError as exc:
        raise ValueError(f"unknown ecosystem: {ecosystem!r}") from exc
    return Target(ecosystem=eco, package=package, version=version, artifact=artifact)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oss-rebuild", description="Rebuild open-source packages and compare them to upstream.")
    parser.add_argument("--root", type=str, default=None, help="Durable root for assets, rundex, repo cache and logs.")
    parser.add_argument("--timewarp-host", type=str, default=None, help="Host of the time-warped registry proxy.")
    parser.add_argument("--max-concurrency", type=int, default=None, help="Parallel targets for benchmark runs.")
    parser.add_argument("--builder", type=str, default=None, help="Container CLI used to run builds.")
    parser.add_argument("--rundex", choices=["fs", "sqlite"], default="fs", help="Rundex backend.")
    parser.add_argument("--verbose", action="store_true", help="Print log events to stderr.")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("smoketest", "Build one target locally and print its verdict."),
        ("rebuild", "Build one target in attest mode and record the result."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("target", help="<ecosystem>/<package>@<version>")
        cmd.add_argument("--artifact", type=str, default="", help="Artifact name; guessed when omitted.")
        cmd.add_argument("--repo", type=str, default="", help="Force the source repository.")
        cmd.add_argument("--ref", type=str, default="", help="Force the commit to build.")
        cmd.add_argument("--dir", type=str, default="", help="Force the package directory.")
        cmd.add_argument("--strategy", type=str, default=None, help="Build definition YAML to use instead of inference.")

    bench = sub.add_parser("benchmark", help="Run every target in a benchmark file.")
    bench.add_argument("benchfile")
    bench.add_argument("--mode", choices=[t.value for t in RunType], default=RunType.SMOKETEST.value)

    export = sub.add_parser("export", help="Copy a run's records and assets to file:// or gs://.")
    export.add_argument("--run", required=True, dest="run_id")
    export.add_argument("--destination", required=True)
    export.add_argument(
        "--assets",
        type=str,
        default=None,
        help="Comma-separated asset types (default: artifact, logs, info, build definition, Dockerfile, diff).",
    )
    return parser


@dataclass
class _Context:
    settings: Settings
    registries: RegistryMux
    rundex: Rundex
    builder: Builder


def _new_run_id() -> str:
    return f"{now_utc().strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"


def _open_rundex(settings: Settings, backend: str) -> Rundex:
    if backend == "sqlite":
        db_path = Path(settings.root) / "db" / "rundex.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return SQLiteRundex(db_path)
    return FilesystemRundex(resolve_rundex_root(settings.root))


def _pipeline(ctx: _Context, run_id: str, rundex: Optional[Rundex]) -> RebuildPipeline:
    cache = resolve_repo_cache_root(ctx.settings.root)

    async def opener(uri: str) -> GitRepository:
        return await GitRepository.clone(uri, cache)

    return RebuildPipeline(
        registries=ctx.registries,
        builder=ctx.builder,
        repo_opener=opener,
        assets=FilesystemAssetStore(resolve_assets_root(ctx.settings.root), run_id),
        rundex=rundex,
        run_id=run_id,
        timewarp_host=ctx.settings.timewarp_host,
    )


def _hint(args) -> Optional[Strategy]:
    if args.strategy:
        return decode_build_definition(Path(args.strategy).read_bytes())
    if args.repo or args.ref or args.dir:
        return LocationHint(location=Location(repo=args.repo, ref=args.ref, dir=args.dir))
    return None


def _print_verdict(verdict: Verdict) -> None:
    print(json.dumps(verdict.model_dump(mode="json"), sort_keys=True))


async def _run_single(ctx: _Context, args, run_type: RunType) -> int:
    target = parse_target(args.target, args.artifact)
    run_id = _new_run_id()
    rundex: Optional[Rundex] = None
    if run_type == RunType.ATTEST:
        rundex = ctx.rundex
        await rundex.write_run(Run(id=run_id, type=run_type, created=now_utc()))
    verdict = await _pipeline(ctx, run_id, rundex).run(target, _hint(args))
    _print_verdict(verdict)
    return EXIT_OK if verdict.success else EXIT_FAILED_VERDICT


async def _run_benchmark(ctx: _Context, args) -> int:
    bench = load_benchmark(args.benchfile)
    run_type = RunType(args.mode)
    run_id = _new_run_id()
    await ctx.rundex.write_run(
        Run(
            id=run_id,
            benchmark_name=Path(args.benchfile).name,
            benchmark_hash=bench.hash(),
            type=run_type,
            created=now_utc(),
        )
    )
    pipeline = _pipeline(ctx, run_id, ctx.rundex)
    pool = WorkerPool(pipeline.run, ctx.settings.concurrency_for(run_type))
    failures = 0
    total = 0
    async for verdict in pool.process(bench.targets()):
        total += 1
        failures += 0 if verdict.success else 1
        status = "OK" if verdict.success else f"FAIL {verdict.message}"
        print(f"{verdict.target} {status}")
    print(f"run {run_id}: {total - failures}/{total} succeeded")
    return EXIT_OK if failures == 0 else EXIT_FAILED_VERDICT


async def _run_export(ctx: _Context, args) -> int:
    types: Optional[List[AssetType]] = None
    if args.assets:
        types = [AssetType(value.strip()) for value in args.assets.split(",") if value.strip()]
    source = FilesystemAssetStore(resolve_assets_root(ctx.settings.root), args.run_id)
    async with httpx.AsyncClient(timeout=ctx.settings.http_timeout_seconds) as client:
        destination = open_destination(
            args.destination,
            client=client,
            endpoint=ctx.settings.cloud_endpoint,
            token=ctx.settings.cloud_token,
        )
        if types is None:
            summary = await export_run(args.run_id, ctx.rundex, source, destination)
        else:
            summary = await export_run(args.run_id, ctx.rundex, source, destination, types)
    print(
        f"exported run {args.run_id}: {summary.rebuilds} rebuilds, "
        f"{summary.assets} assets ({summary.missing_assets} missing)"
    )
    return EXIT_OK


def _progress_printer(record: Dict[str, Any]) -> None:
    print(f"[{record['event']}] {json.dumps(record['data'], default=str)}", file=sys.stderr)


async def run_cli(argv: Optional[List[str]] = None, builder: Optional[Builder] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(
        root=Path(args.root) if args.root else None,
        timewarp_host=args.timewarp_host,
        max_concurrency=args.max_concurrency,
        builder=args.builder,
    )
    setup_logging(settings.root)
    if args.verbose:
        subscribe_to_events(_progress_printer)
    registries = build_registry_mux(settings)
    ctx = _Context(
        settings=settings,
        registries=registries,
        rundex=_open_rundex(settings, args.rundex),
        builder=builder or LocalBuilder(settings.builder),
    )
    try:
        if args.command == "smoketest":
            return await _run_single(ctx, args, RunType.SMOKETEST)
        if args.command == "rebuild":
            return await _run_single(ctx, args, RunType.ATTEST)
        if args.command == "benchmark":
            return await _run_benchmark(ctx, args)
        return await _run_export(ctx, args)
    finally:
        await registries.aclose()
        if args.verbose:
            unsubscribe_from_events(_progress_printer)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(run_cli(argv))
    except KeyboardInterrupt:
        print("\n[HALT] Interrupted by user.", file=sys.stderr)
        return EXIT_INTERNAL
    except InternalError as e:
        log_event("internal_error", error=str(e))
        print(f"[FATAL] internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL
    except (RebuildError, ValueError, OSError) as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        return EXIT_INTERNAL


if __name__ == "__main__":
    sys.exit(main())
