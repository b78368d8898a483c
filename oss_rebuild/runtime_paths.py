from __future__ import annotations

import os
from pathlib import Path


def durable_root() -> Path:
    raw = os.getenv("OSS_REBUILD_ROOT", "").strip()
    return Path(raw) if raw else (Path.cwd() / ".oss_rebuild")


def resolve_assets_root(root: str | Path | None = None) -> Path:
    base = Path(root) if root else durable_root()
    target = base / "assets"
    target.mkdir(parents=True, exist_ok=True)
    return target


def resolve_rundex_root(root: str | Path | None = None) -> Path:
    base = Path(root) if root else durable_root()
    target = base / "rundex"
    target.mkdir(parents=True, exist_ok=True)
    return target


def resolve_repo_cache_root(root: str | Path | None = None) -> Path:
    base = Path(root) if root else durable_root()
    target = base / "repos"
    target.mkdir(parents=True, exist_ok=True)
    return target
