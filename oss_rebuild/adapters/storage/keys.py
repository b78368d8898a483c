from __future__ import annotations

from oss_rebuild.core.domain.models import Asset, Target


def encode_target(target: Target) -> str:
    """File-system safe single path segment for a target."""
    return target.id().replace("/", "!").replace("@", "")


def asset_key(run_id: str, asset: Asset) -> str:
    return f"{run_id}/{encode_target(asset.target)}/{asset.filename()}"
