from __future__ import annotations

from typing import Optional

from oss_rebuild.core.semver import Semver
from oss_rebuild.ecosystems.npm.node_releases import UNOFFICIAL_NODE_RELEASES
from oss_rebuild.exceptions import InferenceError

DEFAULT_NODE_VERSION = "10.17.0"


def pick_npm_version(npm_version: str) -> str:
    """Maps a publishing npm version to one that can still be installed and run."""
    if not npm_version:
        raise InferenceError("No NPM version")
    version = Semver.parse(npm_version)
    if version.prerelease or version.build:
        raise InferenceError(f"Unsupported NPM version '{npm_version}'")
    if version.major < 5:
        return "5.0.4"
    if version.major == 5 and version.minor in (4, 5):
        return "5.6.0"
    return npm_version


def pick_node_version(node_version: str) -> str:
    """
    Chooses a Node release with a musl build for `node_version`.

    Unknown versions newer than the release table are trusted as-is. When
    the exact release lacks a musl build, the next higher musl release is
    located and the newest musl patch on its minor line is returned.
    """
    if not node_version:
        return DEFAULT_NODE_VERSION
    version = Semver.parse(node_version)
    if not UNOFFICIAL_NODE_RELEASES or version > UNOFFICIAL_NODE_RELEASES[0].version:
        return node_version
    musl = [release.version for release in UNOFFICIAL_NODE_RELEASES if release.has_musl]
    if version in musl:
        return node_version
    next_higher: Optional[Semver] = None
    for candidate in musl:
        if candidate > version and (next_higher is None or candidate < next_higher):
            next_higher = candidate
    if next_higher is None:
        raise InferenceError(f"no musl Node release at or above {node_version}")
    line = [candidate for candidate in musl if (candidate.major, candidate.minor) == (next_higher.major, next_higher.minor)]
    return str(max(line))
