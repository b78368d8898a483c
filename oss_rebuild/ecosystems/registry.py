"""
Ecosystem dispatch and the YAML build-definition codec.

Importing this module registers every strategy variant so that persisted
`{"<Variant>": {...}}` envelopes can be decoded.
"""
from __future__ import annotations

from typing import Dict, Type

import yaml

from oss_rebuild.adapters.registry.mux import RegistryMux
from oss_rebuild.core.domain.strategies import Strategy, strategy_from_oneof
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.ecosystems.base import Rebuilder
from oss_rebuild.ecosystems.cratesio.rebuilder import CratesIORebuilder
from oss_rebuild.ecosystems.debian.rebuilder import DebianRebuilder
from oss_rebuild.ecosystems.go.rebuilder import GoRebuilder
from oss_rebuild.ecosystems.maven.rebuilder import MavenRebuilder
from oss_rebuild.ecosystems.npm.rebuilder import NPMRebuilder
from oss_rebuild.ecosystems.pypi.rebuilder import PyPIRebuilder
from oss_rebuild.exceptions import MalformedError, UnsupportedError

REBUILDERS: Dict[Ecosystem, Type[Rebuilder]] = {
    Ecosystem.NPM: NPMRebuilder,
    Ecosystem.PYPI: PyPIRebuilder,
    Ecosystem.CRATESIO: CratesIORebuilder,
    Ecosystem.DEBIAN: DebianRebuilder,
    Ecosystem.MAVEN: MavenRebuilder,
    Ecosystem.GO: GoRebuilder,
}


def rebuilder_for(ecosystem: Ecosystem, registries: RegistryMux) -> Rebuilder:
    cls = REBUILDERS.get(ecosystem)
    if cls is None:
        raise UnsupportedError(f"unsupported ecosystem: {ecosystem}")
    return cls(registries)


def encode_build_definition(strategy: Strategy) -> bytes:
    """Serializes a strategy to the YAML `build.yaml` asset."""
    return yaml.safe_dump(strategy.to_oneof(), sort_keys=False, default_flow_style=False).encode("utf-8")


def decode_build_definition(raw: bytes) -> Strategy:
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise MalformedError(f"invalid build definition: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedError("build definition must be a mapping")
    return strategy_from_oneof(payload)
