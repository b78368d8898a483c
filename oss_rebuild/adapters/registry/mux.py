from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from oss_rebuild.adapters.registry.cratesio import CratesIORegistry, HTTPCratesIORegistry
from oss_rebuild.adapters.registry.debian import DebianRegistry, HTTPDebianRegistry
from oss_rebuild.adapters.registry.go import GoProxy, HTTPGoProxy
from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.adapters.registry.maven import HTTPMavenRegistry, MavenRegistry
from oss_rebuild.adapters.registry.npm import HTTPNPMRegistry, NPMRegistry
from oss_rebuild.adapters.registry.pypi import HTTPPyPIRegistry, PyPIRegistry
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.infrastructure.rate_limit import RateLimiters
from oss_rebuild.settings import Settings


@dataclass
class RegistryMux:
    """One client per ecosystem, sharing a connection pool and rate limiters."""

    npm: Optional[NPMRegistry] = None
    pypi: Optional[PyPIRegistry] = None
    cratesio: Optional[CratesIORegistry] = None
    debian: Optional[DebianRegistry] = None
    maven: Optional[MavenRegistry] = None
    go: Optional[GoProxy] = None
    _http_clients: List[RegistryHTTPClient] = field(default_factory=list, repr=False)
    _shared: Optional[httpx.AsyncClient] = field(default=None, repr=False)

    async def aclose(self) -> None:
        for client in self._http_clients:
            await client.aclose()
        if self._shared is not None:
            await self._shared.aclose()
            self._shared = None


def build_registry_mux(
    settings: Settings,
    *,
    limiters: Optional[RateLimiters] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RegistryMux:
    limiters = limiters or RateLimiters(settings.rate_limits)
    owned = client is None
    shared = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)

    def http_for(ecosystem: Ecosystem) -> RegistryHTTPClient:
        return RegistryHTTPClient(
            ecosystem=ecosystem.value,
            client=shared,
            limiters=limiters,
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
            backoff_base_seconds=settings.http_backoff_base_seconds,
            backoff_max_seconds=settings.http_backoff_max_seconds,
        )

    clients = {eco: http_for(eco) for eco in Ecosystem}
    return RegistryMux(
        npm=HTTPNPMRegistry(clients[Ecosystem.NPM]),
        pypi=HTTPPyPIRegistry(clients[Ecosystem.PYPI]),
        cratesio=HTTPCratesIORegistry(clients[Ecosystem.CRATESIO]),
        debian=HTTPDebianRegistry(clients[Ecosystem.DEBIAN]),
        maven=HTTPMavenRegistry(clients[Ecosystem.MAVEN]),
        go=HTTPGoProxy(clients[Ecosystem.GO]),
        _http_clients=list(clients.values()),
        _shared=shared if owned else None,
    )
