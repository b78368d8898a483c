"""
Debian archive access.

Packages are addressed as `component/name`. Source packages are located
through the pool layout and described by their `.dsc` control file.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError

REGISTRY_URL = "https://deb.debian.org/debian"

_BINARY_RELEASE = re.compile(r"(\+b[\d.]+)$")
_PGP_HEADER = "-----BEGIN PGP SIGNED MESSAGE-----"
_PGP_FOOTER = "-----BEGIN PGP SIGNATURE-----"


@dataclass
class ControlStanza:
    fields: Dict[str, List[str]] = field(default_factory=dict)

    def first(self, name: str) -> str:
        values = self.fields.get(name) or []
        return values[0] if values else ""


@dataclass
class DSC:
    stanzas: List[ControlStanza] = field(default_factory=list)


def split_package_id(pkg: str) -> Tuple[str, str]:
    component, sep, name = pkg.partition("/")
    if not sep or not component or not name:
        raise MalformedError(f"debian package must be of the form 'component/name': {pkg}")
    return component, name


def pool_url(component: str, name: str, artifact: str, base_url: str = REGISTRY_URL) -> str:
    # lib* packages are split into four-character prefix directories.
    prefix = name[:4] if name.startswith("lib") else name[:1]
    return f"{base_url.rstrip('/')}/pool/{component}/{prefix}/{name}/{artifact}"


def strip_binary_release(version: str) -> str:
    return _BINARY_RELEASE.sub("", version)


def guess_dsc_url(component: str, name: str, version: str, base_url: str = REGISTRY_URL) -> str:
    return pool_url(component, name, f"{name}_{strip_binary_release(version)}.dsc", base_url)


def artifact_name(name: str, version: str) -> str:
    return f"{name}_{version}_amd64.deb"


def parse_dsc(text: str) -> DSC:
    """Parses a Debian control file, skipping any PGP armor around it."""
    lines = text.splitlines()
    if not lines:
        raise MalformedError("failed to scan .dsc file")
    index = 0
    if lines[0].startswith(_PGP_HEADER):
        index = 1
    dsc = DSC()
    stanza = ControlStanza()
    last_field = ""
    for line in lines[index:]:
        if line.startswith(_PGP_FOOTER):
            break
        if not line.strip():
            if stanza.fields:
                dsc.stanzas.append(stanza)
                stanza = ControlStanza()
                last_field = ""
            continue
        if line.startswith((" ", "\t")):
            if not last_field:
                raise MalformedError("unexpected continuation line")
            stanza.fields[last_field].append(line.strip())
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise MalformedError(f"expected new field: {line}")
        if name in stanza.fields:
            raise MalformedError(f"duplicate field in stanza: {name}")
        stanza.fields[name] = [value.strip()] if value.strip() else []
        last_field = name
    if stanza.fields:
        dsc.stanzas.append(stanza)
    return dsc


class DebianRegistry(ABC):
    @abstractmethod
    async def dsc(self, component: str, name: str, version: str) -> Tuple[str, DSC]: ...

    @abstractmethod
    async def artifact(self, component: str, name: str, artifact: str) -> bytes: ...


class HTTPDebianRegistry(DebianRegistry):
    def __init__(self, http: RegistryHTTPClient, base_url: str = REGISTRY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def dsc(self, component: str, name: str, version: str) -> Tuple[str, DSC]:
        url = guess_dsc_url(component, name, version, self.base_url)
        text = await self.http.get_text(url)
        return url, parse_dsc(text)

    async def artifact(self, component: str, name: str, artifact: str) -> bytes:
        return await self.http.get_bytes(pool_url(component, name, artifact, self.base_url))


def stanza_with(dsc: DSC, field_name: str) -> Optional[ControlStanza]:
    for stanza in dsc.stanzas:
        if field_name in stanza.fields:
            return stanza
    return None
