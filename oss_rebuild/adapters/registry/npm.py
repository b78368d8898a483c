from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError

REGISTRY_URL = "https://registry.npmjs.org"


class Repository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    url: str = ""
    directory: str = ""


def _coerce_repository(value: Any) -> Any:
    # Legacy manifests publish the repository as a bare URL string.
    if value is None:
        return Repository()
    if isinstance(value, str):
        return Repository(url=value)
    return value


class Dist(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tarball: str = ""
    shasum: str = ""
    integrity: str = ""


class NPMVersion(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    version: str = ""
    git_head: str = Field(default="", alias="gitHead")
    npm_version: str = Field(default="", alias="_npmVersion")
    node_version: str = Field(default="", alias="_nodeVersion")
    dist: Dist = Field(default_factory=Dist)
    repository: Repository = Field(default_factory=Repository)
    scripts: Dict[str, str] = Field(default_factory=dict)

    @field_validator("repository", mode="before")
    @classmethod
    def _legacy_repository(cls, value: Any) -> Any:
        return _coerce_repository(value)

    @field_validator("scripts", mode="before")
    @classmethod
    def _scripts_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {key: script for key, script in value.items() if isinstance(script, str)}


class NPMPackage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    dist_tags: Dict[str, str] = Field(default_factory=dict, alias="dist-tags")
    versions: Dict[str, NPMVersion] = Field(default_factory=dict)
    upload_times: Dict[str, datetime] = Field(default_factory=dict, alias="time")

    @field_validator("upload_times", mode="before")
    @classmethod
    def _drop_non_version_times(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {key: ts for key, ts in value.items() if isinstance(ts, str)}


class PackageJSON(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    version: str = ""
    scripts: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "version", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""

    @field_validator("scripts", mode="before")
    @classmethod
    def _scripts_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {key: script for key, script in value.items() if isinstance(script, str)}


class NPMRegistry(ABC):
    @abstractmethod
    async def package(self, pkg: str) -> NPMPackage: ...

    @abstractmethod
    async def version(self, pkg: str, version: str) -> NPMVersion: ...

    @abstractmethod
    async def artifact(self, pkg: str, version: str) -> bytes: ...


def _package_path(pkg: str) -> str:
    # Scoped names keep the leading `@` but encode the separator.
    return quote(pkg, safe="@")


class HTTPNPMRegistry(NPMRegistry):
    def __init__(self, http: RegistryHTTPClient, base_url: str = REGISTRY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def package(self, pkg: str) -> NPMPackage:
        payload = await self.http.get_json(f"{self.base_url}/{_package_path(pkg)}")
        try:
            return NPMPackage.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"npm package metadata for {pkg}: {exc}") from exc

    async def version(self, pkg: str, version: str) -> NPMVersion:
        payload = await self.http.get_json(f"{self.base_url}/{_package_path(pkg)}/{quote(version)}")
        try:
            return NPMVersion.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"npm version metadata for {pkg}@{version}: {exc}") from exc

    async def artifact(self, pkg: str, version: str) -> bytes:
        meta = await self.version(pkg, version)
        if not meta.dist.tarball:
            raise MalformedError(f"npm version metadata for {pkg}@{version} has no tarball URL")
        return await self.http.get_bytes(meta.dist.tarball)


def parse_package_json(raw: bytes) -> Optional[PackageJSON]:
    """Parses a package.json body; returns None when it is not a JSON object."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return PackageJSON.model_validate(payload)
