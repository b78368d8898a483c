from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote, urljoin

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError

REGISTRY_URL = "https://crates.io"


class CrateMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(default="", alias="id")
    repository: str = ""
    created: Optional[datetime] = Field(default=None, alias="created_at")
    updated: Optional[datetime] = Field(default=None, alias="updated_at")

    @field_validator("repository", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""


class CrateVersion(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: str = Field(default="", alias="num")
    rust_version: str = ""
    download_path: str = Field(default="", alias="dl_path")
    created: Optional[datetime] = Field(default=None, alias="created_at")
    updated: Optional[datetime] = Field(default=None, alias="updated_at")
    yanked: bool = False
    download_url: str = ""

    @field_validator("rust_version", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""


class Crate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    crate: CrateMetadata = Field(default_factory=CrateMetadata)
    versions: List[CrateVersion] = Field(default_factory=list)


class CratesIORegistry(ABC):
    @abstractmethod
    async def crate(self, pkg: str) -> Crate: ...

    @abstractmethod
    async def version(self, pkg: str, version: str) -> CrateVersion: ...

    @abstractmethod
    async def artifact(self, pkg: str, version: str) -> bytes: ...


class HTTPCratesIORegistry(CratesIORegistry):
    def __init__(self, http: RegistryHTTPClient, base_url: str = REGISTRY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    def _absolute(self, download_path: str) -> str:
        return urljoin(self.base_url + "/", download_path.lstrip("/"))

    async def crate(self, pkg: str) -> Crate:
        payload = await self.http.get_json(f"{self.base_url}/api/v1/crates/{quote(pkg)}")
        try:
            crate = Crate.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"crates.io metadata for {pkg}: {exc}") from exc
        for entry in crate.versions:
            entry.download_url = self._absolute(entry.download_path)
        return crate

    async def version(self, pkg: str, version: str) -> CrateVersion:
        payload = await self.http.get_json(f"{self.base_url}/api/v1/crates/{quote(pkg)}/{quote(version)}")
        if not isinstance(payload, dict) or not isinstance(payload.get("version"), dict):
            raise MalformedError(f"crates.io version metadata for {pkg}@{version} is missing 'version'")
        try:
            meta = CrateVersion.model_validate(payload["version"])
        except ValidationError as exc:
            raise MalformedError(f"crates.io version metadata for {pkg}@{version}: {exc}") from exc
        meta.download_url = self._absolute(meta.download_path)
        return meta

    async def artifact(self, pkg: str, version: str) -> bytes:
        meta = await self.version(pkg, version)
        return await self.http.get_bytes(meta.download_url)
