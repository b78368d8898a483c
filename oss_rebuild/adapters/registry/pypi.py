from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError, NotFoundError

REGISTRY_URL = "https://pypi.org"


class Info(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    description: str = ""
    version: str = ""
    home_page: str = ""
    project_urls: Dict[str, str] = Field(default_factory=dict)

    @field_validator("project_urls", mode="before")
    @classmethod
    def _urls_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("description", "home_page", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""


class Digests(BaseModel):
    model_config = ConfigDict(extra="ignore")

    md5: str = ""
    sha256: str = ""


class Artifact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filename: str
    url: str = ""
    size: int = 0
    packagetype: str = ""
    python_version: str = ""
    digests: Digests = Field(default_factory=Digests)
    upload_time: Optional[datetime] = Field(default=None, alias="upload_time_iso_8601")


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    info: Info = Field(default_factory=Info)
    releases: Dict[str, List[Artifact]] = Field(default_factory=dict)


class Release(BaseModel):
    model_config = ConfigDict(extra="ignore")

    info: Info = Field(default_factory=Info)
    artifacts: List[Artifact] = Field(default_factory=list, alias="urls")


class PyPIRegistry(ABC):
    @abstractmethod
    async def project(self, pkg: str) -> Project: ...

    @abstractmethod
    async def release(self, pkg: str, version: str) -> Release: ...

    @abstractmethod
    async def artifact(self, pkg: str, version: str, filename: str) -> bytes: ...


class HTTPPyPIRegistry(PyPIRegistry):
    def __init__(self, http: RegistryHTTPClient, base_url: str = REGISTRY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def project(self, pkg: str) -> Project:
        payload = await self.http.get_json(f"{self.base_url}/pypi/{quote(pkg)}/json")
        try:
            return Project.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"pypi project metadata for {pkg}: {exc}") from exc

    async def release(self, pkg: str, version: str) -> Release:
        payload = await self.http.get_json(f"{self.base_url}/pypi/{quote(pkg)}/{quote(version)}/json")
        try:
            return Release.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"pypi release metadata for {pkg}=={version}: {exc}") from exc

    async def artifact(self, pkg: str, version: str, filename: str) -> bytes:
        release = await self.release(pkg, version)
        for artifact in release.artifacts:
            if artifact.filename == filename:
                return await self.http.get_bytes(artifact.url)
        raise NotFoundError(f"pypi artifact not found: {filename}")
