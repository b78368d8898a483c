from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError, NotFoundError
from oss_rebuild.time_utils import from_epoch_millis

REGISTRY_URL = "https://search.maven.org"

TYPE_POM = ".pom"
TYPE_JAR = ".jar"
TYPE_SOURCES = "-sources.jar"
TYPE_JAVADOC = "-javadoc.jar"
TYPE_MODULE = ".module"


class MavenVersion(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    group_id: str = Field(default="", alias="g")
    artifact_id: str = Field(default="", alias="a")
    version: str = Field(default="", alias="v")
    published_millis: int = Field(default=0, alias="timestamp")
    files: List[str] = Field(default_factory=list, alias="ec")

    @property
    def published(self) -> datetime:
        return from_epoch_millis(self.published_millis)


def split_coordinates(pkg: str) -> Tuple[str, str]:
    group, sep, artifact = pkg.partition(":")
    if not sep or not group or not artifact:
        raise MalformedError("package identifier not of form 'group:artifact'")
    return group, artifact


def release_path(pkg: str, version: str, file_type: str) -> str:
    group, artifact = split_coordinates(pkg)
    return "/".join([group.replace(".", "/"), artifact, version, f"{artifact}-{version}{file_type}"])


class MavenRegistry(ABC):
    @abstractmethod
    async def package_version(self, pkg: str, version: str) -> MavenVersion: ...

    @abstractmethod
    async def release_file(self, pkg: str, version: str, file_type: str) -> bytes: ...


class HTTPMavenRegistry(MavenRegistry):
    def __init__(self, http: RegistryHTTPClient, base_url: str = REGISTRY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def package_version(self, pkg: str, version: str) -> MavenVersion:
        group, artifact = split_coordinates(pkg)
        params = {
            "rows": "5",
            "wt": "json",
            "core": "gav",
            "q": f"g:{group} AND a:{artifact} AND v:{version}",
        }
        payload = await self.http.get_json(f"{self.base_url}/solrsearch/select", params=params)
        docs: Optional[list] = None
        if isinstance(payload, dict) and isinstance(payload.get("response"), dict):
            docs = payload["response"].get("docs")
        if not isinstance(docs, list):
            raise MalformedError(f"maven search response for {pkg}:{version} has no docs")
        if not docs:
            raise NotFoundError(f"maven version not found: {pkg}:{version}")
        if len(docs) > 1:
            raise MalformedError(f"maven search returned multiple matches for {pkg}:{version}")
        try:
            return MavenVersion.model_validate(docs[0])
        except ValidationError as exc:
            raise MalformedError(f"maven version metadata for {pkg}:{version}: {exc}") from exc

    async def release_file(self, pkg: str, version: str, file_type: str) -> bytes:
        path = release_path(pkg, version, file_type)
        return await self.http.get_bytes(f"{self.base_url}/remotecontent", params={"filepath": path})
