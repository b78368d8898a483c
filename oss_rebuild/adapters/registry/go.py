from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from oss_rebuild.adapters.registry.http_client import RegistryHTTPClient
from oss_rebuild.exceptions import MalformedError

PROXY_URL = "https://proxy.golang.org"


class ModuleInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: str = Field(default="", alias="Version")
    time: Optional[datetime] = Field(default=None, alias="Time")


def escape_module_path(module: str) -> str:
    """Applies the module proxy's case encoding: uppercase letters become `!` + lowercase."""
    return "".join(f"!{ch.lower()}" if ch.isupper() else ch for ch in module)


class GoProxy(ABC):
    @abstractmethod
    async def info(self, module: str, version: str) -> ModuleInfo: ...

    @abstractmethod
    async def artifact(self, module: str, version: str) -> bytes: ...


class HTTPGoProxy(GoProxy):
    def __init__(self, http: RegistryHTTPClient, base_url: str = PROXY_URL) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    def _url(self, module: str, version: str, suffix: str) -> str:
        return f"{self.base_url}/{escape_module_path(module)}/@v/{escape_module_path(version)}{suffix}"

    async def info(self, module: str, version: str) -> ModuleInfo:
        payload = await self.http.get_json(self._url(module, version, ".info"))
        try:
            return ModuleInfo.model_validate(payload)
        except ValidationError as exc:
            raise MalformedError(f"go module info for {module}@{version}: {exc}") from exc

    async def artifact(self, module: str, version: str) -> bytes:
        return await self.http.get_bytes(self._url(module, version, ".zip"))
