from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from oss_rebuild.core.types import AssetType, Ecosystem
from oss_rebuild.exceptions import InferenceError, InternalError
from oss_rebuild.time_utils import format_rfc3339


class Target(BaseModel):
    """Identity of one build."""

    model_config = ConfigDict(frozen=True)

    ecosystem: Ecosystem
    package: str
    version: str
    artifact: str = ""

    @field_validator("package", "version")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not str(value or "").strip():
            raise ValueError("package and version must be non-empty")
        return value

    def with_artifact(self, artifact: str) -> "Target":
        if self.artifact and self.artifact != artifact:
            raise InternalError(f"artifact already set for {self.id()}: {self.artifact} != {artifact}")
        return self.model_copy(update={"artifact": artifact})

    def id(self) -> str:
        """Stable `!`-joined identifier used for dedup and storage keys."""
        return "!".join([self.ecosystem.value, self.package, self.version, self.artifact])

    def __str__(self) -> str:
        return f"{self.ecosystem.value}/{self.package}@{self.version}"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: str = ""
    ref: str = ""
    dir: str = ""

    @model_validator(mode="after")
    def _ref_requires_repo(self) -> "Location":
        if self.ref and not self.repo:
            raise ValueError("location ref requires a repo")
        return self


class BuildEnv(BaseModel):
    model_config = ConfigDict(frozen=True)

    timewarp_host: str = ""
    has_repo: bool = False
    prefer_precise_toolchain: bool = False

    def timewarp_url(self, ecosystem: str, registry_time: datetime) -> str:
        if not self.timewarp_host:
            raise InferenceError("timewarp_host hasn't been configured for this BuildEnv")
        return f"http://{ecosystem}:{format_rfc3339(registry_time)}@{self.timewarp_host}"


class Instructions(BaseModel):
    """Shell-script realization of a strategy."""

    location: Location = Field(default_factory=Location)
    system_deps: List[str] = Field(default_factory=list)
    source: str = ""
    deps: str = ""
    build: str = ""
    output_path: str = ""


class Timings(BaseModel):
    """Stage durations in seconds."""

    clone_estimate: float = 0.0
    source: float = 0.0
    infer: float = 0.0
    build: float = 0.0


class RepoConfig(BaseModel):
    """Result of cloning: canonical URI, manifest dir and version->commit map."""

    uri: str = ""
    dir: str = "."
    ref_map: dict[str, str] = Field(default_factory=dict)


class Verdict(BaseModel):
    target: Target
    run_id: str = ""
    success: bool
    message: str = ""
    strategy: Optional[dict] = None
    timings: Timings = Field(default_factory=Timings)
    created: datetime

    @model_validator(mode="after")
    def _message_iff_failure(self) -> "Verdict":
        if self.success and self.message:
            raise ValueError("successful verdict must not carry a message")
        if not self.success and not self.message:
            raise ValueError("failed verdict must carry a message")
        return self


class Asset(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: Target
    type: AssetType

    def filename(self) -> str:
        if self.type == AssetType.REBUILD:
            if not self.target.artifact:
                raise InternalError(f"rebuild asset requires an artifact name: {self.target}")
            return self.target.artifact
        return self.type.value
