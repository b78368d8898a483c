"""
Benchmark files: a JSON package set expanded into rebuild targets.

    {"Count": 2, "Updated": "2024-01-01T00:00:00Z",
     "Packages": [{"Ecosystem": "npm", "Name": "left-pad", "Versions": ["1.3.0"]}]}
"""
from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from oss_rebuild.core.domain.models import Target
from oss_rebuild.core.types import Ecosystem
from oss_rebuild.exceptions import MalformedError
from oss_rebuild.logging import log_event


class BenchmarkPackage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ecosystem: Ecosystem = Field(alias="Ecosystem")
    name: str = Field(alias="Name")
    versions: List[str] = Field(default_factory=list, alias="Versions")
    artifacts: Optional[List[str]] = Field(default=None, alias="Artifacts")

    @field_validator("name")
    @classmethod
    def _name_present(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("package Name must be non-empty")
        return value

    @field_validator("versions")
    @classmethod
    def _versions_present(cls, value: List[str]) -> List[str]:
        if any(not version.strip() for version in value):
            raise ValueError("Versions must not contain empty strings")
        return value

    @model_validator(mode="after")
    def _artifacts_parallel(self) -> "BenchmarkPackage":
        if self.artifacts is not None and len(self.artifacts) != len(self.versions):
            raise ValueError(f"Artifacts must be parallel to Versions for {self.name}")
        return self


class PackageSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(default=0, alias="Count")
    updated: Optional[datetime] = Field(default=None, alias="Updated")
    packages: List[BenchmarkPackage] = Field(default_factory=list, alias="Packages")

    def targets(self) -> List[Target]:
        """One target per (Name, Versions[i], Artifacts[i]) in file order."""
        found: List[Target] = []
        for package in self.packages:
            for index, version in enumerate(package.versions):
                artifact = package.artifacts[index] if package.artifacts is not None else ""
                found.append(
                    Target(ecosystem=package.ecosystem, package=package.name, version=version, artifact=artifact)
                )
        return found

    def hash(self) -> str:
        """Order-independent sha256 over `ecosystem|name|version` ids."""
        ids = sorted(
            "|".join([package.ecosystem.value, package.name, version])
            for package in self.packages
            for version in package.versions
        )
        return hashlib.sha256("|".join(ids).encode("utf-8")).hexdigest()


def parse_benchmark(raw: bytes | str) -> PackageSet:
    try:
        bench = PackageSet.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedError(f"invalid benchmark file: {exc.errors()[0]['msg']}") from exc
    total = sum(len(package.versions) for package in bench.packages)
    if bench.count and bench.count != total:
        log_event("benchmark_count_mismatch", declared=bench.count, actual=total)
    return bench


def load_benchmark(path: str | Path) -> PackageSet:
    return parse_benchmark(Path(path).read_bytes())
