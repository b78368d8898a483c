from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from oss_rebuild.core.types import Ecosystem, RunType
from oss_rebuild.runtime_paths import durable_root

DEFAULT_RATE_LIMITS: Dict[str, float] = {
    Ecosystem.DEBIAN.value: 1.0,
    Ecosystem.PYPI.value: 1.0,
    Ecosystem.NPM.value: 2.0,
    Ecosystem.MAVEN.value: 2.0,
    Ecosystem.CRATESIO.value: 8.0,
}

DEFAULT_CONCURRENCY = {
    RunType.ATTEST: 50,
    RunType.SMOKETEST: 1,
}


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    root: Path = Field(default_factory=durable_root)
    timewarp_host: str = "localhost:8081"
    max_concurrency: Optional[int] = None
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 0
    http_backoff_base_seconds: float = 0.5
    http_backoff_max_seconds: float = 4.0
    rate_limits: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_RATE_LIMITS))
    builder: str = "docker"
    cloud_endpoint: str = "https://storage.googleapis.com"
    cloud_token: str = ""

    @field_validator("max_concurrency")
    @classmethod
    def _positive_concurrency(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("max_concurrency must be >= 1")
        return value

    def concurrency_for(self, run_type: RunType) -> int:
        if self.max_concurrency is not None:
            return self.max_concurrency
        return DEFAULT_CONCURRENCY[run_type]


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def load_settings(**overrides) -> Settings:
    """Builds settings from OSS_REBUILD_* environment variables, then explicit overrides."""
    values: Dict[str, object] = {}
    root = os.getenv("OSS_REBUILD_ROOT", "").strip()
    if root:
        values["root"] = Path(root)
    host = os.getenv("OSS_REBUILD_TIMEWARP_HOST", "").strip()
    if host:
        values["timewarp_host"] = host
    concurrency = os.getenv("OSS_REBUILD_MAX_CONCURRENCY", "").strip()
    if concurrency.isdigit():
        values["max_concurrency"] = int(concurrency)
    timeout = _env_float("OSS_REBUILD_HTTP_TIMEOUT")
    if timeout is not None:
        values["http_timeout_seconds"] = timeout
    retries = os.getenv("OSS_REBUILD_HTTP_MAX_RETRIES", "").strip()
    if retries.isdigit():
        values["http_max_retries"] = int(retries)
    builder = os.getenv("OSS_REBUILD_BUILDER", "").strip()
    if builder:
        values["builder"] = builder
    endpoint = os.getenv("OSS_REBUILD_CLOUD_ENDPOINT", "").strip()
    if endpoint:
        values["cloud_endpoint"] = endpoint
    token = os.getenv("OSS_REBUILD_CLOUD_TOKEN", "").strip()
    if token:
        values["cloud_token"] = token

    rates = dict(DEFAULT_RATE_LIMITS)
    for eco in Ecosystem:
        rate = _env_float(f"OSS_REBUILD_RATE_{eco.value.upper()}")
        if rate is not None and rate > 0:
            rates[eco.value] = rate
    values["rate_limits"] = rates

    values.update({key: value for key, value in overrides.items() if value is not None})
    return Settings(**values)
