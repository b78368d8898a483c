from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from oss_rebuild.exceptions import MalformedError, NotFoundError, RebuildError, TransientError
from oss_rebuild.infrastructure.rate_limit import RateLimiters

logger = logging.getLogger("oss_rebuild.registry")


class RegistryHTTPClient:
    """HTTP request, classification and retry handling shared by every registry client."""

    def __init__(
        self,
        *,
        ecosystem: str,
        client: Optional[httpx.AsyncClient] = None,
        limiters: Optional[RateLimiters] = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 4.0,
    ) -> None:
        self.ecosystem = ecosystem
        self.limiters = limiters
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request_response(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        if self.limiters is not None:
            await self.limiters.acquire(self.ecosystem)
        try:
            response = await self._http().request(method, url, params=params, headers=headers)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as exc:
            self.log_failure("timeout", url=url, error=str(exc))
            raise TransientError(f"{self.ecosystem} registry timeout: {url}") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            self.log_failure("http_status", url=url, status_code=status_code, error=str(exc))
            raise self.classify_http_error(status_code=status_code, url=url) from exc
        except httpx.RequestError as exc:
            self.log_failure("network", url=url, error=str(exc))
            raise TransientError(f"{self.ecosystem} registry network error: {exc}") from exc

    async def request_response_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        attempts = 0
        while True:
            try:
                return await self.request_response(method, url, **kwargs)
            except TransientError:
                if attempts >= self.max_retries:
                    raise
                delay = min(self.backoff_max_seconds, self.backoff_base_seconds * (2**attempts))
                await asyncio.sleep(delay)
                attempts += 1

    async def get_json(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.request_response_with_retry("GET", url, params=params)
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise MalformedError(f"{self.ecosystem} registry returned invalid JSON from {url}") from exc

    async def get_bytes(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> bytes:
        response = await self.request_response_with_retry("GET", url, params=params)
        return response.content

    async def get_text(self, url: str) -> str:
        response = await self.request_response_with_retry("GET", url)
        return response.text

    def classify_http_error(self, *, status_code: Optional[int], url: str) -> RebuildError:
        if status_code == 404 or status_code == 410:
            return NotFoundError(f"{self.ecosystem} registry: not found: {url}")
        if status_code == 429 or (status_code is not None and status_code >= 500):
            return TransientError(f"{self.ecosystem} registry error {status_code}: {url}")
        return RebuildError(f"{self.ecosystem} registry error {status_code}: {url}")

    def log_failure(self, failure_class: str, **fields: Any) -> None:
        record = {
            "event": "registry_request_failure",
            "ecosystem": self.ecosystem,
            "failure_class": failure_class,
            **fields,
        }
        logger.warning(json.dumps(record, ensure_ascii=False))
