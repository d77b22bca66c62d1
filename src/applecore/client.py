"""Async HTTP client for the JSON APIs that feed the data managers."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import httpx

from .models import ApiConfig

LOGGER = logging.getLogger("applecore.client")


class ApiClientError(Exception):
    """Base exception for JSON API client errors."""


class ResourceNotFoundError(ApiClientError):
    """Raised when a requested resource does not exist."""


class JsonApiClient:
    """Async HTTP client with retry and backoff logic."""

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._headers = {"Accept": "application/json"}
        if config.api_key:
            self._headers["Authorization"] = f"ApiKey {config.api_key}"

    async def __aenter__(self) -> "JsonApiClient":
        self._client = httpx.AsyncClient(
            timeout=self._config.timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")) or not self._config.url:
            return path
        return f"{self._config.url.rstrip('/')}/{path.lstrip('/')}"

    def _delays(self) -> Iterator[float]:
        """Pauses between attempts: doubling from the backoff factor, capped."""
        delay = max(self._config.backoff_factor, 0.0) or 1.0
        ceiling = self._config.backoff_max if self._config.backoff_max > 0 else None
        for _ in range(max(0, self._config.max_retries)):
            yield delay if ceiling is None else min(delay, ceiling)
            delay *= 2

    @staticmethod
    def _retryable(status_code: int) -> bool:
        return status_code >= 500 or status_code in {408, 429}

    async def get_json(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """GET ``path`` and decode its JSON body, retrying transient failures."""
        if self._client is None:
            raise RuntimeError("HTTP client is not ready")

        url = self._url(path)
        delays = self._delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._client.get(
                    url, headers=self._headers, params=dict(params or {})
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                body = exc.response.text[:500]
                if status_code == 404:
                    LOGGER.warning("No JSON source at %s", url)
                    raise ResourceNotFoundError(f"{url} not found") from exc
                delay = next(delays, None) if self._retryable(status_code) else None
                if delay is None:
                    LOGGER.error("Giving up on %s after HTTP %s", url, status_code)
                    message = f"HTTP {status_code} for {url}"
                    if body:
                        message += f"; response preview: {body}"
                    raise ApiClientError(message) from exc
                LOGGER.warning(
                    "%s answered HTTP %s, attempt %s; waiting %.2fs",
                    url,
                    status_code,
                    attempt,
                    delay,
                )
            except httpx.RequestError as exc:
                delay = next(delays, None)
                if delay is None:
                    raise ApiClientError(f"Network error for {url}: {exc}") from exc
                LOGGER.warning(
                    "Cannot reach %s (%s), attempt %s; waiting %.2fs", url, exc, attempt, delay
                )
            else:
                try:
                    return response.json()
                except ValueError as exc:
                    raise ApiClientError(f"{url} did not return JSON: {exc}") from exc
            await asyncio.sleep(delay)


async def load_json_source(
    source: str,
    config: Optional[ApiConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """Read JSON from a file path, ``-`` for stdin, or an http(s) URL."""
    if source == "-":
        return json.load(sys.stdin)
    if source.startswith(("http://", "https://")):
        async with JsonApiClient(config or ApiConfig(), transport=transport) as client:
            return await client.get_json(source)
    with Path(source).open("r", encoding="utf-8") as fh:
        return json.load(fh)
