"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Authenticated JSON transport for the fulfillment REST backend.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..auth import TokenProvider, require_token
from ..clock import Clock, SystemClock
from ..errors import AuthError, HTTPError, MalformedResponseError, NetworkError
from ..metrics import NoOpSyncMetrics, SyncMetrics
from ..runtime.contracts import RetryPolicy, TimeoutPolicy
from ..runtime.retry import call_with_retry
from ..settings import SyncSettings

logger = logging.getLogger("fulfillsync.api")

_MAX_ERROR_BODY = 500


@dataclass(frozen=True, slots=True)
class HTTPResponse:
    """Raw response as returned by an opener."""

    status: int
    reason: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        target = name.lower()
        for key, value in self.headers.items():
            if key.lower() == target:
                return value
        return None


Opener = Callable[[urllib.request.Request, "float | None"], HTTPResponse]


def http_open(request: urllib.request.Request, timeout_s: float | None) -> HTTPResponse:
    """Blocking urllib opener; non-2xx statuses are returned, not raised."""
    try:
        with urllib.request.urlopen(request, timeout=timeout_s) as resp:  # noqa: S310
            return HTTPResponse(
                status=resp.status,
                reason=resp.reason or "",
                headers=dict(resp.headers.items()),
                body=resp.read(),
            )
    except urllib.error.HTTPError as e:
        body = b""
        try:
            body = e.read()
        except Exception:  # noqa: BLE001
            body = b""
        return HTTPResponse(
            status=e.code,
            reason=str(e.reason or ""),
            headers=dict(e.headers.items()) if e.headers is not None else {},
            body=body,
        )
    except urllib.error.URLError as e:
        raise NetworkError(f"Network error calling {request.full_url}: {e.reason}") from e


class FulfillmentClient:
    """
    JSON client that attaches the current bearer token to every call.

    Reads and writes use separate retry policies; only transport failures
    and 5xx responses are retried. A missing token fails immediately.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None,
        *,
        timeout_policy: TimeoutPolicy | None = None,
        read_retry: RetryPolicy | None = None,
        write_retry: RetryPolicy | None = None,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
        opener: Opener | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")
        self.base_url = base_url.strip().rstrip("/")
        self._token_provider = token_provider
        self._timeout_policy = timeout_policy or TimeoutPolicy()
        self._read_retry = read_retry or RetryPolicy(max_retries=3)
        self._write_retry = write_retry or RetryPolicy(max_retries=2)
        self._clock = clock or SystemClock()
        self._metrics: SyncMetrics = metrics or NoOpSyncMetrics()
        self._opener: Opener = opener or http_open

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        token_provider: TokenProvider | None,
        *,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
        opener: Opener | None = None,
    ) -> "FulfillmentClient":
        if not settings.api_base_url:
            raise ValueError("api_base_url not found in configuration")
        return cls(
            settings.api_base_url,
            token_provider,
            timeout_policy=settings.timeout_policy(),
            read_retry=settings.read_retry_policy(),
            write_retry=settings.write_retry_policy(),
            clock=clock,
            metrics=metrics,
            opener=opener,
        )

    def url_for(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        query = {key: value for key, value in (params or {}).items() if value is not None}
        if query:
            url = f"{url}?{urllib.parse.urlencode(query, doseq=True)}"
        return url

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, data: Any = None) -> Any:
        return await self.request("POST", path, data=data)

    async def put(self, path: str, data: Any = None) -> Any:
        return await self.request("PUT", path, data=data)

    async def patch(self, path: str, data: Any = None) -> Any:
        return await self.request("PATCH", path, data=data)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        data: Any = None,
    ) -> Any:
        method = method.upper()
        url = self.url_for(path, params)
        body = None if data is None else json.dumps(data).encode("utf-8")
        policy = self._read_retry if method == "GET" else self._write_retry
        return await call_with_retry(
            lambda: self._request_once(method, url, body),
            policy=policy,
            clock=self._clock,
            label=f"{method} {path}",
        )

    async def _request_once(self, method: str, url: str, body: bytes | None) -> Any:
        token = await require_token(self._token_provider)
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }
        if body is not None:
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(url, data=body, method=method, headers=headers)

        logger.debug("API %s request %s", method, url)
        response = await asyncio.to_thread(
            self._opener, req, self._timeout_policy.request_timeout_s
        )
        self._metrics.incr(
            "sync_http_requests_total",
            tags={"method": method, "status_class": f"{response.status // 100}xx"},
        )
        logger.debug("API %s response %s (%d)", method, url, response.status)
        return self._decode(method, url, response)

    def _decode(self, method: str, url: str, response: HTTPResponse) -> Any:
        text = response.body.decode("utf-8", errors="replace")
        if response.status in (401, 403):
            raise AuthError(f"{method} {url} rejected with HTTP {response.status}")
        if not 200 <= response.status < 300:
            raise HTTPError(
                response.status,
                response.reason,
                body=text[:_MAX_ERROR_BODY],
                url=url,
            )
        if response.status == 204 or not response.body.strip():
            return None

        content_type = response.header("Content-Type")
        if content_type and "json" not in content_type.lower():
            logger.error(
                "Expected JSON but received %s from %s %s", content_type, method, url
            )
            raise MalformedResponseError(f"API returned {content_type} instead of JSON")
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Invalid JSON response from {url}") from e
