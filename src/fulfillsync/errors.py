"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for the data-synchronization layer.
"""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Hashable

from pydantic import ValidationError


class SyncError(Exception):
    """Base error raised by fulfillsync."""


class AuthError(SyncError, PermissionError):
    """Raised when no usable bearer token is available or the backend rejects it."""


class NetworkError(SyncError):
    """Raised for transport failures and timeouts."""


class HTTPError(NetworkError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status: int, reason: str = "", *, body: str = "", url: str = "") -> None:
        self.status = status
        self.reason = reason
        self.body = body
        self.url = url
        detail = f": {body}" if body else ""
        super().__init__(f"HTTP {status} {reason} for {url or 'request'}{detail}".strip())


class MalformedResponseError(SyncError):
    """Raised when a 2xx response does not carry the expected payload shape."""


class PartialResolutionError(SyncError):
    """Raised (and captured) when one foreign reference cannot be resolved."""

    def __init__(self, ref_id: Hashable, cause: BaseException | None = None) -> None:
        self.ref_id = ref_id
        self.cause = cause
        message = f"Failed to resolve reference {ref_id!r}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


def classify_error(error: BaseException) -> SyncError:
    """Map arbitrary exceptions into the fulfillsync taxonomy."""
    if isinstance(error, SyncError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
        return NetworkError(f"Request timed out: {error}" if str(error) else "Request timed out")
    if isinstance(error, (ConnectionError, OSError)):
        return NetworkError(str(error))
    if isinstance(error, ValidationError):
        return MalformedResponseError(str(error))
    return SyncError(str(error) or type(error).__name__)


def is_retryable(error: BaseException) -> bool:
    """Return True when the transport may retry after this error."""
    if isinstance(error, HTTPError):
        return error.status >= 500
    return isinstance(error, NetworkError)
