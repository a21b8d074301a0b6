"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Bearer-token contracts consumed by the transport.

Token refresh and expiry handling belong to the session provider; this
module only reads the current token at call time.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

import jwt

from .errors import AuthError


@runtime_checkable
class TokenProvider(Protocol):
    """Provider contract supplying the current bearer token."""

    async def get_token(self) -> str | None:
        """Return the current access token, or None when signed out."""
        ...


class StaticTokenProvider:
    """Provider returning a fixed token; `set_token` swaps it at runtime."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def get_token(self) -> str | None:
        return self._token


def token_expired(token: str, *, now_s: float | None = None, leeway_s: float = 0.0) -> bool:
    """
    Return True when `token` is a JWT whose `exp` claim has passed.

    Opaque (non-JWT) tokens and JWTs without `exp` are never considered
    expired here; the backend remains the authority for those.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    current = time.time() if now_s is None else now_s
    return float(exp) + leeway_s <= current


async def require_token(provider: TokenProvider | None) -> str:
    """Read the current token or raise ``AuthError``; never retried."""
    if provider is None:
        raise AuthError("Not authenticated: no token provider configured")
    token = await provider.get_token()
    if not isinstance(token, str) or not token.strip():
        raise AuthError("Not authenticated")
    token = token.strip()
    if token_expired(token):
        raise AuthError("Not authenticated: bearer token expired")
    return token
