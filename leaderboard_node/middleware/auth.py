"""API key authentication middleware for the leaderboard API.

Endpoints are classified into three tiers:

- **Public**: no auth required (healthz, leaderboard reads and submissions, docs)
- **Read**: requires API key when `API_KEY` is set and `API_READ_AUTH` is on
  (users, chat relays)
- **Admin**: always requires API key (leaderboard clear under `/admin`)

Configuration via environment variables:

- `API_KEY`: the shared secret. When unset, all endpoints are open.
- `API_PUBLIC_PREFIXES`: comma-separated path prefixes that never require auth.
  Default: `/healthz,/leaderboard,/docs,/redoc,/openapi.json`
- `API_ADMIN_PREFIXES`: comma-separated path prefixes that always require auth.
  Default: `/admin`
- `API_READ_AUTH`: if `true`, read endpoints also require the API key.

The key can be sent as:
- `X-API-Key: <key>` header
- `Authorization: Bearer <key>` header
- `?api_key=<key>` query parameter
"""
from __future__ import annotations

import hmac
import logging
import os
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

_DEFAULT_PUBLIC_PREFIXES = (
    "/healthz",
    "/leaderboard",
    "/docs",
    "/redoc",
    "/openapi.json",
)

_DEFAULT_ADMIN_PREFIXES = (
    "/admin",
)


def _parse_prefixes(env_var: str, defaults: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return defaults
    return tuple(p.strip() for p in raw.split(",") if p.strip())


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Gates endpoints by API key. Inactive when `api_key` is None."""

    def __init__(
        self,
        app,
        api_key: str | None = None,
        public_prefixes: tuple[str, ...] | None = None,
        admin_prefixes: tuple[str, ...] | None = None,
        read_auth: bool = False,
    ):
        super().__init__(app)
        self.api_key = api_key
        self.public_prefixes = public_prefixes or _parse_prefixes(
            "API_PUBLIC_PREFIXES", _DEFAULT_PUBLIC_PREFIXES
        )
        self.admin_prefixes = admin_prefixes or _parse_prefixes(
            "API_ADMIN_PREFIXES", _DEFAULT_ADMIN_PREFIXES
        )
        self.read_auth = read_auth

    async def dispatch(self, request: Request, call_next: Callable):
        if not self.api_key:
            return await call_next(request)

        path = request.url.path

        # Admin wins over public so a broad public prefix can't expose it
        if self._is_admin(path):
            if not self._check_key(request):
                return self._unauthorized(path)
            return await call_next(request)

        if self._is_public(path):
            return await call_next(request)

        if self.read_auth and not self._check_key(request):
            return self._unauthorized(path)

        return await call_next(request)

    def _is_public(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.public_prefixes)

    def _is_admin(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.admin_prefixes)

    def _unauthorized(self, path: str) -> JSONResponse:
        logger.warning("Rejected request without valid API key: %s", path)
        return JSONResponse(status_code=401, content={"detail": "API key required"})

    def _check_key(self, request: Request) -> bool:
        """Extract API key from request and validate."""
        key = request.headers.get("x-api-key")
        if not key:
            auth = request.headers.get("authorization", "")
            if auth.lower().startswith("bearer "):
                key = auth[7:].strip()
        if not key:
            key = request.query_params.get("api_key")
        if not key:
            return False
        return hmac.compare_digest(key, self.api_key)


def configure_auth(app) -> None:
    """Read env vars and add API key middleware to a FastAPI app.

    Does nothing if API_KEY is not set.
    """
    api_key = os.getenv("API_KEY", "").strip() or None
    read_auth = os.getenv("API_READ_AUTH", "false").lower() in ("true", "1", "yes")

    if api_key:
        app.add_middleware(
            APIKeyMiddleware,
            api_key=api_key,
            read_auth=read_auth,
        )
        logger.info(
            "API key auth enabled (read_auth=%s, %d public prefixes, %d admin prefixes)",
            read_auth,
            len(_parse_prefixes("API_PUBLIC_PREFIXES", _DEFAULT_PUBLIC_PREFIXES)),
            len(_parse_prefixes("API_ADMIN_PREFIXES", _DEFAULT_ADMIN_PREFIXES)),
        )
    else:
        logger.info("API key auth disabled (API_KEY not set)")
