"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from bullion_rates.core.config import RatesConfig
from bullion_rates.service import RateService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: RatesConfig
    service: RateService


def get_service(request: Request) -> RateService:
    """Dependency: retrieve the running rate service."""
    return request.app.state.app_state.service


PROTECTED_PREFIX = "/api/rates"
MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


async def admin_token_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: require a Bearer admin token on mutating rate endpoints.

    Reads are never gated; a token sent on a read is ignored.
    """
    if request.method not in MUTATING_METHODS or not request.url.path.startswith(
        PROTECTED_PREFIX
    ):
        return await call_next(request)

    config = request.app.state.app_state.config
    expected = config.api.admin_token
    if expected:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(
            token.strip().encode(), expected.encode()
        ):
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing admin token"},
            )
    return await call_next(request)
