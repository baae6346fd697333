"""
auth/dependencies.py -- FastAPI Depends() helpers for the session boundary.

get_services() hands a route the ServiceRegistry built in the lifespan;
routes never construct stores or services themselves.

session_token() reads the "jwtToken" cookie through Starlette's cookie parser
and the pure token_from_cookies() helper. Cookies are the only token
transport; there is no Authorization header path.

Layer rule: this module may import from fastapi because it is part of the
dependency injection seam. Services stay framework-free.
"""

from __future__ import annotations

from fastapi import Request

from auth.services import ServiceRegistry
from auth.tokens import token_from_cookies


def get_services(request: Request) -> ServiceRegistry:
    """Return the per-process ServiceRegistry stored on app.state by the lifespan."""
    return request.app.state.services


def session_token(request: Request) -> str | None:
    """Return the session token from the request cookies, or None if absent or empty."""
    return token_from_cookies(request.cookies)
