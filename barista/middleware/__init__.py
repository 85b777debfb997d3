"""
Auth + Permission middleware.

Runs on protected HTTP requests (/api/admin/*, /api/auth/me, /api/auth/logout):
  1. Decode JWT → extract role and permission overrides
  2. Set request.state.user, request.state.user_role, ...
  3. Check the permission derived from the admin route (fail closed)

WebSocket scopes never pass through here; /ws authenticates itself.
"""

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from barista.auth.helpers import decode_access_token, extract_bearer_token
from barista.rbac.permissions import (
    ADMIN_PREFIX,
    PermissionEvaluator,
    resolve_permission_from_request,
)
from barista.utils import Logger

logger = Logger("barista.middleware")

PROTECTED_ROUTES = [
    "/api/auth/me",
    "/api/auth/logout",
]


def _is_protected(path: str) -> bool:
    return path.startswith(ADMIN_PREFIX) or any(
        path.rstrip("/") == route for route in PROTECTED_ROUTES
    )


class AuthPermissionMiddleware(BaseHTTPMiddleware):
    """Single middleware that handles JWT verification + RBAC enforcement."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if not _is_protected(path):
            return await call_next(request)

        # ── Extract & decode JWT ─────────────────────────────────
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return JSONResponse(
                status_code=401,
                content={"detail": "Missing Authorization header"},
            )

        token = extract_bearer_token(auth_header)
        if token is None:
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid token format. Expected 'Bearer <token>'"},
            )

        try:
            payload = decode_access_token(token)
        except HTTPException as e:
            return JSONResponse(status_code=401, content={"detail": e.detail})

        # ── Populate request.state ───────────────────────────────
        role = payload.get("role")
        overrides = payload.get("overrides") or []

        request.state.user = payload
        request.state.user_role = role
        request.state.user_overrides = overrides

        # ── RBAC check ───────────────────────────────────────────
        if path.startswith(ADMIN_PREFIX):
            required = resolve_permission_from_request(request)
            if required is None:
                logger.warning(f"No permission mapping for {request.method} {path}")
                return JSONResponse(
                    status_code=403,
                    content={"detail": "Permission denied. No permission mapping for this route"},
                )
            module, action = required
            if not PermissionEvaluator(role, overrides).has_permission(module, action):
                return JSONResponse(
                    status_code=403,
                    content={
                        "detail": f"Permission denied. Requires: {module}:{action.value}",
                    },
                )

        return await call_next(request)
