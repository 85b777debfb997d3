"""
Barista Café admin API: main application.

Assembles: config, middleware, auth, notification counts, permission
management and the realtime WebSocket endpoint.
"""

import time
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from barista.config import settings, db_manager
from barista.middleware import AuthPermissionMiddleware
from barista.rbac.permissions import resolve_permission_from_request
from barista.utils import Logger, error_response

# ── Route imports ────────────────────────────────────────────────
from barista.auth import auth_router
from barista.notifications.routes import notifications_router
from barista.permissions import permissions_router
from barista.realtime.routes import realtime_router

logger = Logger("barista.request")


# ── Request Logging Middleware ───────────────────────────────────
def _actor(request: Request) -> str:
    """user-id/role once AuthPermissionMiddleware has run, else anonymous."""
    payload = getattr(request.state, "user", None)
    if not payload:
        return "anonymous"
    return f"{payload.get('sub')}/{getattr(request.state, 'user_role', None)}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One line per request with the acting user and, for /api/admin/*, the
    (module, action) that guarded it.

    Added before AuthPermissionMiddleware, so it runs inside it and only
    sees requests the auth layer let through.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        target = f"{request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception:
            logger.error(f"{target} | 500 | {_actor(request)} | {_elapsed_ms(start)}ms")
            raise

        required = resolve_permission_from_request(request)
        guard = f" | {required[0]}:{required[1].value}" if required else ""
        line = (
            f"{target} | {response.status_code} | {_actor(request)}{guard}"
            f" | {_elapsed_ms(start)}ms"
        )
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# ── Lifespan ─────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    await db_manager.connect()
    yield
    db_manager.close()


# ── App factory ──────────────────────────────────────────────────
def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Restaurant back-office: auth, permissions, live notifications",
        docs_url="/api/docs",
        lifespan=lifespan if use_lifespan else None,
    )

    # ── CORS ─────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )

    # ── Request logging (runs on every request) ──────────────
    app.add_middleware(RequestLoggingMiddleware)

    # ── Auth + RBAC middleware ───────────────────────────────
    app.add_middleware(AuthPermissionMiddleware)

    # ── Global exception handler ─────────────────────────────
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}:")
        logger.error(traceback.format_exc())
        return error_response(
            str(exc) if settings.debug else "Internal server error", code=500
        )

    # ── Routes ───────────────────────────────────────────────
    app.include_router(
        auth_router,
        prefix="/api/auth",
        tags=["Authentication"],
    )
    app.include_router(
        notifications_router,
        prefix="/api/admin/notifications",
        tags=["Notifications"],
    )
    app.include_router(
        permissions_router,
        prefix="/api/admin",
        tags=["Permissions"],
    )
    app.include_router(realtime_router, tags=["Realtime"])

    # ── Health check ─────────────────────────────────────────
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
            "database": db_manager.is_connected,
        }

    return app


# ── Create the app instance ──────────────────────────────────────
app = create_app()
