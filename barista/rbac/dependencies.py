"""
Server-side permission dependencies.

Usage:
    @router.put("/users/{user_id}/permissions")
    async def update(user: dict = Depends(require_permission("permissions", "edit"))):
        ...

Token claims are enough for ordinary checks. For critical modules on
mutating methods the user is reloaded from the database and re-evaluated,
so a stale token cannot carry a revoked grant into a state change.
"""

from fastapi import Depends, HTTPException, status
from starlette.requests import Request

from barista.auth.dependencies import get_token_payload
from barista.auth.service import AuthService, get_auth_service
from barista.utils import Logger
from .permissions import MUTATING_METHODS, PermissionEvaluator
from .roles import CRITICAL_MODULES, parse_action, parse_role

logger = Logger("barista.rbac")


class PermissionChecker:
    """Dependency enforcing one (module, action) pair."""

    def __init__(self, module: str, action: str):
        self.module = module
        self.action = action
        if parse_action(action) is None:
            logger.error(f"PermissionChecker built with unknown action '{action}'")

    async def __call__(
        self,
        request: Request,
        payload: dict = Depends(get_token_payload),
        auth: AuthService = Depends(get_auth_service),
    ) -> dict:
        if await auth.is_revoked(payload.get("jti")):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has been revoked",
                headers={"WWW-Authenticate": "Bearer"},
            )

        subject = payload
        if self.module in CRITICAL_MODULES and request.method in MUTATING_METHODS:
            subject = await auth.get_current_user(payload)
            logger.debug(
                f"Re-verified {self.module}:{self.action} for user {subject.get('id')}"
            )

        overrides = subject.get("permission_overrides", subject.get("overrides"))
        evaluator = PermissionEvaluator(subject.get("role"), overrides)
        if not evaluator.has_permission(self.module, self.action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Requires: {self.module}:{self.action}",
            )
        return subject


class RoleChecker:
    """Dependency denying users whose role is not one of `roles`."""

    def __init__(self, *roles: str):
        self.roles = [r for r in (parse_role(role) for role in roles) if r is not None]

    async def __call__(self, payload: dict = Depends(get_token_payload)) -> dict:
        evaluator = PermissionEvaluator(payload.get("role"))
        if not any(evaluator.has_role(role) for role in self.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": "Access denied",
                    "yourRole": payload.get("role"),
                    "requiredRoles": [role.value for role in self.roles],
                },
            )
        return payload


def require_permission(module: str, action: str) -> PermissionChecker:
    return PermissionChecker(module, action)


def require_role(*roles: str) -> RoleChecker:
    return RoleChecker(*roles)
