"""
Permission management routes.

Endpoints:
    GET  /users/{user_id}/permissions   Role, overrides and effective map
    PUT  /users/{user_id}/permissions   Grant or revoke one (module, action)

`permissions` is a critical module: the PUT is re-verified against the
caller's current database record, not the token claims.
"""

from fastapi import APIRouter, Depends

from barista.realtime import ConnectionManager, get_ws_manager
from barista.rbac.dependencies import require_permission
from barista.utils import success_response
from .schemas import UpdatePermissionRequest
from .service import PermissionService, get_permission_service

permissions_router = APIRouter()


@permissions_router.get("/users/{user_id}/permissions")
async def get_user_permissions(
    user_id: str,
    _user: dict = Depends(require_permission("permissions", "view")),
    svc: PermissionService = Depends(get_permission_service),
):
    return success_response(data=await svc.get_user_permissions(user_id))


@permissions_router.put("/users/{user_id}/permissions")
async def update_user_permissions(
    user_id: str,
    body: UpdatePermissionRequest,
    current_user: dict = Depends(require_permission("permissions", "edit")),
    svc: PermissionService = Depends(get_permission_service),
    ws: ConnectionManager = Depends(get_ws_manager),
):
    result = await svc.set_override(
        user_id,
        module=body.module,
        action=body.action,
        granted=body.granted,
        changed_by=current_user.get("id"),
    )
    await ws.notify_permission_update(user_id)
    return success_response(data=result, message="Permissions updated")
