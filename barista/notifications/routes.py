"""
Notification routes.

Endpoints:
    GET  /count    Snapshot of pending work items for the admin dashboards
"""

from fastapi import APIRouter, Depends

from barista.rbac.dependencies import require_permission
from .service import NotificationService, get_notification_service

notifications_router = APIRouter()


@notifications_router.get("/count")
async def notification_count(
    _user: dict = Depends(require_permission("notifications", "view")),
    svc: NotificationService = Depends(get_notification_service),
):
    counts = await svc.get_counts()
    return counts.to_payload()
