"""
Notification counts: one canonical recount of pending work items.

Collections:
    reservations       status pending
    orders             status pending
    contact_messages   status new
    inventory_items    current_stock <= min_stock
    maintenance_tasks  status pending / in_progress with high or urgent priority
    system_alerts      not resolved

Every source is counted concurrently under a timeout; a source that fails or
times out contributes 0 instead of failing the whole snapshot.
"""

import asyncio
from typing import Awaitable

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from barista.config import get_database, settings
from barista.utils import Logger
from .schemas import NotificationCounts

logger = Logger("barista.notifications")

# Older records still carry the French status names.
PENDING_STATUSES = ["pending", "en_attente"]
NEW_MESSAGE_STATUSES = ["new", "nouveau"]
OPEN_MAINTENANCE_STATUSES = ["pending", "in_progress"]
URGENT_PRIORITIES = ["high", "urgent"]


class NotificationService:
    def __init__(self, db: AsyncIOMotorDatabase, timeout: float | None = None):
        self.db = db
        self.timeout = timeout or settings.notification_count_timeout_seconds

    async def _count(self, source: str, pending: Awaitable[int]) -> int:
        try:
            return await asyncio.wait_for(pending, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Counting {source} timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"Counting {source} failed: {e}")
        return 0

    async def get_counts(self) -> NotificationCounts:
        not_deleted = {"is_deleted": {"$ne": True}}
        (
            reservations,
            orders,
            messages,
            low_stock,
            maintenance,
            alerts,
        ) = await asyncio.gather(
            self._count(
                "reservations",
                self.db["reservations"].count_documents(
                    {"status": {"$in": PENDING_STATUSES}, **not_deleted}
                ),
            ),
            self._count(
                "orders",
                self.db["orders"].count_documents(
                    {"status": {"$in": PENDING_STATUSES}, **not_deleted}
                ),
            ),
            self._count(
                "contact_messages",
                self.db["contact_messages"].count_documents(
                    {"status": {"$in": NEW_MESSAGE_STATUSES}}
                ),
            ),
            self._count(
                "inventory_items",
                self.db["inventory_items"].count_documents(
                    {
                        **not_deleted,
                        "$expr": {"$lte": ["$current_stock", "$min_stock"]},
                    }
                ),
            ),
            self._count(
                "maintenance_tasks",
                self.db["maintenance_tasks"].count_documents(
                    {
                        "status": {"$in": OPEN_MAINTENANCE_STATUSES},
                        "priority": {"$in": URGENT_PRIORITIES},
                    }
                ),
            ),
            self._count(
                "system_alerts",
                self.db["system_alerts"].count_documents({"resolved": {"$ne": True}}),
            ),
        )

        return NotificationCounts(
            pending_reservations=reservations,
            pending_orders=orders,
            new_messages=messages,
            low_stock_items=low_stock,
            maintenance_alerts=maintenance,
            system_alerts=alerts,
        )


def get_notification_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> NotificationService:
    """FastAPI dependency."""
    return NotificationService(db)
