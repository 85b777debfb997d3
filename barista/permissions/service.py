"""Per-user permission overrides stored on the user document."""

from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from barista.config import get_database
from barista.rbac.permissions import PermissionEvaluator, effective_permissions
from barista.rbac.roles import PermissionAction, Role, parse_role
from barista.utils import Logger, parse_object_id

logger = Logger("barista.permissions")


class PermissionService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db["users"]

    async def _load_user(self, user_id: str) -> dict:
        try:
            oid = parse_object_id(user_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid user ID",
            )
        user = await self.users.find_one({"_id": oid})
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
            )
        return user

    @staticmethod
    def _describe(user_id: str, user: dict) -> dict:
        role = parse_role(user.get("role"))
        overrides = user.get("permission_overrides") or []
        return {
            "user_id": user_id,
            "role": role.value if role else user.get("role"),
            "overrides": overrides,
            "permissions": effective_permissions(role, overrides),
        }

    async def get_user_permissions(self, user_id: str) -> dict:
        user = await self._load_user(user_id)
        return self._describe(user_id, user)

    async def set_override(
        self,
        user_id: str,
        module: str,
        action: PermissionAction,
        granted: bool,
        changed_by: str | None = None,
    ) -> dict:
        """Replace the override for (module, action). Director accounts are fixed."""
        user = await self._load_user(user_id)
        if PermissionEvaluator(user.get("role")).has_role(Role.DIRECTOR):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Director permissions cannot be modified",
            )

        overrides = [
            o
            for o in (user.get("permission_overrides") or [])
            if not (o.get("module") == module and o.get("action") == action.value)
        ]
        overrides.append({"module": module, "action": action.value, "granted": granted})

        await self.users.update_one(
            {"_id": user["_id"]},
            {
                "$set": {
                    "permission_overrides": overrides,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
        )
        user["permission_overrides"] = overrides
        logger.info(
            f"{'Granted' if granted else 'Revoked'} {module}:{action.value} "
            f"for user {user_id} (by {changed_by})"
        )
        return self._describe(user_id, user)


def get_permission_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> PermissionService:
    """FastAPI dependency."""
    return PermissionService(db)
