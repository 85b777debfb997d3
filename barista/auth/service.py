"""Authentication service: login, token validation and logout revocation."""

from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from fastapi import Depends, HTTPException, status
from bson import ObjectId

from barista.config import get_database
from barista.rbac.roles import parse_role
from barista.utils import Logger, public_user
from barista.utils.exceptions import INVALID_CREDENTIALS
from .helpers import verify_password, create_access_token

logger = Logger("barista.auth")


class AuthService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db["users"]
        self.revoked = db["revoked_tokens"]

    async def authenticate(self, identifier: str, password: str) -> dict:
        """
        1. Look the user up by username or email.
        2. Verify the password (same message for unknown user and bad password).
        3. Return JWT + public user data.
        """
        user = await self.users.find_one(
            {"$or": [{"username": identifier}, {"email": identifier}]}
        )
        if not user or not verify_password(password, user.get("password", "")):
            logger.warning(f"Failed login for '{identifier}'")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=INVALID_CREDENTIALS,
            )

        if not user.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is deactivated",
            )

        role = parse_role(user.get("role"))
        if role is None:
            logger.error(f"User {user['_id']} has unknown role {user.get('role')!r}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account has no valid role",
            )

        token = create_access_token(
            data={
                "sub": str(user["_id"]),
                "role": role.value,
                "overrides": user.get("permission_overrides") or [],
            }
        )

        now = datetime.now(timezone.utc)
        await self.users.update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
        user["last_login"] = now
        user["role"] = role.value

        logger.info(f"User {user['_id']} logged in as {role.value}")
        return {"token": token, "token_type": "bearer", "user": public_user(user)}

    async def get_user_by_id(self, user_id: str) -> Optional[dict]:
        if not user_id or not ObjectId.is_valid(user_id):
            return None
        user = await self.users.find_one({"_id": ObjectId(user_id)})
        if not user:
            return None
        role = parse_role(user.get("role"))
        if role is not None:
            user["role"] = role.value
        return public_user(user)

    async def is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        return await self.revoked.find_one({"jti": jti}) is not None

    async def get_current_user(self, payload: dict) -> dict:
        """Resolve the live user behind a decoded token; 401 if unusable."""
        if await self.is_revoked(payload.get("jti")):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has been revoked",
                headers={"WWW-Authenticate": "Bearer"},
            )
        user = await self.get_user_by_id(payload.get("sub"))
        if not user or not user.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user

    async def revoke_token(self, payload: dict) -> None:
        """Record the token id so /me and permission checks reject it."""
        jti = payload.get("jti")
        if not jti:
            return
        exp = payload.get("exp")
        expires_at = (
            datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None
        )
        await self.revoked.update_one(
            {"jti": jti},
            {
                "$set": {
                    "jti": jti,
                    "user_id": payload.get("sub"),
                    "expires_at": expires_at,
                    "revoked_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
        )
        logger.info(f"Revoked token {jti} for user {payload.get('sub')}")


def get_auth_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> AuthService:
    """FastAPI dependency."""
    return AuthService(db)
