from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from barista.rbac.permissions import PermissionOverride


class User(BaseModel):
    """Authenticated user as returned by /api/auth/login and /api/auth/me."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    permission_overrides: List[PermissionOverride] = []

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def identity(self) -> str:
        return self.username or self.email or self.id


class Session(BaseModel):
    """
    One authenticated session. Persisted as a single record so the token and
    the user are always written and cleared together.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token: str = Field(alias="auth_token", min_length=1)
    user: User = Field(alias="auth_user")
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def with_user(self, user: User) -> "Session":
        return self.model_copy(update={"user": user})


class RealtimeMessage(BaseModel):
    """Inbound realtime envelope."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    data: Optional[Any] = None
    timestamp: Optional[str] = None
