from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class LoginRequest(BaseModel):
    """POST /api/auth/login. Accepts `username`, `email` or `identifier`."""

    username: Optional[str] = None
    email: Optional[EmailStr] = None
    identifier: Optional[str] = None
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def require_identity(self):
        if not (self.username or self.email or self.identifier):
            raise ValueError("username or email is required")
        return self

    @property
    def login_identifier(self) -> str:
        return self.identifier or self.username or str(self.email)

