from pydantic import BaseModel, field_validator

from barista.rbac.roles import MODULES, PermissionAction


class UpdatePermissionRequest(BaseModel):
    """PUT /api/admin/users/{user_id}/permissions"""

    module: str
    action: PermissionAction
    granted: bool

    @field_validator("module")
    @classmethod
    def validate_module(cls, v):
        if v not in MODULES:
            raise ValueError(f"Unknown module '{v}'")
        return v
