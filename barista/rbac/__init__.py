from .roles import (
    CRITICAL_MODULES,
    DEFAULT_PERMISSIONS,
    MODULES,
    PermissionAction,
    Role,
    parse_role,
)
from .permissions import (
    PermissionEvaluator,
    PermissionOverride,
    effective_permissions,
    has_permission,
    resolve_permission_from_request,
)

__all__ = [
    "CRITICAL_MODULES",
    "DEFAULT_PERMISSIONS",
    "MODULES",
    "PermissionAction",
    "Role",
    "parse_role",
    "PermissionEvaluator",
    "PermissionOverride",
    "effective_permissions",
    "has_permission",
    "resolve_permission_from_request",
]
