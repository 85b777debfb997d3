"""
Role definitions and the default permission matrix.

Permission format:  module -> ordered tuple of actions
  - Roles   : director, employee
  - Actions : view, create, edit, delete, respond, use
  - Modules : fixed set (MODULES); every role lists every module,
              an empty tuple means "no access".
"""

from enum import Enum
from typing import Optional

from barista.utils.exceptions import ConfigurationError


class Role(str, Enum):
    DIRECTOR = "director"
    EMPLOYEE = "employee"


class PermissionAction(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    RESPOND = "respond"
    USE = "use"


# Identifiers still present in older user records.
ROLE_ALIASES: dict[str, Role] = {
    "directeur": Role.DIRECTOR,
    "employe": Role.EMPLOYEE,
}

MODULES: tuple[str, ...] = (
    "dashboard",
    "statistics",
    "reservations",
    "orders",
    "menu",
    "inventory",
    "employees",
    "customers",
    "analytics",
    "messages",
    "notifications",
    "settings",
    "permissions",
    "reports",
    "backups",
    "accounting",
    "loyalty",
    "events",
    "promotions",
    "delivery",
    "online_orders",
    "tables",
    "user_profile",
    "image_management",
    "schedule",
    "calendar",
    "suppliers",
    "maintenance",
    "quality",
    "pos",
)

# Mutations on these are re-verified server-side against fresh user data.
CRITICAL_MODULES: frozenset[str] = frozenset(
    {"permissions", "backups", "accounting", "settings"}
)

V, C, E, D, R, U = (
    PermissionAction.VIEW,
    PermissionAction.CREATE,
    PermissionAction.EDIT,
    PermissionAction.DELETE,
    PermissionAction.RESPOND,
    PermissionAction.USE,
)

PermissionsMap = dict[str, tuple[PermissionAction, ...]]

DEFAULT_PERMISSIONS: dict[Role, PermissionsMap] = {
    Role.DIRECTOR: {
        # ── Administration ───────────────────────────────────────
        "dashboard": (V, E),
        "statistics": (V, E),
        "settings": (V, E),
        "permissions": (V, E),
        "backups": (V, C, E),
        "accounting": (V, C, E),
        "reports": (V, C, E),
        "analytics": (V, C, E),
        # ── Menu & orders ────────────────────────────────────────
        "menu": (V, C, E, D),
        "orders": (V, C, E, D),
        "online_orders": (V, C, E, D),
        "delivery": (V, C, E, D),
        "pos": (V, U),
        # ── Customers & reservations ─────────────────────────────
        "customers": (V, C, E, D),
        "reservations": (V, C, E, D),
        "tables": (V, C, E, D),
        "loyalty": (V, C, E, D),
        "events": (V, C, E, D),
        "promotions": (V, C, E, D),
        # ── Staff ────────────────────────────────────────────────
        "employees": (V, C, E, D),
        "schedule": (V, C, E, D),
        "calendar": (V, C, E, D),
        "user_profile": (V, E),
        # ── Communication ────────────────────────────────────────
        "messages": (V, R, D),
        "notifications": (V, C, E),
        # ── Operations ───────────────────────────────────────────
        "inventory": (V, C, E, D),
        "suppliers": (V, C, E, D),
        "maintenance": (V, C, E, D),
        "quality": (V, C, E),
        "image_management": (V, C, E, D),
    },
    Role.EMPLOYEE: {
        "dashboard": (V,),
        "statistics": (V,),
        "settings": (),
        "permissions": (),
        "backups": (),
        "accounting": (),
        "reports": (),
        "analytics": (),
        "menu": (V,),
        "orders": (V, C, E),
        "online_orders": (V, E),
        "delivery": (V, E),
        "pos": (V, U),
        "customers": (V, C),
        "reservations": (V, C, E),
        "tables": (V, E),
        "loyalty": (),
        "events": (),
        "promotions": (),
        "employees": (),
        "schedule": (V,),
        "calendar": (V,),
        "user_profile": (V, E),
        "messages": (V, R),
        "notifications": (V,),
        "inventory": (V,),
        "suppliers": (),
        "maintenance": (),
        "quality": (),
        "image_management": (),
    },
}


def parse_role(value) -> Optional[Role]:
    """Resolve a role from an enum, a canonical name or a legacy alias."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    try:
        return Role(key)
    except ValueError:
        return ROLE_ALIASES.get(key)


def parse_action(value) -> Optional[PermissionAction]:
    if isinstance(value, PermissionAction):
        return value
    if not isinstance(value, str):
        return None
    try:
        return PermissionAction(value.strip().lower())
    except ValueError:
        return None


def missing_matrix_entries(
    matrix: dict[Role, PermissionsMap] = DEFAULT_PERMISSIONS,
) -> list[tuple[str, str]]:
    """List every (role, module) pair absent from the matrix."""
    missing = []
    for role in Role:
        role_map = matrix.get(role, {})
        for module in MODULES:
            if module not in role_map:
                missing.append((role.value, module))
    return missing


def validate_matrix(matrix: dict[Role, PermissionsMap] = DEFAULT_PERMISSIONS) -> None:
    """Raise ConfigurationError if the matrix is not total over role x module."""
    missing = missing_matrix_entries(matrix)
    if missing:
        role, module = missing[0]
        raise ConfigurationError(role, module)


validate_matrix()
