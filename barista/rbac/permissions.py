"""
Permission checking utilities.

Evaluates (role, module, action) against the default matrix with an optional
per-user override layer, and resolves the permission an HTTP request needs.
Checks never raise: anything unknown or missing is a denial.
"""

from typing import Iterable, Optional, Union

from pydantic import BaseModel, ValidationError
from starlette.requests import Request

from barista.utils import Logger
from barista.utils.exceptions import ConfigurationError
from .roles import (
    CRITICAL_MODULES,
    DEFAULT_PERMISSIONS,
    MODULES,
    PermissionAction,
    PermissionsMap,
    Role,
    parse_action,
    parse_role,
)

logger = Logger("barista.rbac")


class PermissionOverride(BaseModel):
    """A per-user grant (granted=True) or revoke (granted=False)."""

    module: str
    action: PermissionAction
    granted: bool


OverrideInput = Union[PermissionOverride, dict]
OverrideIndex = dict[tuple[str, PermissionAction], bool]

_reported_gaps: set[tuple[str, str]] = set()


def index_overrides(overrides: Optional[Iterable[OverrideInput]]) -> OverrideIndex:
    """Build a (module, action) -> granted lookup. Invalid entries are skipped."""
    index: OverrideIndex = {}
    for raw in overrides or ():
        try:
            item = (
                raw
                if isinstance(raw, PermissionOverride)
                else PermissionOverride.model_validate(raw)
            )
        except ValidationError:
            logger.warning(f"Ignoring malformed permission override: {raw!r}")
            continue
        index[(item.module, item.action)] = item.granted
    return index


def _report_gap(role: Role, module: str) -> None:
    key = (role.value, module)
    if key in _reported_gaps:
        return
    _reported_gaps.add(key)
    logger.error(ConfigurationError(role.value, module).message)


def has_permission(
    role,
    module: str,
    action,
    overrides: Optional[Iterable[OverrideInput]] = None,
    matrix: dict[Role, PermissionsMap] = DEFAULT_PERMISSIONS,
) -> bool:
    """
    Answer "may `role` perform `action` on `module`".

    Order:
      1. unknown role / unknown action  -> False
      2. module missing from role map   -> False (logged as a configuration gap)
      3. user override for the pair     -> its `granted` value
      4. role default
    """
    resolved_role = parse_role(role)
    resolved_action = parse_action(action)
    if resolved_role is None or resolved_action is None:
        return False

    role_map = matrix.get(resolved_role)
    if role_map is None or module not in role_map:
        _report_gap(resolved_role, module)
        return False

    index = overrides if isinstance(overrides, dict) else index_overrides(overrides)
    if (module, resolved_action) in index:
        return index[(module, resolved_action)]

    return resolved_action in role_map[module]


def effective_permissions(
    role,
    overrides: Optional[Iterable[OverrideInput]] = None,
) -> dict[str, list[str]]:
    """Module -> allowed action names after applying overrides."""
    index = index_overrides(overrides)
    result: dict[str, list[str]] = {}
    for module in MODULES:
        result[module] = [
            action.value
            for action in PermissionAction
            if has_permission(role, module, action, index)
        ]
    return result


class PermissionEvaluator:
    """
    Capability view of one user.

    While `restrict_critical` is set (a restored session that the server has
    not confirmed yet) every critical module is denied.
    """

    def __init__(
        self,
        role=None,
        overrides: Optional[Iterable[OverrideInput]] = None,
        restrict_critical: bool = False,
    ):
        self.role = parse_role(role)
        self.restrict_critical = restrict_critical
        self._overrides = index_overrides(overrides)

    @classmethod
    def anonymous(cls) -> "PermissionEvaluator":
        return cls(role=None)

    @staticmethod
    def is_critical(module: str) -> bool:
        return module in CRITICAL_MODULES

    def has_permission(self, module: str, action) -> bool:
        if self.role is None:
            return False
        if self.restrict_critical and self.is_critical(module):
            return False
        return has_permission(self.role, module, action, self._overrides)

    def can_view(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.VIEW)

    def can_create(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.CREATE)

    def can_edit(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.EDIT)

    def can_delete(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.DELETE)

    def can_respond(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.RESPOND)

    def can_use(self, module: str) -> bool:
        return self.has_permission(module, PermissionAction.USE)

    def has_role(self, role) -> bool:
        expected = parse_role(role)
        return expected is not None and self.role == expected

    def accessible_modules(self) -> list[str]:
        return [m for m in MODULES if self.can_view(m)]

    def capabilities(self) -> frozenset[str]:
        """Every granted permission as a "module:action" string."""
        return frozenset(
            f"{module}:{action.value}"
            for module in MODULES
            for action in PermissionAction
            if self.has_permission(module, action)
        )


# ── Map /api/admin/<segment>/... to modules ──────────────────────
MODULE_MAP: dict[str, str] = {
    "notifications": "notifications",
    "reservations": "reservations",
    "orders": "orders",
    "online-orders": "online_orders",
    "menu": "menu",
    "inventory": "inventory",
    "users": "employees",
    "employees": "employees",
    "customers": "customers",
    "analytics": "analytics",
    "statistics": "statistics",
    "messages": "messages",
    "settings": "settings",
    "permissions": "permissions",
    "reports": "reports",
    "backups": "backups",
    "accounting": "accounting",
    "loyalty": "loyalty",
    "events": "events",
    "promotions": "promotions",
    "delivery": "delivery",
    "tables": "tables",
    "images": "image_management",
    "maintenance": "maintenance",
}

# /api/admin/<segment>/<id>/<sub>: sub-resources guarded by their own module
SUB_RESOURCE_MAP: dict[tuple[str, str], str] = {
    ("users", "permissions"): "permissions",
    ("employees", "permissions"): "permissions",
}

# ── Map HTTP methods to actions ──────────────────────────────────
METHOD_TO_ACTION: dict[str, PermissionAction] = {
    "GET": PermissionAction.VIEW,
    "POST": PermissionAction.CREATE,
    "PUT": PermissionAction.EDIT,
    "PATCH": PermissionAction.EDIT,
    "DELETE": PermissionAction.DELETE,
}

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

ADMIN_PREFIX = "/api/admin/"


def resolve_permission_from_request(
    request: Request,
) -> Optional[tuple[str, PermissionAction]]:
    """
    Derive the (module, action) an admin request needs.

    URL pattern expected:  /api/admin/{segment}/... or
    /api/admin/{segment}/{id}/{sub} for entries in SUB_RESOURCE_MAP.
    Returns None for unknown segments or methods; callers deny in that case.
    """
    path = request.url.path
    if not path.startswith(ADMIN_PREFIX):
        return None
    parts = path[len(ADMIN_PREFIX):].split("/")
    segment = parts[0]
    module = MODULE_MAP.get(segment)
    if len(parts) >= 3:
        module = SUB_RESOURCE_MAP.get((segment, parts[2]), module)
    action = METHOD_TO_ACTION.get(request.method)
    if not module or not action:
        return None
    return module, action
