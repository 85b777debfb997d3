"""
Access guards for protected regions and routes.

Guards are advisory: they decide what the client shows. The server enforces
the same permissions on every request.
"""

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from barista.rbac.permissions import PermissionEvaluator
from barista.rbac.roles import parse_action, parse_role
from barista.utils import Logger
from .session import SessionManager

logger = Logger("barista.client.guard")


class GuardStatus(str, Enum):
    CHECKING = "checking"
    ALLOWED = "allowed"
    DENIED = "denied"
    REDIRECT = "redirect"


class GuardDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: GuardStatus
    message: Optional[str] = None
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.status == GuardStatus.ALLOWED


class AccessDenied(BaseModel):
    """Rendered in place of a protected region the user may not see."""

    model_config = ConfigDict(frozen=True)

    module: str
    action: str
    message: str


CHECKING = GuardDecision(status=GuardStatus.CHECKING)
ALLOWED = GuardDecision(status=GuardStatus.ALLOWED)


class AccessGuard:
    """Gate one region on a (module, action) permission."""

    def __init__(self, session_manager: SessionManager, module: str, action):
        self.session_manager = session_manager
        self.module = module
        parsed = parse_action(action)
        self.action = parsed.value if parsed else str(action)

    def check(self) -> GuardDecision:
        sm = self.session_manager
        if sm.is_loading:
            return CHECKING
        # Critical modules wait for server confirmation of a restored session.
        if sm.is_provisional and PermissionEvaluator.is_critical(self.module):
            return CHECKING
        if not sm.is_authenticated:
            return GuardDecision(
                status=GuardStatus.DENIED,
                message="Authentication required",
            )
        if sm.has_permission(self.module, self.action):
            return ALLOWED
        return GuardDecision(
            status=GuardStatus.DENIED,
            message=f"You do not have permission to {self.action} {self.module}",
        )

    def render(
        self,
        children: Callable[[], Any],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        decision = self.check()
        if decision.status == GuardStatus.CHECKING:
            return CHECKING
        if decision.allowed:
            return children()
        if fallback is not None:
            return fallback()
        return AccessDenied(
            module=self.module, action=self.action, message=decision.message
        )


class RouteGuard:
    """
    Gate a route on authentication and, optionally, a role.

    `navigator(path)` is called at most once per unauthenticated stretch.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        navigator: Callable[[str], None],
        login_path: str = "/login",
        required_role=None,
    ):
        self.session_manager = session_manager
        self.navigator = navigator
        self.login_path = login_path
        self.required_role = parse_role(required_role) if required_role else None
        if required_role and self.required_role is None:
            logger.warning(f"RouteGuard configured with unknown role {required_role!r}")
        self._required_role_raw = required_role
        self._redirected = False

    def check(self, current_path: str) -> GuardDecision:
        sm = self.session_manager
        if sm.is_loading:
            return CHECKING

        if not sm.is_authenticated:
            if current_path != self.login_path and not self._redirected:
                self._redirected = True
                logger.debug(f"Redirecting {current_path} -> {self.login_path}")
                self.navigator(self.login_path)
            return GuardDecision(
                status=GuardStatus.REDIRECT, redirect_to=self.login_path
            )

        self._redirected = False
        if self._required_role_raw is None:
            return ALLOWED

        if sm.evaluator().has_role(self._required_role_raw):
            return ALLOWED
        expected = (
            self.required_role.value if self.required_role else str(self._required_role_raw)
        )
        return GuardDecision(
            status=GuardStatus.DENIED,
            message=f"This page requires the '{expected}' role (your role: '{sm.user.role}')",
        )
