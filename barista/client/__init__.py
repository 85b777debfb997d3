"""
Admin client core.

`AdminClient` wires one session manager, one realtime channel and one
notification store together for a single signed-in admin:

    client = AdminClient()
    await client.start()                  # restore + validate, mount counts
    await client.login("manager", "secret")
    client.guard("reservations", "edit").check()
"""

import asyncio
import time
from typing import Callable, Optional

from barista.config import ClientSettings, client_settings
from barista.utils import Logger
from .api import ApiClient
from .guard import AccessDenied, AccessGuard, GuardDecision, GuardStatus, RouteGuard
from .notifications import NotificationStore
from .realtime import ConnectionState, RealtimeChannel
from .schemas import RealtimeMessage, Session, User
from .session import SessionManager, SessionStatus
from .storage import FileSessionStorage, MemorySessionStorage, SessionStorage

logger = Logger("barista.client")

PERMISSION_UPDATE_EVENT = "permission-update"


class AdminClient:
    def __init__(
        self,
        config: Optional[ClientSettings] = None,
        storage: Optional[SessionStorage] = None,
        transport=None,
        connector=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or client_settings
        self._clock = clock

        self.api = ApiClient(
            self.config.base_url,
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )
        self.storage = storage or FileSessionStorage(self.config.session_file)
        self.session = SessionManager(self.api, self.storage)
        self.channel = RealtimeChannel(
            self.config.base_url,
            token_provider=lambda: self.session.token,
            path=self.config.ws_path,
            base_delay=self.config.reconnect_base_delay_seconds,
            max_delay=self.config.reconnect_max_delay_seconds,
            max_attempts=self.config.reconnect_max_attempts,
            connector=connector,
        )
        self.notifications = NotificationStore(
            self.api,
            self.session,
            self.channel,
            throttle_seconds=self.config.snapshot_throttle_seconds,
            debounce_seconds=self.config.refresh_debounce_seconds,
            clock=clock,
        )

        self._last_permission_sync: Optional[float] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._unsubscribe_sync: Optional[Callable[[], None]] = None
        self.session.add_listener(self._on_session_event)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> Optional[Session]:
        """Restore any persisted session, then start live updates."""
        session = await self.session.restore_session()
        await self._start_live()
        return session

    async def login(self, identifier: str, password: str) -> Session:
        session = await self.session.login(identifier, password)
        await self._start_live()
        return session

    async def logout(self) -> None:
        await self.session.logout()

    async def close(self) -> None:
        """Unmount everything and close the socket for good."""
        self.notifications.unmount()
        if self._unsubscribe_sync is not None:
            self._unsubscribe_sync()
            self._unsubscribe_sync = None
        await self.channel.close()

    # ── Guards ───────────────────────────────────────────────────

    def guard(self, module: str, action) -> AccessGuard:
        return AccessGuard(self.session, module, action)

    def route_guard(
        self,
        navigator: Callable[[str], None],
        login_path: str = "/login",
        required_role=None,
    ) -> RouteGuard:
        return RouteGuard(self.session, navigator, login_path, required_role)

    # ── Internals ────────────────────────────────────────────────

    async def _start_live(self) -> None:
        if not self.session.is_authenticated:
            return
        if self._unsubscribe_sync is None:
            self._unsubscribe_sync = self.channel.subscribe(self._on_realtime)
        await self.notifications.mount()

    def _on_realtime(self, message: RealtimeMessage) -> None:
        if message.type != PERMISSION_UPDATE_EVENT:
            return
        user = self.session.user
        data = message.data if isinstance(message.data, dict) else {}
        if user is None or str(data.get("userId")) != user.id:
            return

        now = self._clock()
        interval = self.config.permission_sync_interval_seconds
        if self._last_permission_sync is not None and now - self._last_permission_sync < interval:
            logger.debug("Permission sync throttled")
            return
        self._last_permission_sync = now
        logger.info("Permissions changed on the server, refreshing user")
        self._sync_task = asyncio.get_running_loop().create_task(
            self.session.refresh_user_data()
        )

    def _on_session_event(self, event: str, session: Optional[Session]) -> None:
        if event in ("logout", "invalidated"):
            self._last_permission_sync = None
            if self.channel.state != ConnectionState.DISCONNECTED or self.channel.reconnect_pending:
                self.channel.close_soon()
        elif event == "login":
            self.channel.retrigger()


__all__ = [
    "AdminClient",
    "ApiClient",
    "AccessDenied",
    "AccessGuard",
    "ConnectionState",
    "FileSessionStorage",
    "GuardDecision",
    "GuardStatus",
    "MemorySessionStorage",
    "NotificationStore",
    "RealtimeChannel",
    "RealtimeMessage",
    "RouteGuard",
    "Session",
    "SessionManager",
    "SessionStatus",
    "SessionStorage",
    "User",
]
