"""
Notification state store.

Holds the latest NotificationCounts snapshot. Realtime events never carry
counts into the store; they only schedule a debounced recount from
GET /api/admin/notifications/count.
"""

import asyncio
import time
from typing import Callable, Optional

from barista.notifications.schemas import NotificationCounts
from barista.utils import Logger
from barista.utils.exceptions import AuthError, BaristaError
from .api import ApiClient
from .realtime import RealtimeChannel
from .schemas import RealtimeMessage, Session
from .session import SessionManager

logger = Logger("barista.client.notifications")

RECOUNT_EVENTS = frozenset(
    {
        "notification",
        "notifications",
        "data_update",
        "update",
        "refresh",
        "new_reservation",
        "new_order",
        "new_message",
    }
)

CountsListener = Callable[[NotificationCounts], None]


class NotificationStore:
    def __init__(
        self,
        api: ApiClient,
        session_manager: SessionManager,
        channel: RealtimeChannel,
        throttle_seconds: float = 1.0,
        debounce_seconds: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api = api
        self._session_manager = session_manager
        self._channel = channel
        self.throttle_seconds = max(throttle_seconds, 1.0)
        self.debounce_seconds = debounce_seconds
        self._clock = clock

        self.counts = NotificationCounts()
        self._mounted = False
        self._generation = 0
        self._last_fetch: Optional[float] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: list[CountsListener] = []

        session_manager.add_listener(self._on_session_event)

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def total(self) -> int:
        return self.counts.total

    def add_listener(self, listener: CountsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ── Lifecycle ────────────────────────────────────────────────

    async def mount(self) -> None:
        """Subscribe to the realtime channel and fetch an initial snapshot."""
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribe = self._channel.subscribe(self.handle_event)
        await self.refresh()

    def unmount(self) -> None:
        """Stop all updates. Listeners never fire after this returns."""
        if not self._mounted:
            return
        self._mounted = False
        self._generation += 1
        self._cancel_debounce()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def reset(self) -> None:
        """Zero the counts and drop every in-flight snapshot."""
        self._generation += 1
        self._cancel_debounce()
        self._last_fetch = None
        self._apply(NotificationCounts())

    # ── Snapshot ─────────────────────────────────────────────────

    async def refresh(self) -> bool:
        """
        Fetch a snapshot, at most once per `throttle_seconds`.

        Returns True when new counts were applied.
        """
        if not self._mounted:
            return False
        token = self._session_manager.token
        if token is None:
            return False

        now = self._clock()
        if self._last_fetch is not None and now - self._last_fetch < self.throttle_seconds:
            logger.debug("Snapshot throttled")
            return False
        self._last_fetch = now
        generation = self._generation

        try:
            counts = await self._api.notification_counts(token)
        except AuthError as e:
            logger.warning(f"Notification counts refused: {e.message}")
            return False
        except BaristaError as e:
            logger.warning(f"Notification counts unavailable: {e.message}")
            return False

        if generation != self._generation or not self._mounted:
            logger.debug("Discarding stale notification snapshot")
            return False
        self._apply(counts)
        return True

    def schedule_refresh(self) -> None:
        """Coalesce bursts of events into one recount."""
        if not self._mounted:
            return
        self._cancel_debounce()
        self._debounce_handle = self._call_later(self.debounce_seconds, self._fire)

    def handle_event(self, message: RealtimeMessage) -> None:
        if not self._mounted:
            return
        if message.type in RECOUNT_EVENTS:
            self.schedule_refresh()

    # ── Internals ────────────────────────────────────────────────

    def _fire(self) -> None:
        self._debounce_handle = None
        if not self._mounted:
            return
        if self._last_fetch is not None:
            wait = self.throttle_seconds - (self._clock() - self._last_fetch)
            if wait > 0:
                self._debounce_handle = self._call_later(wait, self._fire)
                return
        self._pending = asyncio.get_running_loop().create_task(self.refresh())

    def _apply(self, counts: NotificationCounts) -> None:
        self.counts = counts
        if not self._mounted:
            return
        for listener in list(self._listeners):
            try:
                listener(counts)
            except Exception:
                logger.exception("Notification listener failed")

    def _on_session_event(self, event: str, session: Optional[Session]) -> None:
        if event in ("logout", "invalidated"):
            self.reset()
        elif event == "login" and self._mounted:
            self._last_fetch = None
            self.schedule_refresh()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _call_later(self, delay: float, callback: Callable[[], None]):
        return asyncio.get_running_loop().call_later(delay, callback)
