"""
Realtime sync channel.

One WebSocket per client, shared through reference-counted `subscribe()`.
The socket opens lazily with the first subscriber and closes intentionally
when the last one leaves. Unexpected closes reconnect with exponential
backoff until `max_attempts` is reached.
"""

import asyncio
import json
from enum import Enum
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from barista.utils import Logger
from barista.utils.exceptions import ProtocolError
from .schemas import RealtimeMessage

logger = Logger("barista.client.realtime")

Subscriber = Callable[[RealtimeMessage], None]
Connector = Callable[[str], Awaitable]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


def parse_message(raw) -> RealtimeMessage:
    """Decode one frame into an envelope. Raises ProtocolError."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError("Frame is not valid UTF-8") from e
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError("Frame is not valid JSON", raw=str(raw)) from e
    if not isinstance(payload, dict):
        raise ProtocolError("Frame is not a JSON object", raw=str(raw))
    try:
        return RealtimeMessage.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Frame is not a valid envelope: {e}", raw=str(raw)) from e


def compute_backoff(attempt: int, base: float, cap: float) -> float:
    return min(base * (2 ** attempt), cap)


def build_ws_url(base_url: str, path: str, token: str) -> str:
    """http(s)://host -> ws(s)://host/<path>?token=..."""
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return urlunsplit(
        (scheme, parts.netloc, "/" + path.lstrip("/"), urlencode({"token": token}), "")
    )


class RealtimeChannel:
    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        path: str = "/ws",
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        connector: Optional[Connector] = None,
    ):
        self.base_url = base_url
        self.path = path
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.reconnect_attempt = 0

        self._token_provider = token_provider
        self._connector = connector or websockets.connect
        self._subscribers: list[Subscriber] = []
        self._state = ConnectionState.DISCONNECTED
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._closing: Optional[asyncio.Task] = None
        self._reopen_pending = False
        self._intentional_close = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ── Subscriptions ────────────────────────────────────────────

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Add a subscriber; the first one opens the socket. Returns an unsubscriber."""
        self._subscribers.append(subscriber)
        if len(self._subscribers) == 1:
            self.open()

        def unsubscribe():
            if subscriber not in self._subscribers:
                return
            self._subscribers.remove(subscriber)
            if not self._subscribers:
                self._begin_close()

        return unsubscribe

    # ── Lifecycle ────────────────────────────────────────────────

    def open(self) -> None:
        if self._closing is not None and not self._closing.done():
            # Reopen once the in-flight close has released the old socket.
            if not self._reopen_pending:
                self._reopen_pending = True
                self._closing.add_done_callback(self._reopen_after_close)
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return
        token = self._token_provider()
        if not token:
            logger.debug("No session token, realtime channel stays closed")
            return
        self._intentional_close = False
        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._run(token))

    def close_soon(self) -> asyncio.Task:
        """
        Start an intentional close without waiting for it.

        A later open() (or retrigger()) waits for this close to finish first.
        """
        self._intentional_close = True
        self._cancel_reconnect()
        if self._closing is None or self._closing.done():
            if self._state != ConnectionState.DISCONNECTED:
                self._state = ConnectionState.CLOSING
            self._closing = asyncio.get_running_loop().create_task(self._shutdown())
        return self._closing

    async def close(self) -> None:
        """Intentional close: never reconnects on its own."""
        await asyncio.shield(self.close_soon())

    def retrigger(self) -> None:
        """Reconnect after giving up (or after a new login) with a fresh attempt budget."""
        self.reconnect_attempt = 0
        if self._subscribers:
            self.open()

    async def send(self, type_: str, data: Optional[dict] = None) -> bool:
        if self._ws is None or self._state != ConnectionState.OPEN:
            return False
        await self._ws.send(json.dumps({"type": type_, "data": data}))
        return True

    # ── Internals ────────────────────────────────────────────────

    async def _run(self, token: str) -> None:
        url = build_ws_url(self.base_url, self.path, token)
        try:
            ws = await self._connector(url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.warning(f"Realtime connect failed: {e}")
            self._on_closed()
            return

        if self._intentional_close:
            await ws.close()
            self._state = ConnectionState.DISCONNECTED
            return

        self._ws = ws
        self._state = ConnectionState.OPEN
        self.reconnect_attempt = 0
        logger.info("Realtime channel open")

        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            logger.warning(f"Realtime socket closed: {e}")
        finally:
            self._ws = None
        self._on_closed()

    def _dispatch(self, raw) -> None:
        try:
            message = parse_message(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping realtime frame: {e.message}")
            return
        for subscriber in list(self._subscribers):
            try:
                subscriber(message)
            except Exception:
                logger.exception(f"Realtime subscriber failed on '{message.type}'")

    def _on_closed(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        if self._intentional_close or not self._subscribers:
            return
        if self.reconnect_attempt >= self.max_attempts:
            logger.warning(
                f"Realtime channel gave up after {self.reconnect_attempt} attempts"
            )
            return
        delay = compute_backoff(self.reconnect_attempt, self.base_delay, self.max_delay)
        self.reconnect_attempt += 1
        logger.info(
            f"Realtime reconnect {self.reconnect_attempt}/{self.max_attempts} in {delay}s"
        )
        self._reconnect_handle = self._call_later(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._intentional_close or not self._subscribers:
            return
        self.open()

    async def _shutdown(self) -> None:
        ws, task = self._ws, self._task
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error while closing realtime socket: {e}")
        elif task is not None and not task.done():
            task.cancel()
        if task is not None:
            await asyncio.wait({task})
        self._task = None
        self._state = ConnectionState.DISCONNECTED

    def _reopen_after_close(self, _closing: asyncio.Task) -> None:
        self._reopen_pending = False
        if self._subscribers:
            self.open()

    def _begin_close(self) -> None:
        self._cancel_reconnect()
        if self._state != ConnectionState.DISCONNECTED:
            asyncio.get_running_loop().create_task(self._close_when_idle())

    async def _close_when_idle(self) -> None:
        # A subscriber that arrived in the same tick keeps the socket.
        if self._subscribers:
            return
        await self.close()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _call_later(self, delay: float, callback: Callable[[], None]):
        return asyncio.get_running_loop().call_later(delay, callback)
