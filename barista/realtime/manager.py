"""
WebSocket connection manager: single-process broadcast to admin dashboards.

Every outbound frame is an envelope:
    {"type": str, "data": dict | None, "timestamp": ISO-8601}

Usage from other services:
    from barista.realtime import ws_manager
    await ws_manager.notify_new_order(order)
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import WebSocket

from barista.utils import Logger

logger = Logger("barista.realtime")


def build_envelope(message_type: str, data: Optional[dict] = None) -> dict:
    return {
        "type": message_type,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ConnectionManager:
    def __init__(self):
        self._clients: dict[WebSocket, dict] = {}

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket, claims: dict) -> None:
        await websocket.accept()
        self._clients[websocket] = claims
        logger.info(
            f"WebSocket connected for user {claims.get('sub')} "
            f"({self.connection_count} open)"
        )
        await self.send(
            websocket, build_envelope("connected", {"message": "Connection established"})
        )

    def disconnect(self, websocket: WebSocket) -> None:
        if self._clients.pop(websocket, None) is not None:
            logger.info(f"WebSocket closed ({self.connection_count} open)")

    async def send(self, websocket: WebSocket, envelope: dict) -> bool:
        try:
            await websocket.send_json(envelope)
            return True
        except Exception as e:
            logger.warning(f"Dropping WebSocket after failed send: {e}")
            self.disconnect(websocket)
            return False

    async def broadcast(self, message_type: str, data: Optional[dict] = None) -> int:
        """Send to every open connection; returns how many received it."""
        envelope = build_envelope(message_type, data)
        delivered = 0
        for websocket in list(self._clients):
            if await self.send(websocket, envelope):
                delivered += 1
        return delivered

    async def handle_message(self, websocket: WebSocket, raw: str) -> None:
        """Inbound frames: answer pings, ignore the rest, drop garbage."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed WebSocket frame")
            return
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            logger.warning("Dropping WebSocket frame without a type")
            return
        if message["type"] == "ping":
            await self.send(websocket, build_envelope("pong"))
            return
        logger.debug(f"Ignoring client message of type {message['type']!r}")

    # ── Domain notifications ─────────────────────────────────────

    async def notify_new_reservation(self, reservation: dict[str, Any]) -> int:
        return await self.broadcast(
            "notification",
            {
                "type": "new_reservation",
                "title": "New reservation",
                "message": (
                    f"Reservation for {reservation.get('customer_name')} "
                    f"on {reservation.get('date')}"
                ),
                "reservation": reservation,
            },
        )

    async def notify_new_order(self, order: dict[str, Any]) -> int:
        return await self.broadcast(
            "notification",
            {
                "type": "new_order",
                "title": "New order",
                "message": f"Order #{order.get('id')} of {order.get('total')}€",
                "order": order,
            },
        )

    async def notify_new_message(self, message: dict[str, Any]) -> int:
        return await self.broadcast(
            "notification",
            {
                "type": "new_message",
                "title": "New message",
                "message": f"Message from {message.get('name')}",
                "contact_message": message,
            },
        )

    async def notify_data_update(self, entity: str, data: Optional[dict] = None) -> int:
        return await self.broadcast("data_update", {"type": entity, "data": data})

    async def notify_stats_refresh(self) -> int:
        return await self.broadcast("refresh", {"type": "stats"})

    async def notify_permission_update(self, user_id: str) -> int:
        return await self.broadcast("permission-update", {"userId": user_id})


# ── Module-level singleton ──────────────────────────────────────
ws_manager = ConnectionManager()


def get_ws_manager() -> ConnectionManager:
    """FastAPI dependency."""
    return ws_manager
