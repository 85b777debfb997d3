from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from barista.auth.helpers import decode_access_token
from barista.auth.service import AuthService, get_auth_service
from barista.utils import Logger
from .manager import ws_manager

logger = Logger("barista.realtime")

realtime_router = APIRouter()


@realtime_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    auth: AuthService = Depends(get_auth_service),
):
    """Authenticated by the same bearer token, passed as ?token=..."""
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        claims = decode_access_token(token)
    except HTTPException as e:
        logger.warning(f"Rejected WebSocket connection: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if await auth.is_revoked(claims.get("jti")):
        logger.warning(f"Rejected WebSocket connection: token {claims.get('jti')} revoked")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await ws_manager.connect(websocket, claims)
    try:
        while True:
            raw = await websocket.receive_text()
            await ws_manager.handle_message(websocket, raw)
    except WebSocketDisconnect:
        pass
    finally:
        ws_manager.disconnect(websocket)
