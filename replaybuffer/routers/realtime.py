"""
Canal WebSocket de notificações em tempo real.
"""
from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from replaybuffer.core.security import get_user_id_from_token
from replaybuffer.utils.realtime import realtime_hub
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket, token: str = Query("")):
    """O utilizador autenticado entra na sala com o seu próprio ID."""
    try:
        user_id = get_user_id_from_token(token)
    except HTTPException:
        await websocket.accept()
        await websocket.close(code=4003, reason="Invalid or expired token")
        return

    await realtime_hub.connect(user_id, websocket)

    try:
        while True:
            # Mensagens do cliente não são usadas; mantêm a ligação viva
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"WebSocket de {user_id} desligado")
    finally:
        realtime_hub.disconnect(user_id, websocket)
