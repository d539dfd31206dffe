"""
Realtime Hub - Notificações via WebSocket agrupadas por sala.

Cada utilizador entra na sala com o seu próprio ID; canais e DMs usam o ID
do destino como nome da sala.
"""
import logging
from typing import Dict, Set, Any
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ServerEvents:
    """Nomes dos eventos enviados aos clientes."""
    REPLAY_BUFFER_STOPPED = "replay_buffer_stopped"
    REPLAY_BUFFER_FAILED = "replay_buffer_failed"
    NEW_MESSAGE = "new_message"
    NEW_DM = "new_dm"


class RealtimeHub:
    """Gestor de ligações WebSocket por sala."""

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, room: str, websocket: WebSocket):
        """Aceita a ligação e junta-a à sala."""
        await websocket.accept()
        self.rooms.setdefault(room, set()).add(websocket)
        logger.debug(f"WebSocket ligado à sala {room}")

    def disconnect(self, room: str, websocket: WebSocket):
        """Remove a ligação da sala."""
        connections = self.rooms.get(room)
        if not connections:
            return

        connections.discard(websocket)
        if not connections:
            del self.rooms[room]

    async def send_to_room(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """
        Envia um evento a todas as ligações de uma sala.

        Returns:
            Número de ligações que receberam o evento
        """
        delivered = 0

        for websocket in list(self.rooms.get(room, ())):
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.warning(f"Falha ao enviar {event} para a sala {room}: {e}")
                self.disconnect(room, websocket)

        logger.debug(f"Evento {event} enviado para {room} ({delivered} ligações)")
        return delivered


# Instância global
realtime_hub = RealtimeHub()
