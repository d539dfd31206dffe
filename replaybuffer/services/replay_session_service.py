"""
Serviço de sessões do buffer de replay.

Inicia e para o egress de cada utilizador, mantém a invariante de uma sessão
ativa por utilizador e trata o fim de egress reportado pelo LiveKit.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional, Any
from sqlalchemy.orm import Session
from replaybuffer.core.config import settings
from replaybuffer.core.exceptions import BadRequestError, NotFoundError
from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.egress_client import (
    EgressController,
    EncodingSettings,
    SegmentedOutput,
    egress_controller,
    is_egress_gone_error,
)
from replaybuffer.utils.realtime import RealtimeHub, ServerEvents, realtime_hub
from replaybuffer.utils.segment_index import list_and_sort, filter_complete
from replaybuffer.utils.storage_manager import StorageManager, storage_manager

logger = logging.getLogger(__name__)

# Conteúdo de ecrã precisa de encoding mais nítido que câmara: 5 bits/pixel
BITS_PER_PIXEL = 5
MIN_BITRATE = 3_000_000
MAX_BITRATE = 20_000_000


def compute_bitrate(width: int, height: int) -> int:
    """Bitrate de encoding para a resolução dada, limitado a 3-20 Mbps."""
    return max(MIN_BITRATE, min(width * height * BITS_PER_PIXEL, MAX_BITRATE))


class ReplaySessionService:
    """Serviço para gerenciar o ciclo de vida das sessões de replay."""

    def __init__(
        self,
        controller: EgressController,
        storage: StorageManager,
        notifier: RealtimeHub,
        egress_output_path: Optional[str] = None,
        segment_duration: Optional[int] = None,
        request_timeout: Optional[float] = None
    ):
        self.controller = controller
        self.storage = storage
        self.notifier = notifier
        self.egress_output_path = egress_output_path or settings.replay_egress_output_path
        self.segment_duration = segment_duration or settings.replay_segment_duration_seconds
        self.request_timeout = request_timeout or settings.egress_request_timeout_seconds
        self.min_segment_bytes = settings.replay_min_segment_bytes
        self._user_locks: Dict[str, asyncio.Lock] = {}
        # Pedidos a usar (ou à espera de) cada lock
        self._lock_holders: Dict[str, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        """
        Lock por utilizador: serializa start/stop do mesmo utilizador.

        O lock é descartado quando o último pedido que o usa termina.
        """
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._user_locks[user_id]

    async def _call_controller(self, coro):
        """Chama o controlador externo com timeout."""
        return await asyncio.wait_for(coro, timeout=self.request_timeout)

    async def _resolve_encoding(
        self,
        room_name: str,
        participant_identity: Optional[str],
        video_track_id: str
    ) -> Optional[EncodingSettings]:
        """
        Calcula o encoding a partir da resolução da track de vídeo.

        Returns:
            EncodingSettings, ou None para usar o preset por omissão
        """
        if not participant_identity:
            return None

        try:
            tracks = await self._call_controller(
                self.controller.get_participant_tracks(room_name, participant_identity)
            )
        except Exception as e:
            logger.warning(f"Não foi possível obter tracks de {participant_identity}, a usar preset: {e}")
            return None

        track = next((t for t in tracks if t.sid == video_track_id), None)
        if not track or not track.width or not track.height:
            logger.debug(f"Resolução da track {video_track_id} desconhecida, a usar preset")
            return None

        bitrate = compute_bitrate(track.width, track.height)
        logger.info(f"Encoding {track.width}x{track.height} a {bitrate // 1000} kbps")

        return EncodingSettings(width=track.width, height=track.height, video_bitrate=bitrate)

    async def start_replay_buffer(
        self,
        db: Session,
        user_id: str,
        channel_id: Optional[str],
        room_name: str,
        video_track_id: str,
        audio_track_id: str,
        participant_identity: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Inicia o egress do buffer de replay de um utilizador.

        Se o utilizador já tiver uma sessão ativa, é parada primeiro.

        Returns:
            Dict com session_id, egress_id e status

        Raises:
            BadRequestError: Se o egress não puder ser iniciado
        """
        logger.info(f"A iniciar buffer de replay para {user_id} na sala {room_name}")

        async with self._user_lock(user_id):
            existing = EgressSessionService.get_active_session(db, user_id)
            if existing:
                logger.warning(
                    f"Utilizador {user_id} já tem a sessão ativa {existing.egress_id}, a parar primeiro"
                )
                await self._stop_active_session(db, existing)

            # ID gerado antes do pedido externo: o caminho de saída fica determinístico
            session_id = uuid.uuid4()
            output = SegmentedOutput(
                filename_prefix=f"{self.egress_output_path}/{session_id}/{{time}}-segment",
                segment_duration=self.segment_duration
            )

            encoding = await self._resolve_encoding(room_name, participant_identity, video_track_id)

            try:
                egress = await self._call_controller(
                    self.controller.start_track_composite(
                        room_name,
                        video_track_id,
                        audio_track_id,
                        output,
                        encoding
                    )
                )
            except Exception as e:
                logger.error(f"Falha ao iniciar egress para {user_id}: {e}")
                raise BadRequestError("Failed to start replay buffer egress")

            logger.info(f"Egress iniciado: {egress.egress_id} para {user_id} em {session_id}")

            try:
                session = EgressSessionService.create_session(
                    db,
                    session_id=session_id,
                    user_id=user_id,
                    room_name=room_name,
                    channel_id=channel_id,
                    egress_id=egress.egress_id,
                    segment_path=str(session_id)
                )
            except Exception:
                # Sem linha na BD nenhuma tarefa de manutenção pararia este egress
                db.rollback()
                logger.error(f"Falha ao gravar sessão {session_id}, a parar egress {egress.egress_id}")
                try:
                    await self._call_controller(self.controller.stop(egress.egress_id))
                except Exception as stop_error:
                    logger.error(f"Falha ao parar egress {egress.egress_id}: {stop_error}")
                raise

        return {
            "session_id": session.id,
            "egress_id": session.egress_id,
            "status": session.status.value
        }

    async def stop_replay_buffer(self, db: Session, user_id: str) -> Dict[str, Any]:
        """
        Para o egress ativo de um utilizador.

        Raises:
            NotFoundError: Se não houver sessão ativa
            BadRequestError: Se o LiveKit recusar o stop
        """
        logger.info(f"A parar buffer de replay de {user_id}")

        async with self._user_lock(user_id):
            session = EgressSessionService.get_active_session(db, user_id)
            if not session:
                logger.warning(f"Nenhuma sessão ativa para {user_id}")
                raise NotFoundError("No active replay buffer session found")

            return await self._stop_active_session(db, session)

    async def _stop_active_session(self, db: Session, session: EgressSession) -> Dict[str, Any]:
        """Para o egress, marca a sessão como stopped e limpa os segmentos."""
        session_id = session.id
        egress_id = session.egress_id
        segment_path = session.segment_path
        user_id = session.user_id

        try:
            await self._call_controller(self.controller.stop(egress_id))
            logger.info(f"Egress parado: {egress_id}")
        except Exception as e:
            if is_egress_gone_error(e):
                logger.warning(f"Egress {egress_id} já estava parado no LiveKit, a atualizar BD")
            else:
                logger.error(f"Falha ao parar egress {egress_id}: {e}")
                raise BadRequestError("Failed to stop replay buffer egress")

        EgressSessionService.end_session(db, session_id, EgressSessionStatus.STOPPED)
        await self.cleanup_session_files(segment_path, user_id)

        return {
            "session_id": session_id,
            "egress_id": egress_id,
            "status": EgressSessionStatus.STOPPED.value
        }

    async def handle_egress_ended(
        self,
        db: Session,
        egress_id: str,
        status: str,
        error_message: Optional[str] = None
    ) -> bool:
        """
        Trata o fim de um egress reportado pelo webhook do LiveKit.

        Args:
            egress_id: ID do egress
            status: "stopped" ou "failed"
            error_message: Mensagem de erro (se falhou)

        Returns:
            True se a sessão foi atualizada, False se foi ignorado
        """
        status = EgressSessionStatus(status)
        logger.info(f"Egress terminado: {egress_id} com status {status.value}")

        session = EgressSessionService.get_session_by_egress_id(db, egress_id)
        if not session:
            logger.warning(f"egress_ended para egress desconhecido: {egress_id}")
            return False

        if session.status != EgressSessionStatus.ACTIVE:
            logger.debug(f"Sessão {session.id} já em {session.status.value}, a ignorar")
            return False

        if not EgressSessionService.end_session(db, session.id, status, error=error_message):
            return False

        await self.cleanup_session_files(session.segment_path, session.user_id)
        await self.notify_session_ended(session, status, error_message)
        return True

    async def cleanup_session_files(self, segment_path: str, user_id: str) -> None:
        """Remove os segmentos da sessão e a cache de remux do utilizador (best-effort, nunca lança)."""
        resolved = self.storage.resolve_segment_path(segment_path)
        try:
            if await self.storage.delete_segment_directory(segment_path):
                logger.info(f"Diretório de segmentos limpo: {resolved}")
        except Exception as e:
            logger.warning(f"Falha ao limpar segmentos em {resolved}: {e}")

        try:
            if await self.storage.delete_remux_cache(user_id):
                logger.info(f"Cache de remux de {user_id} limpa")
        except Exception as e:
            logger.warning(f"Falha ao limpar cache de remux de {user_id}: {e}")

    async def notify_session_ended(
        self,
        session: EgressSession,
        status: EgressSessionStatus,
        error_message: Optional[str] = None
    ) -> None:
        """Envia ao utilizador o evento de fim de sessão."""
        data = {
            "session_id": str(session.id),
            "egress_id": session.egress_id,
            "channel_id": session.channel_id,
        }

        if status == EgressSessionStatus.FAILED:
            event = ServerEvents.REPLAY_BUFFER_FAILED
            data["error"] = error_message or "Unknown error"
        else:
            event = ServerEvents.REPLAY_BUFFER_STOPPED
            data["error"] = error_message

        try:
            await self.notifier.send_to_room(session.user_id, event, data)
            logger.info(f"Evento {event} enviado para {session.user_id}")
        except Exception as e:
            logger.warning(f"Falha ao notificar {session.user_id}: {e}")

    def get_session_info(self, db: Session, user_id: str) -> Dict[str, Any]:
        """Estado do buffer ativo do utilizador (segmentos completos e duração)."""
        session = EgressSessionService.get_active_session(db, user_id)
        if not session:
            return {"has_active_session": False}

        segment_dir = self.storage.resolve_segment_path(session.segment_path)
        segments = list_and_sort(str(segment_dir))

        if not segments:
            return {
                "has_active_session": True,
                "session_id": session.id,
                "total_segments": 0,
                "total_duration_seconds": 0
            }

        complete = filter_complete(segments, self.min_segment_bytes)

        return {
            "has_active_session": True,
            "session_id": session.id,
            "total_segments": len(complete),
            "total_duration_seconds": len(complete) * self.segment_duration,
            "buffer_start_time": session.started_at,
            "buffer_end_time": datetime.utcnow()
        }


# Instância global
replay_session_service = ReplaySessionService(egress_controller, storage_manager, realtime_hub)
