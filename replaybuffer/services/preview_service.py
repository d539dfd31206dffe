"""
Serviço de pré-visualização do buffer: playlist HLS e segmentos remuxados.
"""
import logging
import os
import re
import uuid
from typing import List, Optional
from sqlalchemy.orm import Session
from replaybuffer.core.config import settings
from replaybuffer.core.exceptions import BadRequestError, NotFoundError
from replaybuffer.models.egress_session import EgressSession
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.ffmpeg_wrapper import FFmpegWrapper, FFmpegError, ffmpeg_wrapper
from replaybuffer.utils.segment_index import Segment, list_and_sort, filter_complete
from replaybuffer.utils.storage_manager import StorageManager, storage_manager

logger = logging.getLogger(__name__)

SEGMENT_FILENAME_PATTERN = re.compile(r"^[\w-]+\.ts$")

PLAYLIST_HEADER = [
    "#EXTM3U",
    "#EXT-X-VERSION:3",
    "#EXT-X-TARGETDURATION:10",
    "#EXT-X-MEDIA-SEQUENCE:0",
]


def build_playlist(segments: List[Segment], segment_base_url: str, segment_duration: int = 10) -> str:
    """
    Gera a playlist m3u8 de um conjunto de segmentos.

    Termina com #EXT-X-ENDLIST: o buffer é exposto como janela finita e
    navegável, senão o player trata-o como live e só carrega o fim.
    """
    lines = list(PLAYLIST_HEADER)
    lines.append("#EXT-X-PLAYLIST-TYPE:EVENT")

    for segment in segments:
        lines.append(f"#EXTINF:{float(segment_duration)},")
        lines.append(f"{segment_base_url.rstrip('/')}/{segment.filename}")

    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines)


def is_valid_segment_filename(filename: str) -> bool:
    """Valida o nome de um segmento (sem path traversal)."""
    return (
        bool(SEGMENT_FILENAME_PATTERN.match(filename))
        and ".." not in filename
        and "/" not in filename
    )


class PreviewService:
    """Serviço para playlist e segmentos de pré-visualização do buffer."""

    def __init__(
        self,
        storage: StorageManager,
        ffmpeg: FFmpegWrapper,
        segment_base_url: Optional[str] = None
    ):
        self.storage = storage
        self.ffmpeg = ffmpeg
        self.segment_base_url = segment_base_url or settings.replay_segment_base_url
        self.segment_duration = settings.replay_segment_duration_seconds
        self.min_segment_bytes = settings.replay_min_segment_bytes

    @staticmethod
    def _get_active_session(db: Session, user_id: str) -> EgressSession:
        session = EgressSessionService.get_active_session(db, user_id)
        if not session:
            raise NotFoundError("No active replay buffer session found.")
        return session

    def get_playlist_content(self, db: Session, user_id: str) -> str:
        """Playlist m3u8 com os segmentos completos da sessão ativa."""
        session = self._get_active_session(db, user_id)

        segment_dir = self.storage.resolve_segment_path(session.segment_path)
        segments = list_and_sort(str(segment_dir))

        if not segments:
            raise BadRequestError("No segments available in buffer.")

        # O último segmento costuma estar ainda a ser escrito
        complete = filter_complete(segments, self.min_segment_bytes)
        if not complete:
            raise BadRequestError("No complete segments available in buffer yet. Please wait a moment.")

        return build_playlist(complete, self.segment_base_url, self.segment_duration)

    def get_segment_path(self, db: Session, user_id: str, filename: str) -> str:
        """
        Caminho de um segmento da sessão ativa do utilizador.

        Raises:
            BadRequestError: Nome inválido
            NotFoundError: Sem sessão ativa ou segmento inexistente
        """
        if not is_valid_segment_filename(filename):
            raise BadRequestError("Invalid segment filename.")

        session = self._get_active_session(db, user_id)
        segment_path = self.storage.resolve_segment_path(session.segment_path) / filename

        if not self.storage.file_exists(str(segment_path)):
            raise NotFoundError(f"Segment {filename} not found.")

        return str(segment_path)

    async def get_remuxed_segment_path(self, db: Session, user_id: str, filename: str) -> str:
        """
        Caminho de uma cópia remuxada (MPEG-TS padrão) do segmento.

        Em caso de segmento incompleto ou falha do remux devolve o original.
        """
        original_path = self.get_segment_path(db, user_id, filename)

        remuxed_path = str(self.storage.get_remux_cache_path(user_id) / filename)
        if self.storage.file_exists(remuxed_path):
            return remuxed_path

        file_info = self.storage.get_file_info(original_path)
        size = file_info["size_bytes"] if file_info else 0
        if size < self.min_segment_bytes:
            logger.warning(f"Segmento {filename} parece incompleto ({size} bytes), a servir original")
            return original_path

        logger.debug(f"A remuxar segmento {filename}")
        # Escrita num ficheiro temporário: a cache só vê segmentos completos
        partial_path = f"{remuxed_path}.{uuid.uuid4().hex}.part"
        try:
            await self.ffmpeg.remux_segment(original_path, partial_path)
            os.replace(partial_path, remuxed_path)
        except (FFmpegError, OSError) as e:
            logger.error(f"Falha ao remuxar segmento {filename}: {e}")
            await self.storage.delete_file(partial_path)
            return original_path

        return remuxed_path


# Instância global
preview_service = PreviewService(storage_manager, ffmpeg_wrapper)
