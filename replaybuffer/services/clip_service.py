"""
Serviço de extração de clips do buffer de replay.

Seleciona os segmentos (preset em minutos ou intervalo personalizado),
calcula o corte preciso, concatena com FFmpeg e regista o clip.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session
from replaybuffer.core.config import settings
from replaybuffer.core.exceptions import BadRequestError, NotFoundError, ReplayBufferError
from replaybuffer.models.egress_session import EgressSession
from replaybuffer.services.clip_library_service import (
    ClipLibraryService,
    clip_library_service,
    get_download_url,
)
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.ffmpeg_wrapper import FFmpegWrapper, FFmpegError, TrimOptions, ffmpeg_wrapper
from replaybuffer.utils.segment_index import Segment, list_and_sort
from replaybuffer.utils.storage_manager import StorageManager, storage_manager
from replaybuffer.utils.stream_probe import StreamProbe, stream_probe

logger = logging.getLogger(__name__)

SEGMENT_DURATION_SECONDS = 10


@dataclass
class SegmentSelection:
    """Segmentos escolhidos para um clip e o corte a aplicar."""
    segments: List[Segment]
    trim: Optional[TrimOptions]
    estimated_duration: int
    requested_duration: int


def select_preset(
    all_segments: List[Segment],
    duration_minutes: int,
    segment_duration: int = SEGMENT_DURATION_SECONDS
) -> SegmentSelection:
    """Últimos N minutos do buffer (ou tudo, se houver menos)."""
    segments_needed = duration_minutes * (60 // segment_duration)
    segments = all_segments[-segments_needed:]

    return SegmentSelection(
        segments=segments,
        trim=None,
        estimated_duration=len(segments) * segment_duration,
        requested_duration=duration_minutes * 60
    )


def select_custom_range(
    all_segments: List[Segment],
    start_seconds: int,
    end_seconds: int,
    segment_duration: int = SEGMENT_DURATION_SECONDS
) -> SegmentSelection:
    """
    Intervalo [start_seconds, end_seconds) contado a partir do início do buffer.

    Raises:
        BadRequestError: Intervalo vazio/invertido ou fora do buffer
    """
    total = len(all_segments)
    available_seconds = total * segment_duration

    if start_seconds >= end_seconds:
        raise BadRequestError("Start time must be before end time")

    start_index = math.floor(start_seconds / segment_duration)
    end_index = math.ceil(end_seconds / segment_duration)

    if start_index >= total:
        raise BadRequestError(
            f"Start time {start_seconds}s exceeds available buffer ({available_seconds}s)"
        )
    if end_index > total:
        raise BadRequestError(
            f"End time {end_seconds}s exceeds available buffer ({available_seconds}s)"
        )

    segments = all_segments[start_index:end_index]

    start_offset = start_seconds - start_index * segment_duration
    duration = end_seconds - start_seconds

    trim = None
    if start_offset > 0 or duration != len(segments) * segment_duration:
        trim = TrimOptions(start_offset=start_offset, duration=duration)
        logger.info(f"Corte preciso: saltar {start_offset}s no primeiro segmento, duração {duration}s")

    return SegmentSelection(
        segments=segments,
        trim=trim,
        estimated_duration=duration,
        requested_duration=duration
    )


class ClipService:
    """Serviço para extrair clips do buffer de replay."""

    def __init__(
        self,
        storage: StorageManager,
        ffmpeg: FFmpegWrapper,
        probe: StreamProbe,
        library: ClipLibraryService,
        segment_duration: Optional[int] = None
    ):
        self.storage = storage
        self.ffmpeg = ffmpeg
        self.probe = probe
        self.library = library
        self.segment_duration = segment_duration or settings.replay_segment_duration_seconds

    def _get_buffer(self, db: Session, user_id: str) -> Tuple[EgressSession, List[Segment]]:
        """Sessão ativa e segmentos disponíveis do utilizador."""
        session = EgressSessionService.get_active_session(db, user_id)
        if not session:
            raise NotFoundError("No active replay buffer session found. Start screen sharing first.")

        segment_dir = self.storage.resolve_segment_path(session.segment_path)
        segments = list_and_sort(str(segment_dir))

        if not segments:
            raise BadRequestError(
                "No segments available in replay buffer. "
                "Start screen sharing and wait for the buffer to accumulate."
            )

        return session, segments

    async def _concatenate(self, selection: SegmentSelection, output_path: str) -> None:
        try:
            await self.ffmpeg.concatenate_segments(
                [segment.path for segment in selection.segments],
                output_path,
                selection.trim
            )
        except (FFmpegError, OSError) as e:
            logger.error(f"Falha ao concatenar segmentos para {output_path}: {e}")
            await self.storage.delete_file(output_path)
            raise ReplayBufferError("Failed to create replay clip")

    async def capture_replay(
        self,
        db: Session,
        user_id: str,
        destination: str = "library",
        duration_minutes: Optional[int] = None,
        start_seconds: Optional[int] = None,
        end_seconds: Optional[int] = None,
        target_channel_id: Optional[str] = None,
        target_direct_message_group_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Captura um clip do buffer e guarda-o na biblioteca (e opcionalmente publica-o).

        Returns:
            Dict com clip_id, file_id, duration_seconds, requested_duration_seconds,
            size_bytes, download_url e message_id
        """
        is_custom_range = start_seconds is not None and end_seconds is not None
        description = (
            f"intervalo {start_seconds}s-{end_seconds}s" if is_custom_range
            else f"preset de {duration_minutes or 1} min"
        )
        logger.info(f"A capturar replay ({description}) de {user_id}, destino: {destination}")

        target_id = target_channel_id if destination == "channel" else target_direct_message_group_id
        if destination not in ("library", "channel", "dm"):
            raise BadRequestError("Destination must be library, dm, or channel")
        if destination != "library" and not target_id:
            raise BadRequestError(f"Target id is required for destination {destination}")

        session, all_segments = self._get_buffer(db, user_id)

        if is_custom_range:
            selection = select_custom_range(all_segments, start_seconds, end_seconds, self.segment_duration)
        else:
            selection = select_preset(all_segments, duration_minutes or 1, self.segment_duration)

        logger.info(
            f"Selecionados {len(selection.segments)} de {len(all_segments)} segmentos, "
            f"estimativa {selection.estimated_duration}s"
        )

        clip_filename = f"replay-{int(time.time() * 1000)}.mp4"
        clip_path = str(self.storage.get_user_clips_path(user_id) / clip_filename)

        await self._concatenate(selection, clip_path)

        actual_duration = await self.probe.get_duration(clip_path)
        if actual_duration is None:
            logger.warning(f"Probe de duração falhou, a usar estimativa de {selection.estimated_duration}s")
            duration_seconds = selection.estimated_duration
        else:
            duration_seconds = round(actual_duration)

        file_info = self.storage.get_file_info(clip_path)
        if not file_info:
            raise ReplayBufferError("Replay clip was not written")
        size_bytes = file_info["size_bytes"]
        checksum = await self.storage.compute_checksum(clip_path)

        clip = ClipLibraryService.create_clip(
            db,
            user_id=user_id,
            channel_id=session.channel_id,
            clip_path=clip_path,
            size_bytes=size_bytes,
            checksum=checksum,
            duration_seconds=duration_seconds
        )

        message_id = None
        if destination in ("channel", "dm"):
            # O clip já está gravado: falhar aqui não o desfaz
            try:
                message_id = await self.library.publish_clip_message(
                    user_id, destination, target_id,
                    clip.file_id, duration_seconds, size_bytes
                )
            except Exception as e:
                logger.error(f"Clip {clip.id} gravado mas falhou a publicação em {destination}: {e}")
        else:
            logger.info("Clip guardado apenas na biblioteca")

        return {
            "clip_id": clip.id,
            "file_id": clip.file_id,
            "duration_seconds": duration_seconds,
            "requested_duration_seconds": selection.requested_duration,
            "size_bytes": size_bytes,
            "download_url": get_download_url(clip.file_id),
            "message_id": message_id
        }

    async def stream_replay(self, db: Session, user_id: str, duration_minutes: int) -> str:
        """
        Concatena os últimos N minutos num ficheiro temporário para download.

        Nada é persistido; quem chama deve apagar o ficheiro depois de o enviar.

        Returns:
            Caminho do MP4 temporário
        """
        logger.info(f"A preparar stream de {duration_minutes} min para {user_id}")

        _, all_segments = self._get_buffer(db, user_id)
        selection = select_preset(all_segments, duration_minutes, self.segment_duration)

        temp_path = str(
            self.storage.get_temp_path() / f"replay-stream-{user_id}-{int(time.time() * 1000)}.mp4"
        )
        await self._concatenate(selection, temp_path)

        logger.info(f"Ficheiro temporário de replay criado: {temp_path}")
        return temp_path


# Instância global
clip_service = ClipService(storage_manager, ffmpeg_wrapper, stream_probe, clip_library_service)
