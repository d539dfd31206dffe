"""
Rotas do buffer de replay (sessão, captura, stream e pré-visualização).
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import FileResponse, Response
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask
from pathlib import Path
from replaybuffer.core.database import get_db
from replaybuffer.core.security import get_current_user
from replaybuffer.services.replay_session_service import ReplaySessionService, replay_session_service
from replaybuffer.services.clip_service import ClipService, clip_service
from replaybuffer.services.preview_service import PreviewService, preview_service
from replaybuffer.schemas.replay import (
    DURATION_PRESETS,
    StartReplaySchema,
    ReplaySessionSchema,
    CaptureReplaySchema,
    CaptureReplayResponseSchema,
    SessionInfoSchema
)

router = APIRouter(prefix="/replay", tags=["replay"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0"
}


def get_replay_session_service() -> ReplaySessionService:
    return replay_session_service


def get_clip_service() -> ClipService:
    return clip_service


def get_preview_service() -> PreviewService:
    return preview_service


@router.post("/start", response_model=ReplaySessionSchema)
async def start_replay_buffer(
    data: StartReplaySchema,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ReplaySessionService = Depends(get_replay_session_service)
):
    """Inicia o buffer de replay da partilha de ecrã do utilizador."""
    return await service.start_replay_buffer(
        db,
        user_id=current_user["user_id"],
        channel_id=data.channel_id,
        room_name=data.room_name,
        video_track_id=data.video_track_id,
        audio_track_id=data.audio_track_id,
        participant_identity=data.participant_identity
    )


@router.post("/stop", response_model=ReplaySessionSchema)
async def stop_replay_buffer(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ReplaySessionService = Depends(get_replay_session_service)
):
    """Para o buffer de replay ativo."""
    return await service.stop_replay_buffer(db, current_user["user_id"])


@router.post("/capture", response_model=CaptureReplayResponseSchema, status_code=status.HTTP_201_CREATED)
async def capture_replay(
    data: CaptureReplaySchema,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipService = Depends(get_clip_service)
):
    """Captura um clip do buffer (preset em minutos ou intervalo personalizado)."""
    return await service.capture_replay(
        db,
        user_id=current_user["user_id"],
        destination=data.destination,
        duration_minutes=data.duration_minutes,
        start_seconds=data.start_seconds,
        end_seconds=data.end_seconds,
        target_channel_id=data.target_channel_id,
        target_direct_message_group_id=data.target_direct_message_group_id
    )


@router.get("/stream")
async def stream_replay(
    duration_minutes: int = Query(1, description="Minutos a exportar (1, 2, 5 ou 10)"),
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ClipService = Depends(get_clip_service)
):
    """
    Exporta os últimos N minutos do buffer como MP4, sem guardar o clip.

    O ficheiro temporário é removido depois de enviado.
    """
    if duration_minutes not in DURATION_PRESETS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Duration must be 1, 2, 5, or 10 minutes"
        )

    temp_path = await service.stream_replay(db, current_user["user_id"], duration_minutes)

    return FileResponse(
        path=temp_path,
        media_type="video/mp4",
        filename=Path(temp_path).name,
        background=BackgroundTask(service.storage.delete_file, temp_path)
    )


@router.get("/session", response_model=SessionInfoSchema)
async def get_session_info(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ReplaySessionService = Depends(get_replay_session_service)
):
    """Estado do buffer ativo (segmentos e duração disponíveis)."""
    return service.get_session_info(db, current_user["user_id"])


@router.get("/preview/playlist.m3u8")
async def get_preview_playlist(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PreviewService = Depends(get_preview_service)
):
    """Playlist HLS do buffer para o editor de clips."""
    content = service.get_playlist_content(db, current_user["user_id"])

    return Response(
        content=content,
        media_type="application/vnd.apple.mpegurl",
        headers=NO_CACHE_HEADERS
    )


@router.get("/preview/segment/{filename}")
async def get_preview_segment(
    filename: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PreviewService = Depends(get_preview_service)
):
    """Segmento do buffer remuxado para MPEG-TS padrão."""
    segment_path = await service.get_remuxed_segment_path(db, current_user["user_id"], filename)

    return FileResponse(
        path=segment_path,
        media_type="video/mp2t",
        headers={"Cache-Control": "private, max-age=3600"}
    )
