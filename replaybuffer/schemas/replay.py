"""
Schemas Pydantic para o buffer de replay.
"""
from pydantic import BaseModel, Field, validator, model_validator
from typing import Optional
from uuid import UUID
from datetime import datetime

DURATION_PRESETS = (1, 2, 5, 10)


def _validate_preset(value: Optional[int]) -> Optional[int]:
    if value is not None and value not in DURATION_PRESETS:
        raise ValueError('Duration must be 1, 2, 5, or 10 minutes')
    return value


class StartReplaySchema(BaseModel):
    """Schema para iniciar o buffer de replay."""
    channel_id: Optional[str] = Field(None, description="Canal de voz onde decorre a partilha")
    room_name: str = Field(..., min_length=1, description="Sala LiveKit")
    video_track_id: str = Field(..., min_length=1, description="Track de vídeo da partilha de ecrã")
    audio_track_id: str = Field(..., min_length=1, description="Track de áudio da partilha de ecrã")
    participant_identity: Optional[str] = Field(
        None,
        description="Identidade LiveKit do participante (para detetar a resolução)"
    )


class ReplaySessionSchema(BaseModel):
    """Schema de resposta de start/stop."""
    session_id: UUID
    egress_id: str
    status: str


class CaptureReplaySchema(BaseModel):
    """Schema para capturar um clip (preset ou intervalo personalizado)."""
    duration_minutes: Optional[int] = Field(None, description="Preset em minutos (1, 2, 5 ou 10)")
    start_seconds: Optional[int] = Field(None, ge=0, description="Início desde o começo do buffer")
    end_seconds: Optional[int] = Field(None, ge=1, description="Fim desde o começo do buffer")
    destination: str = Field(..., description="library, dm ou channel")
    target_channel_id: Optional[str] = None
    target_direct_message_group_id: Optional[str] = None

    @validator('duration_minutes')
    def validate_duration(cls, v):
        return _validate_preset(v)

    @validator('destination')
    def validate_destination(cls, v):
        if v not in ('library', 'dm', 'channel'):
            raise ValueError('Destination must be library, dm, or channel')
        return v

    @model_validator(mode='after')
    def validate_selection(self):
        if (self.start_seconds is None) != (self.end_seconds is None):
            raise ValueError('start_seconds and end_seconds must be provided together')
        if self.destination == 'channel' and not self.target_channel_id:
            raise ValueError('target_channel_id is required for destination channel')
        if self.destination == 'dm' and not self.target_direct_message_group_id:
            raise ValueError('target_direct_message_group_id is required for destination dm')
        return self


class CaptureReplayResponseSchema(BaseModel):
    """Schema de resposta da captura."""
    clip_id: UUID
    file_id: UUID
    duration_seconds: int
    requested_duration_seconds: int
    size_bytes: int
    download_url: str
    message_id: Optional[str] = None


class SessionInfoSchema(BaseModel):
    """Schema com o estado do buffer do utilizador."""
    has_active_session: bool
    session_id: Optional[UUID] = None
    total_segments: Optional[int] = None
    total_duration_seconds: Optional[int] = None
    buffer_start_time: Optional[datetime] = None
    buffer_end_time: Optional[datetime] = None
