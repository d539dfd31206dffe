"""
Schemas Pydantic para a biblioteca de clips.
"""
from pydantic import BaseModel, Field, validator
from typing import Optional
from uuid import UUID
from datetime import datetime


class ClipSchema(BaseModel):
    """Schema de clip (resposta)."""
    id: UUID
    file_id: UUID
    channel_id: Optional[str] = None
    duration_seconds: int
    is_public: bool
    captured_at: datetime
    download_url: str
    size_bytes: int
    filename: str


class ClipUpdateSchema(BaseModel):
    """Schema para atualizar clip."""
    is_public: Optional[bool] = None


class ShareClipSchema(BaseModel):
    """Schema para partilhar clip num canal ou DM."""
    destination: str = Field(..., description="dm ou channel")
    target_channel_id: Optional[str] = None
    target_direct_message_group_id: Optional[str] = None

    @validator('destination')
    def validate_destination(cls, v):
        if v not in ('dm', 'channel'):
            raise ValueError('Destination must be dm or channel')
        return v

    @property
    def target_id(self) -> Optional[str]:
        if self.destination == 'channel':
            return self.target_channel_id
        return self.target_direct_message_group_id


class ShareClipResponseSchema(BaseModel):
    """Schema de resposta da partilha."""
    message_id: str
    clip_id: UUID
    destination: str
