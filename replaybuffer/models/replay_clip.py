"""
Modelo ReplayClip para clips extraídos do buffer de replay.
"""
from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from replaybuffer.core.database import Base


class ReplayClip(Base):
    """Modelo de clip de replay (sobrevive à sessão que o gerou)."""
    __tablename__ = "replay_clips"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    file_id = Column(UUID(as_uuid=True), ForeignKey("files.id"), nullable=False)
    channel_id = Column(String(64))
    duration_seconds = Column(Integer, nullable=False)
    is_public = Column(Boolean, default=False, nullable=False)
    captured_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relacionamentos
    file = relationship("StoredFile")
