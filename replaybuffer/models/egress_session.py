"""
Modelo EgressSession para gerenciar sessões de gravação (egress) do buffer de replay.
"""
from sqlalchemy import Column, String, DateTime, Enum, Text
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from replaybuffer.core.database import Base
import enum


class EgressSessionStatus(str, enum.Enum):
    """Enum de status de sessão de egress."""
    ACTIVE = "active"
    STOPPED = "stopped"
    FAILED = "failed"


class EgressSession(Base):
    """
    Modelo de sessão de egress (uma linha por tentativa de gravação).

    Invariante: no máximo uma sessão com status=active por utilizador.
    O status só transita active -> stopped/failed.
    """
    __tablename__ = "egress_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    room_name = Column(String(255), nullable=False)
    channel_id = Column(String(64))
    egress_id = Column(String(255), unique=True, nullable=False, index=True)
    # Caminho relativo (nome do diretório), resolvido pelo StorageManager
    segment_path = Column(Text, nullable=False)
    status = Column(Enum(EgressSessionStatus), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ended_at = Column(DateTime)
    error = Column(Text)
