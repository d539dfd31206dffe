"""
Modelo StoredFile para ficheiros armazenados (clips exportados).
"""
from sqlalchemy import Column, String, DateTime, Text, BigInteger
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from replaybuffer.core.database import Base


class StoredFile(Base):
    """Modelo de ficheiro armazenado."""
    __tablename__ = "files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    filename = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_type = Column(String(20), nullable=False, default="video")
    size_bytes = Column(BigInteger, nullable=False)
    checksum = Column(String(64), nullable=False)
    uploaded_by_id = Column(String(64), nullable=False, index=True)
    storage_type = Column(String(20), nullable=False, default="local")
    storage_path = Column(Text, nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
