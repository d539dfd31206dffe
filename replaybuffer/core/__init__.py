"""
Módulo core com configurações, banco de dados, segurança e exceções.
"""
from replaybuffer.core.config import settings
from replaybuffer.core.database import Base, engine, get_db
from replaybuffer.core.exceptions import ReplayBufferError, BadRequestError, NotFoundError
from replaybuffer.core.security import (
    create_access_token,
    decode_token,
    get_current_user
)

__all__ = [
    "settings",
    "Base",
    "engine",
    "get_db",
    "ReplayBufferError",
    "BadRequestError",
    "NotFoundError",
    "create_access_token",
    "decode_token",
    "get_current_user"
]
