"""
Módulo models com os modelos SQLAlchemy.
"""
from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from replaybuffer.models.stored_file import StoredFile
from replaybuffer.models.replay_clip import ReplayClip

__all__ = [
    "EgressSession",
    "EgressSessionStatus",
    "StoredFile",
    "ReplayClip"
]
