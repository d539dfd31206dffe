"""
Módulo services com a lógica de negócio.
"""
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.services.replay_session_service import ReplaySessionService
from replaybuffer.services.clip_library_service import ClipLibraryService
from replaybuffer.services.clip_service import ClipService
from replaybuffer.services.preview_service import PreviewService

__all__ = [
    "EgressSessionService",
    "ReplaySessionService",
    "ClipLibraryService",
    "ClipService",
    "PreviewService"
]
