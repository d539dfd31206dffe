"""
Módulo schemas com os schemas Pydantic para validação de dados.
"""
from replaybuffer.schemas.replay import (
    StartReplaySchema, ReplaySessionSchema, CaptureReplaySchema,
    CaptureReplayResponseSchema, SessionInfoSchema
)
from replaybuffer.schemas.clip import ClipSchema, ClipUpdateSchema, ShareClipSchema, ShareClipResponseSchema

__all__ = [
    "StartReplaySchema",
    "ReplaySessionSchema",
    "CaptureReplaySchema",
    "CaptureReplayResponseSchema",
    "SessionInfoSchema",
    "ClipSchema",
    "ClipUpdateSchema",
    "ShareClipSchema",
    "ShareClipResponseSchema"
]
