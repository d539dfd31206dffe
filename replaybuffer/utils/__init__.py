"""
Módulo utils com utilitários para FFmpeg, storage, segmentos e clientes externos.
"""
from replaybuffer.utils.ffmpeg_wrapper import FFmpegWrapper, FFmpegError, TrimOptions
from replaybuffer.utils.stream_probe import StreamProbe
from replaybuffer.utils.storage_manager import StorageManager
from replaybuffer.utils.segment_index import Segment, list_and_sort, filter_complete
from replaybuffer.utils.egress_client import EgressController, LiveKitEgressController
from replaybuffer.utils.realtime import RealtimeHub, ServerEvents
from replaybuffer.utils.message_publisher import MessagePublisher

__all__ = [
    "FFmpegWrapper",
    "FFmpegError",
    "TrimOptions",
    "StreamProbe",
    "StorageManager",
    "Segment",
    "list_and_sort",
    "filter_complete",
    "EgressController",
    "LiveKitEgressController",
    "RealtimeHub",
    "ServerEvents",
    "MessagePublisher"
]
