"""
Cliente de egress - Interface para o controlador externo de gravação (LiveKit Egress).

Os serviços dependem apenas de EgressController; LiveKitEgressController é a
implementação usada em produção e os testes usam uma implementação falsa.
"""
import abc
import logging
from dataclasses import dataclass
from typing import List, Optional
from livekit import api
from replaybuffer.core.config import settings

logger = logging.getLogger(__name__)

# Estados em que o egress ainda está (ou vai estar) a gravar
EGRESS_RUNNING_STATUSES = {"EGRESS_STARTING", "EGRESS_ACTIVE"}
EGRESS_FAILED_STATUSES = {"EGRESS_FAILED", "EGRESS_ABORTED"}

DEFAULT_PLAYLIST_NAME = "playlist.m3u8"


@dataclass
class EgressInfo:
    """Estado de um egress no controlador externo."""
    egress_id: str
    status: str  # nome do estado, ex.: "EGRESS_ACTIVE"
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status in EGRESS_RUNNING_STATUSES

    @property
    def is_failed(self) -> bool:
        return self.status in EGRESS_FAILED_STATUSES


@dataclass
class TrackInfo:
    """Track publicada por um participante."""
    sid: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class EncodingSettings:
    """Parâmetros de encoding explícitos (quando a resolução da fonte é conhecida)."""
    width: int
    height: int
    video_bitrate: int  # bits por segundo
    framerate: int = 30


@dataclass
class SegmentedOutput:
    """Saída HLS segmentada pedida ao egress."""
    filename_prefix: str
    segment_duration: int = 10
    playlist_name: str = DEFAULT_PLAYLIST_NAME


class EgressError(Exception):
    """Erro devolvido pelo controlador de egress."""


def is_egress_gone_error(error: BaseException) -> bool:
    """
    Indica se o erro significa que o egress já não existe (já parado).

    Contrato: o LiveKit responde com a mensagem "egress does not exist"
    (ou código twirp `not_found`) quando o egress já terminou. É o único
    ponto do código que discrimina erros externos por texto.
    """
    code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() == "not_found":
        return True

    message = getattr(error, "message", None) or str(error)
    return "egress does not exist" in message.lower()


class EgressController(abc.ABC):
    """Operações do controlador externo de egress."""

    @abc.abstractmethod
    async def start_track_composite(
        self,
        room_name: str,
        video_track_id: str,
        audio_track_id: str,
        output: SegmentedOutput,
        encoding: Optional[EncodingSettings] = None
    ) -> EgressInfo:
        """Inicia a gravação das tracks; devolve o egress criado."""

    @abc.abstractmethod
    async def stop(self, egress_id: str) -> None:
        """Para um egress."""

    @abc.abstractmethod
    async def get(self, egress_id: str) -> Optional[EgressInfo]:
        """Consulta um egress pelo ID; None se não existir."""

    @abc.abstractmethod
    async def get_participant_tracks(self, room_name: str, identity: str) -> List[TrackInfo]:
        """Lista as tracks publicadas por um participante."""


class LiveKitEgressController(EgressController):
    """Implementação sobre o SDK livekit-api."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None
    ):
        self.url = url or settings.livekit_url
        self.api_key = api_key or settings.livekit_api_key
        self.api_secret = api_secret or settings.livekit_api_secret
        self._client: Optional[api.LiveKitAPI] = None

    def _get_client(self) -> api.LiveKitAPI:
        # Criado on-demand: a sessão HTTP precisa de um event loop ativo
        if self._client is None:
            if not self.url or not self.api_key or not self.api_secret:
                raise EgressError("LIVEKIT_URL, LIVEKIT_API_KEY e LIVEKIT_API_SECRET devem estar definidos")
            self._client = api.LiveKitAPI(self.url, self.api_key, self.api_secret)
            logger.info(f"Cliente LiveKit inicializado: {self.url}")
        return self._client

    @staticmethod
    def _to_egress_info(info) -> EgressInfo:
        return EgressInfo(
            egress_id=info.egress_id,
            status=api.EgressStatus.Name(info.status),
            error=info.error or None
        )

    async def start_track_composite(
        self,
        room_name: str,
        video_track_id: str,
        audio_track_id: str,
        output: SegmentedOutput,
        encoding: Optional[EncodingSettings] = None
    ) -> EgressInfo:
        segment_output = api.SegmentedFileOutput(
            filename_prefix=output.filename_prefix,
            playlist_name=output.playlist_name,
            segment_duration=output.segment_duration,
            protocol=api.SegmentedFileProtocol.HLS_PROTOCOL
        )

        request = api.TrackCompositeEgressRequest(
            room_name=room_name,
            video_track_id=video_track_id,
            audio_track_id=audio_track_id,
            segment_outputs=[segment_output]
        )

        if encoding:
            request.advanced.CopyFrom(api.EncodingOptions(
                width=encoding.width,
                height=encoding.height,
                framerate=encoding.framerate,
                video_bitrate=encoding.video_bitrate // 1000  # LiveKit usa kbps
            ))
        else:
            request.preset = api.EncodingOptionsPreset.H264_1080P_60

        info = await self._get_client().egress.start_track_composite_egress(request)
        return self._to_egress_info(info)

    async def stop(self, egress_id: str) -> None:
        await self._get_client().egress.stop_egress(api.StopEgressRequest(egress_id=egress_id))

    async def get(self, egress_id: str) -> Optional[EgressInfo]:
        response = await self._get_client().egress.list_egress(
            api.ListEgressRequest(egress_id=egress_id)
        )
        if not response.items:
            return None
        return self._to_egress_info(response.items[0])

    async def get_participant_tracks(self, room_name: str, identity: str) -> List[TrackInfo]:
        participant = await self._get_client().room.get_participant(
            api.RoomParticipantIdentity(room=room_name, identity=identity)
        )
        return [
            TrackInfo(sid=track.sid, width=track.width or None, height=track.height or None)
            for track in participant.tracks
        ]

    async def close(self):
        """Fecha a sessão HTTP do cliente."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Instância global
egress_controller = LiveKitEgressController()
