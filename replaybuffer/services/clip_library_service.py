"""
Serviço da biblioteca de clips (metadados, visibilidade e partilha).
"""
from sqlalchemy.orm import Session
from replaybuffer.core.exceptions import BadRequestError, NotFoundError
from replaybuffer.models.replay_clip import ReplayClip
from replaybuffer.models.stored_file import StoredFile
from replaybuffer.utils.message_publisher import MessagePublisher, MessagePublishError, message_publisher
from replaybuffer.utils.realtime import RealtimeHub, ServerEvents, realtime_hub
from replaybuffer.utils.storage_manager import StorageManager, storage_manager
from uuid import UUID
from typing import Optional, List, Dict, Any
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

DESTINATIONS = ("library", "channel", "dm")


def get_download_url(file_id) -> str:
    """URL relativa de download de um ficheiro."""
    return f"/files/{file_id}"


class ClipLibraryService:
    """Serviço para gerenciar a biblioteca de clips de cada utilizador."""

    def __init__(self, storage: StorageManager, publisher: MessagePublisher, notifier: RealtimeHub):
        self.storage = storage
        self.publisher = publisher
        self.notifier = notifier

    @staticmethod
    def create_clip(db: Session, user_id: str, channel_id: Optional[str], clip_path: str,
                    size_bytes: int, checksum: str, duration_seconds: int) -> ReplayClip:
        """Cria o registo do ficheiro e o clip que o referencia."""
        stored_file = StoredFile(
            filename=Path(clip_path).name,
            mime_type="video/mp4",
            file_type="video",
            size_bytes=size_bytes,
            checksum=checksum,
            uploaded_by_id=user_id,
            storage_type="local",
            storage_path=clip_path,
            resource_type="replay_clip",
            # Dono do clip (não muda quando é partilhado)
            resource_id=user_id
        )
        db.add(stored_file)
        db.flush()

        clip = ReplayClip(
            user_id=user_id,
            file_id=stored_file.id,
            channel_id=channel_id,
            duration_seconds=duration_seconds
        )
        db.add(clip)
        db.commit()
        db.refresh(clip)

        logger.info(f"Clip criado: {clip.id} (ficheiro {stored_file.id}, {size_bytes} bytes, {duration_seconds}s)")
        return clip

    @staticmethod
    def to_response(clip: ReplayClip) -> Dict[str, Any]:
        """Converte um clip no formato de resposta da API."""
        return {
            "id": clip.id,
            "file_id": clip.file_id,
            "channel_id": clip.channel_id,
            "duration_seconds": clip.duration_seconds,
            "is_public": clip.is_public,
            "captured_at": clip.captured_at,
            "download_url": get_download_url(clip.file_id),
            "size_bytes": clip.file.size_bytes,
            "filename": clip.file.filename
        }

    @staticmethod
    def _get_owned_clip(db: Session, user_id: str, clip_id: UUID) -> ReplayClip:
        clip = db.query(ReplayClip).filter(
            ReplayClip.id == clip_id,
            ReplayClip.user_id == user_id
        ).first()

        if not clip:
            raise NotFoundError("Clip not found or access denied")
        return clip

    def list_user_clips(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """Clips do utilizador (mais recentes primeiro)."""
        clips = db.query(ReplayClip).filter(
            ReplayClip.user_id == user_id
        ).order_by(ReplayClip.captured_at.desc()).all()

        return [self.to_response(clip) for clip in clips]

    def list_public_clips(self, db: Session, user_id: str) -> List[Dict[str, Any]]:
        """Clips públicos de um utilizador (visíveis no perfil)."""
        clips = db.query(ReplayClip).filter(
            ReplayClip.user_id == user_id,
            ReplayClip.is_public == True
        ).order_by(ReplayClip.captured_at.desc()).all()

        return [self.to_response(clip) for clip in clips]

    def update_clip(self, db: Session, user_id: str, clip_id: UUID,
                    is_public: Optional[bool] = None) -> Dict[str, Any]:
        """Atualiza um clip (visibilidade pública)."""
        clip = self._get_owned_clip(db, user_id, clip_id)

        if is_public is not None:
            clip.is_public = is_public
        db.commit()
        db.refresh(clip)

        logger.info(f"Clip {clip_id} atualizado: is_public={clip.is_public}")
        return self.to_response(clip)

    async def delete_clip(self, db: Session, user_id: str, clip_id: UUID) -> None:
        """Remove um clip, o registo do ficheiro e o ficheiro em disco."""
        clip = self._get_owned_clip(db, user_id, clip_id)
        stored_file = clip.file
        storage_path = stored_file.storage_path

        db.delete(clip)
        db.delete(stored_file)
        db.commit()

        # Registos já removidos: falha no disco só fica registada
        if storage_path and not await self.storage.delete_file(storage_path):
            logger.warning(f"Ficheiro do clip {clip_id} não removido do storage: {storage_path}")

        logger.info(f"Clip removido: {clip_id}")

    async def publish_clip_message(self, user_id: str, destination: str, target_id: str,
                                   file_id, duration_seconds: int, size_bytes: int) -> str:
        """
        Publica uma mensagem com o clip num canal ou DM e notifica a sala.

        Returns:
            ID da mensagem criada

        Raises:
            MessagePublishError: Se o serviço de mensagens falhar
        """
        size_mb = round(size_bytes / 1024 / 1024)
        message = await self.publisher.publish_clip(
            author_id=user_id,
            destination=destination,
            target_id=target_id,
            text=f"Replay clip - {duration_seconds}s ({size_mb}MB)",
            file_id=str(file_id)
        )

        event = ServerEvents.NEW_MESSAGE if destination == "channel" else ServerEvents.NEW_DM
        await self.notifier.send_to_room(target_id, event, {"message": message})

        return str(message["id"])

    async def share_clip(self, db: Session, user_id: str, clip_id: UUID,
                         destination: str, target_id: Optional[str]) -> Dict[str, Any]:
        """Partilha um clip existente num canal ou DM (sem criar novo clip)."""
        if destination not in ("channel", "dm") or not target_id:
            raise BadRequestError("Destination must be channel or dm with a target id")

        clip = self._get_owned_clip(db, user_id, clip_id)

        try:
            message_id = await self.publish_clip_message(
                user_id, destination, target_id,
                clip.file_id, clip.duration_seconds, clip.file.size_bytes
            )
        except MessagePublishError as e:
            logger.error(f"Falha ao partilhar clip {clip_id}: {e}")
            raise BadRequestError("Failed to share clip")

        logger.info(f"Clip {clip_id} partilhado em {destination} (mensagem {message_id})")
        return {
            "message_id": message_id,
            "clip_id": clip.id,
            "destination": destination
        }

    def get_file_for_download(self, db: Session, user_id: str, file_id: UUID) -> StoredFile:
        """
        Obtém um ficheiro de clip se o utilizador tiver acesso.

        Acesso: dono do ficheiro, ou clip marcado como público.
        """
        stored_file = db.query(StoredFile).filter(StoredFile.id == file_id).first()
        if not stored_file:
            raise NotFoundError("File not found")

        if stored_file.uploaded_by_id != user_id:
            public_clip = db.query(ReplayClip).filter(
                ReplayClip.file_id == file_id,
                ReplayClip.is_public == True
            ).first()
            if not public_clip:
                raise NotFoundError("File not found")

        if not self.storage.file_exists(stored_file.storage_path):
            raise NotFoundError("File not found")

        return stored_file


# Instância global
clip_library_service = ClipLibraryService(storage_manager, message_publisher, realtime_hub)
