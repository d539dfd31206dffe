"""
Segment Cleanup Worker - Mantém o buffer de cada sessão ativa limitado no tempo.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import sessionmaker
from replaybuffer.core.config import settings
from replaybuffer.core.database import SessionLocal
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.storage_manager import StorageManager, storage_manager

logger = logging.getLogger(__name__)


class SegmentCleanupWorker:
    """Worker que apaga segmentos antigos das sessões ativas."""

    def __init__(
        self,
        storage: StorageManager,
        session_factory: sessionmaker = SessionLocal,
        max_age_minutes: Optional[int] = None
    ):
        self.storage = storage
        self.session_factory = session_factory
        self.max_age_minutes = max_age_minutes or settings.replay_segment_cleanup_age_minutes
        self.check_interval = settings.replay_cleanup_interval_seconds

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Executa um ciclo de limpeza (segmentos das sessões ativas e cache de remux).

        Returns:
            Número de ficheiros removidos
        """
        cutoff = (now or datetime.now()) - timedelta(minutes=self.max_age_minutes)
        total_deleted = 0

        try:
            cache_deleted = await self.storage.prune_remux_cache(cutoff)
            total_deleted += cache_deleted
            if cache_deleted:
                logger.debug(f"Removidos {cache_deleted} segmentos remuxados antigos da cache")
        except Exception as e:
            logger.warning(f"Falha ao limpar cache de remux: {e}")

        db = self.session_factory()

        try:
            sessions = EgressSessionService.get_active_sessions(db)
            if not sessions:
                logger.debug("Nenhuma sessão ativa para limpar")
                return total_deleted

            for session in sessions:
                try:
                    if not self.storage.segment_directory_exists(session.segment_path):
                        logger.warning(
                            f"Diretório de segmentos não existe: "
                            f"{self.storage.resolve_segment_path(session.segment_path)}"
                        )
                        continue

                    deleted = await self.storage.delete_old_files(
                        str(self.storage.resolve_segment_path(session.segment_path)),
                        cutoff
                    )
                    total_deleted += deleted

                    if deleted:
                        logger.debug(f"Removidos {deleted} segmentos antigos da sessão {session.id}")

                except Exception as e:
                    logger.warning(f"Falha ao limpar segmentos da sessão {session.id}: {e}")

            if total_deleted:
                logger.info(f"Removidos {total_deleted} ficheiros de segmentos antigos")

            return total_deleted

        finally:
            db.close()


# Instância global
segment_cleanup_worker = SegmentCleanupWorker(storage_manager)
