"""
Orphan Reaper Worker - Força o fim de sessões ativas há tempo demais.

Sessões assim ficam órfãs por crash do browser, falhas de rede ou restart
do servidor.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import sessionmaker
from replaybuffer.core.config import settings
from replaybuffer.core.database import SessionLocal
from replaybuffer.models.egress_session import EgressSessionStatus
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.egress_client import EgressController, egress_controller
from replaybuffer.utils.storage_manager import StorageManager, storage_manager

logger = logging.getLogger(__name__)


class OrphanReaperWorker:
    """Worker que termina sessões órfãs."""

    def __init__(
        self,
        controller: EgressController,
        storage: StorageManager,
        session_factory: sessionmaker = SessionLocal,
        stale_threshold_hours: Optional[int] = None
    ):
        self.controller = controller
        self.storage = storage
        self.session_factory = session_factory
        self.stale_threshold = timedelta(
            hours=stale_threshold_hours or settings.replay_orphan_threshold_hours
        )
        self.check_interval = settings.replay_orphan_check_interval_seconds
        self.request_timeout = settings.egress_request_timeout_seconds

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Executa um ciclo de limpeza de sessões órfãs.

        Returns:
            Número de sessões terminadas
        """
        db = self.session_factory()

        try:
            threshold = (now or datetime.utcnow()) - self.stale_threshold
            orphaned = EgressSessionService.get_stale_sessions(db, threshold)

            if not orphaned:
                logger.debug("Nenhuma sessão órfã encontrada")
                return 0

            logger.warning(f"Encontradas {len(orphaned)} sessões órfãs, a limpar...")
            cleaned = 0

            for session in orphaned:
                session_id = session.id
                egress_id = session.egress_id
                segment_path = session.segment_path
                user_id = session.user_id

                try:
                    try:
                        await asyncio.wait_for(self.controller.stop(egress_id), timeout=self.request_timeout)
                        logger.debug(f"Egress órfão parado: {egress_id}")
                    except Exception as e:
                        # Provavelmente já parado pelo LiveKit
                        logger.debug(f"Egress {egress_id} já parado ou inexistente: {e}")

                    if not EgressSessionService.end_session(db, session_id, EgressSessionStatus.STOPPED):
                        # Já terminada por webhook ou reconciliação, que limpam os ficheiros
                        logger.debug(f"Sessão órfã {session_id} já tinha terminado")
                        continue

                    if self.storage.segment_directory_exists(segment_path):
                        await self.storage.delete_segment_directory(segment_path)
                        logger.debug(f"Segmentos órfãos removidos: {self.storage.resolve_segment_path(segment_path)}")

                    await self.storage.delete_remux_cache(user_id)

                    cleaned += 1

                except Exception as e:
                    db.rollback()
                    logger.error(f"Falha ao limpar sessão órfã {session_id}: {e}")

            logger.info(f"Limpas {cleaned} de {len(orphaned)} sessões órfãs")
            return cleaned

        finally:
            db.close()


# Instância global
orphan_reaper_worker = OrphanReaperWorker(egress_controller, storage_manager)
