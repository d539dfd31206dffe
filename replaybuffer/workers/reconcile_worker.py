"""
Reconcile Worker - Alinha o status das sessões ativas com o estado real no LiveKit.

Apanha os casos em que o webhook de egress_ended se perdeu ou falhou.
"""
import asyncio
import logging
from sqlalchemy.orm import Session, sessionmaker
from replaybuffer.core.config import settings
from replaybuffer.core.database import SessionLocal
from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.services.replay_session_service import ReplaySessionService, replay_session_service
from replaybuffer.utils.egress_client import EgressController, egress_controller

logger = logging.getLogger(__name__)


class ReconcileWorker:
    """Worker de reconciliação de sessões com o LiveKit."""

    def __init__(
        self,
        controller: EgressController,
        session_service: ReplaySessionService,
        session_factory: sessionmaker = SessionLocal
    ):
        self.controller = controller
        self.session_service = session_service
        self.session_factory = session_factory
        self.check_interval = settings.replay_reconcile_interval_seconds
        self.request_timeout = settings.egress_request_timeout_seconds

    async def run_once(self) -> int:
        """
        Executa um ciclo de reconciliação.

        Returns:
            Número de sessões corrigidas
        """
        db = self.session_factory()

        try:
            sessions = EgressSessionService.get_active_sessions(db)
            if not sessions:
                logger.debug("Nenhuma sessão ativa para reconciliar")
                return 0

            logger.debug(f"A reconciliar {len(sessions)} sessões ativas com o LiveKit")
            reconciled = 0

            for session in sessions:
                try:
                    if await self._reconcile_session(db, session):
                        reconciled += 1
                except Exception as e:
                    db.rollback()
                    logger.error(f"Falha ao reconciliar sessão {session.id}: {e}")

            if reconciled:
                logger.info(f"Reconciliadas {reconciled} sessões com o LiveKit")
            else:
                logger.debug("Todas as sessões estão sincronizadas com o LiveKit")

            return reconciled

        finally:
            db.close()

    async def _reconcile_session(self, db: Session, session: EgressSession) -> bool:
        """Reconcilia uma sessão; devolve True se o status mudou."""
        info = await asyncio.wait_for(
            self.controller.get(session.egress_id),
            timeout=self.request_timeout
        )

        if info is None:
            logger.warning(f"Egress {session.egress_id} não existe no LiveKit, a marcar como stopped")
            status = EgressSessionStatus.STOPPED
            error = None
        elif info.is_running:
            return False
        else:
            status = EgressSessionStatus.FAILED if info.is_failed else EgressSessionStatus.STOPPED
            error = info.error if info.is_failed else None
            logger.warning(
                f"Egress {session.egress_id} divergente: BD=active, LiveKit={info.status}"
            )

        if not EgressSessionService.end_session(db, session.id, status, error=error):
            return False

        await self.session_service.cleanup_session_files(session.segment_path, session.user_id)
        await self.session_service.notify_session_ended(session, status, error)
        return True


# Instância global
reconcile_worker = ReconcileWorker(egress_controller, replay_session_service)
