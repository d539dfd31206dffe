"""
Serviço de sessões de egress (persistência com transições guardadas por status).
"""
from sqlalchemy.orm import Session
from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from uuid import UUID
from typing import Optional, List
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (EgressSessionStatus.STOPPED, EgressSessionStatus.FAILED)


class EgressSessionService:
    """Serviço para gerenciar sessões de egress."""

    @staticmethod
    def create_session(db: Session, session_id: UUID, user_id: str, room_name: str,
                       egress_id: str, segment_path: str, channel_id: Optional[str] = None) -> EgressSession:
        """Cria uma nova sessão ativa."""
        session = EgressSession(
            id=session_id,
            user_id=user_id,
            room_name=room_name,
            channel_id=channel_id,
            egress_id=egress_id,
            segment_path=segment_path,
            status=EgressSessionStatus.ACTIVE,
            started_at=datetime.utcnow()
        )
        db.add(session)
        db.commit()
        db.refresh(session)

        logger.info(f"Sessão de egress criada: {session.id} (utilizador {user_id}, egress {egress_id})")
        return session

    @staticmethod
    def get_session_by_id(db: Session, session_id: UUID) -> Optional[EgressSession]:
        """Obtém uma sessão pelo ID."""
        return db.query(EgressSession).filter(EgressSession.id == session_id).first()

    @staticmethod
    def get_session_by_egress_id(db: Session, egress_id: str) -> Optional[EgressSession]:
        """Obtém uma sessão pelo ID externo do egress."""
        return db.query(EgressSession).filter(EgressSession.egress_id == egress_id).first()

    @staticmethod
    def get_active_session(db: Session, user_id: str) -> Optional[EgressSession]:
        """Obtém a sessão ativa de um utilizador."""
        return db.query(EgressSession).filter(
            EgressSession.user_id == user_id,
            EgressSession.status == EgressSessionStatus.ACTIVE
        ).first()

    @staticmethod
    def get_active_sessions(db: Session) -> List[EgressSession]:
        """Obtém todas as sessões ativas."""
        return db.query(EgressSession).filter(
            EgressSession.status == EgressSessionStatus.ACTIVE
        ).all()

    @staticmethod
    def get_stale_sessions(db: Session, started_before: datetime) -> List[EgressSession]:
        """Obtém sessões ativas iniciadas antes de `started_before`."""
        return db.query(EgressSession).filter(
            EgressSession.status == EgressSessionStatus.ACTIVE,
            EgressSession.started_at < started_before
        ).all()

    @staticmethod
    def end_session(db: Session, session_id: UUID, status: EgressSessionStatus,
                    error: Optional[str] = None) -> bool:
        """
        Termina uma sessão (active -> stopped/failed).

        O UPDATE só se aplica se a sessão ainda estiver ativa, o que torna
        webhook, reconciliação e stop manual concorrentes idempotentes.

        Returns:
            True se a transição foi aplicada, False se a sessão já não estava ativa
        """
        status = EgressSessionStatus(status)
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Status terminal inválido: {status}")

        values = {
            EgressSession.status: status,
            EgressSession.ended_at: datetime.utcnow()
        }
        if error is not None:
            values[EgressSession.error] = error

        updated = db.query(EgressSession).filter(
            EgressSession.id == session_id,
            EgressSession.status == EgressSessionStatus.ACTIVE
        ).update(values, synchronize_session=False)
        db.commit()

        if updated:
            logger.info(f"Sessão {session_id} -> {status.value}")
        else:
            logger.debug(f"Sessão {session_id} já não estava ativa, transição para {status.value} ignorada")

        return bool(updated)
