"""
Rotas de webhooks do LiveKit.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import Optional, Tuple
from livekit import api
from replaybuffer.core.config import settings
from replaybuffer.core.database import get_db
from replaybuffer.services.replay_session_service import ReplaySessionService
from replaybuffer.routers.replay import get_replay_session_service
from replaybuffer.utils.egress_client import EGRESS_FAILED_STATUSES
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_receiver() -> Optional[api.WebhookReceiver]:
    """Verificador de assinaturas; None quando não há credenciais configuradas."""
    if not settings.livekit_api_key or not settings.livekit_api_secret:
        return None
    return api.WebhookReceiver(
        api.TokenVerifier(settings.livekit_api_key, settings.livekit_api_secret)
    )


def parse_egress_ended(payload: dict) -> Optional[Tuple[str, str, Optional[str]]]:
    """
    Extrai (egress_id, status, erro) de um evento egress_ended.

    EGRESS_FAILED e EGRESS_ABORTED mapeiam para "failed"; o resto para "stopped".
    """
    if payload.get("event") != "egress_ended":
        return None

    info = payload.get("egressInfo") or payload.get("egress_info") or {}
    egress_id = info.get("egressId") or info.get("egress_id")
    if not egress_id:
        return None

    egress_status = info.get("status", "")
    if isinstance(egress_status, int):
        egress_status = api.EgressStatus.Name(egress_status)

    result = "failed" if egress_status in EGRESS_FAILED_STATUSES else "stopped"
    return egress_id, result, info.get("error") or None


@router.post("/livekit")
async def livekit_webhook(
    request: Request,
    db: Session = Depends(get_db),
    service: ReplaySessionService = Depends(get_replay_session_service),
    receiver: Optional[api.WebhookReceiver] = Depends(get_webhook_receiver)
):
    """
    Recebe eventos do LiveKit.

    Só egress_ended é tratado. Erros internos são registados e confirmados
    com 200 para o LiveKit não repetir o envio.
    """
    body = (await request.body()).decode("utf-8")

    if receiver is not None:
        try:
            receiver.receive(body, request.headers.get("Authorization", ""))
        except Exception as e:
            logger.warning(f"Webhook do LiveKit com assinatura inválida: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid webhook signature"
            )

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload"
        )

    event = parse_egress_ended(payload)
    if event is None:
        logger.debug(f"Evento de webhook ignorado: {payload.get('event')}")
        return {"received": True}

    egress_id, egress_status, error = event

    try:
        await service.handle_egress_ended(db, egress_id, egress_status, error)
    except Exception as e:
        db.rollback()
        logger.error(f"Falha ao processar egress_ended de {egress_id}: {e}")

    return {"received": True}
