"""
Testes das rotas HTTP (FastAPI TestClient, colaboradores falsos).
"""
import json

import pytest
from fastapi.testclient import TestClient

from main import app
from replaybuffer.core.database import get_db
from replaybuffer.core.security import create_access_token
from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from replaybuffer.routers.replay import get_replay_session_service
from replaybuffer.routers.webhooks import get_webhook_receiver, parse_egress_ended
from conftest import create_active_session


@pytest.fixture
def client(db, session_service):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_replay_session_service] = lambda: session_service
    app.dependency_overrides[get_webhook_receiver] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': 'user-1'})}"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requires_authentication(client):
    response = client.post("/replay/stop")

    assert response.status_code in (401, 403)


def test_start_and_stop(client, auth_headers, controller):
    response = client.post("/replay/start", headers=auth_headers, json={
        "channel_id": "channel-1",
        "room_name": "room-1",
        "video_track_id": "TR_video",
        "audio_track_id": "TR_audio"
    })

    assert response.status_code == 200
    assert response.json()["status"] == "active"

    response = client.post("/replay/stop", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "stopped"
    assert controller.stopped == [response.json()["egress_id"]]


def test_stop_without_session_is_404(client, auth_headers):
    response = client.post("/replay/stop", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"detail": "No active replay buffer session found"}


def test_capture_rejects_unknown_preset(client, auth_headers):
    response = client.post("/replay/capture", headers=auth_headers, json={
        "duration_minutes": 3,
        "destination": "library"
    })

    assert response.status_code == 422


def test_stream_rejects_unknown_preset(client, auth_headers):
    response = client.get("/replay/stream?duration_minutes=7", headers=auth_headers)

    assert response.status_code == 400


def test_session_info(client, auth_headers, storage, db):
    create_active_session(db, storage, segments=2)

    response = client.get("/replay/session", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["has_active_session"] is True
    assert response.json()["total_duration_seconds"] == 20


def test_webhook_marks_aborted_egress_failed(client, notifier, storage, db):
    session = create_active_session(db, storage, egress_id="EG_hook")
    body = {
        "event": "egress_ended",
        "egressInfo": {"egressId": "EG_hook", "status": "EGRESS_ABORTED", "error": "room closed"}
    }

    response = client.post("/webhooks/livekit", content=json.dumps(body))

    assert response.status_code == 200
    db.expire_all()
    stored = db.get(EgressSession, session.id)
    assert stored.status == EgressSessionStatus.FAILED
    assert stored.error == "room closed"


def test_webhook_ignores_other_events(client):
    response = client.post("/webhooks/livekit", content=json.dumps({"event": "room_started"}))

    assert response.status_code == 200


def test_parse_egress_ended_maps_statuses():
    def event(status):
        return {"event": "egress_ended", "egressInfo": {"egressId": "EG_1", "status": status}}

    assert parse_egress_ended(event("EGRESS_FAILED")) == ("EG_1", "failed", None)
    assert parse_egress_ended(event("EGRESS_COMPLETE")) == ("EG_1", "stopped", None)
    assert parse_egress_ended(event("EGRESS_LIMIT_REACHED")) == ("EG_1", "stopped", None)
    assert parse_egress_ended({"event": "egress_started"}) is None
