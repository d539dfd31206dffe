"""
Testes das tarefas de manutenção (reconciliação, limpeza de segmentos e sessões órfãs).
"""
import os
import time
from datetime import datetime

import pytest

from replaybuffer.models.egress_session import EgressSession, EgressSessionStatus
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.utils.egress_client import EgressError, EgressInfo
from replaybuffer.utils.realtime import ServerEvents
from replaybuffer.workers.orphan_reaper_worker import OrphanReaperWorker
from replaybuffer.workers.reconcile_worker import ReconcileWorker
from replaybuffer.workers.segment_cleanup_worker import SegmentCleanupWorker
from conftest import create_active_session, write_segments


def status_of(db, session_id):
    db.expire_all()
    return db.get(EgressSession, session_id).status


@pytest.mark.asyncio
async def test_reconcile_marks_missing_egress_stopped(controller, session_service, session_factory, storage, notifier, db):
    session = create_active_session(db, storage, egress_id="EG_gone", segments=1)
    worker = ReconcileWorker(controller, session_service, session_factory)

    assert await worker.run_once() == 1

    assert status_of(db, session.id) == EgressSessionStatus.STOPPED
    assert not storage.segment_directory_exists(session.segment_path)
    assert notifier.events[0][1] == ServerEvents.REPLAY_BUFFER_STOPPED


@pytest.mark.asyncio
async def test_reconcile_leaves_running_egress_alone(controller, session_service, session_factory, storage, notifier, db):
    session = create_active_session(db, storage, egress_id="EG_live")
    controller.egresses["EG_live"] = EgressInfo(egress_id="EG_live", status="EGRESS_ACTIVE")
    worker = ReconcileWorker(controller, session_service, session_factory)

    assert await worker.run_once() == 0

    assert status_of(db, session.id) == EgressSessionStatus.ACTIVE
    assert notifier.events == []


@pytest.mark.asyncio
async def test_reconcile_records_failed_egress(controller, session_service, session_factory, storage, notifier, db):
    session = create_active_session(db, storage, egress_id="EG_bad")
    controller.egresses["EG_bad"] = EgressInfo(egress_id="EG_bad", status="EGRESS_ABORTED", error="start signal not received")
    worker = ReconcileWorker(controller, session_service, session_factory)

    assert await worker.run_once() == 1

    db.expire_all()
    stored = db.get(EgressSession, session.id)
    assert stored.status == EgressSessionStatus.FAILED
    assert stored.error == "start signal not received"
    assert notifier.events[0][1] == ServerEvents.REPLAY_BUFFER_FAILED


@pytest.mark.asyncio
async def test_reconcile_continues_after_lookup_error(session_service, session_factory, storage, db):
    class FlakyController(type(session_service.controller)):
        async def get(self, egress_id):
            if egress_id == "EG_a":
                raise EgressError("timeout")
            return None

    first = create_active_session(db, storage, user_id="user-a", egress_id="EG_a")
    second = create_active_session(db, storage, user_id="user-b", egress_id="EG_b")
    worker = ReconcileWorker(FlakyController(), session_service, session_factory)

    assert await worker.run_once() == 1

    assert status_of(db, first.id) == EgressSessionStatus.ACTIVE
    assert status_of(db, second.id) == EgressSessionStatus.STOPPED


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_files(storage, session_factory, db):
    session = create_active_session(db, storage)
    old, recent = write_segments(storage.resolve_segment_path(session.segment_path), 2)
    stale = time.time() - 30 * 60
    os.utime(old, (stale, stale))
    worker = SegmentCleanupWorker(storage, session_factory, max_age_minutes=20)

    assert await worker.run_once(now=datetime.now()) == 1

    assert not old.exists()
    assert recent.exists()


@pytest.mark.asyncio
async def test_cleanup_skips_sessions_without_directory(storage, session_factory, db):
    create_active_session(db, storage)
    worker = SegmentCleanupWorker(storage, session_factory, max_age_minutes=20)

    assert await worker.run_once() == 0


@pytest.mark.asyncio
async def test_orphan_reaper_only_reaps_stale_sessions(controller, storage, session_factory, db):
    recent = create_active_session(db, storage, user_id="user-a", egress_id="EG_recent",
                                   started_hours_ago=1, segments=1)
    stale = create_active_session(db, storage, user_id="user-b", egress_id="EG_stale",
                                  started_hours_ago=4, segments=1)
    worker = OrphanReaperWorker(controller, storage, session_factory, stale_threshold_hours=3)

    assert await worker.run_once() == 1

    assert controller.stopped == ["EG_stale"]
    assert status_of(db, stale.id) == EgressSessionStatus.STOPPED
    assert status_of(db, recent.id) == EgressSessionStatus.ACTIVE
    assert not storage.segment_directory_exists(stale.segment_path)
    assert storage.segment_directory_exists(recent.segment_path)


@pytest.mark.asyncio
async def test_orphan_reaper_tolerates_stop_errors(controller, storage, session_factory, db):
    stale = create_active_session(db, storage, started_hours_ago=5)
    controller.stop_error = EgressError("egress does not exist")
    worker = OrphanReaperWorker(controller, storage, session_factory, stale_threshold_hours=3)

    assert await worker.run_once() == 1

    assert status_of(db, stale.id) == EgressSessionStatus.STOPPED


@pytest.mark.asyncio
async def test_cleanup_prunes_old_remux_cache_without_sessions(storage, session_factory):
    cache_dir = storage.get_remux_cache_path("user-x")
    old = cache_dir / "a-segment_00000.ts"
    recent = cache_dir / "a-segment_00001.ts"
    old.write_bytes(b"x")
    recent.write_bytes(b"x")
    stale = time.time() - 30 * 60
    os.utime(old, (stale, stale))
    worker = SegmentCleanupWorker(storage, session_factory, max_age_minutes=20)

    assert await worker.run_once(now=datetime.now()) == 1

    assert not old.exists()
    assert recent.exists()


@pytest.mark.asyncio
async def test_orphan_reaper_clears_remux_cache(controller, storage, session_factory, db):
    create_active_session(db, storage, user_id="user-b", started_hours_ago=4, segments=1)
    cache_dir = storage.get_remux_cache_path("user-b")
    (cache_dir / "a-segment_00000.ts").write_bytes(b"x")
    worker = OrphanReaperWorker(controller, storage, session_factory, stale_threshold_hours=3)

    assert await worker.run_once() == 1

    assert not cache_dir.exists()


@pytest.mark.asyncio
async def test_orphan_reaper_skips_sessions_ended_elsewhere(controller, storage, session_factory, db, monkeypatch):
    stale = create_active_session(db, storage, started_hours_ago=5, segments=1)
    monkeypatch.setattr(EgressSessionService, "end_session", staticmethod(lambda *args, **kwargs: False))
    worker = OrphanReaperWorker(controller, storage, session_factory, stale_threshold_hours=3)

    assert await worker.run_once() == 0

    assert storage.segment_directory_exists(stale.segment_path)
