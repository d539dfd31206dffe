"""
Módulo workers com tarefas de manutenção em background.
"""
from replaybuffer.core.scheduler import SchedulerManager
from replaybuffer.workers.reconcile_worker import ReconcileWorker, reconcile_worker
from replaybuffer.workers.segment_cleanup_worker import SegmentCleanupWorker, segment_cleanup_worker
from replaybuffer.workers.orphan_reaper_worker import OrphanReaperWorker, orphan_reaper_worker


def register_jobs():
    """Agenda as tarefas de manutenção no APScheduler."""
    SchedulerManager.add_interval_job(
        reconcile_worker.run_once,
        "replay_reconcile",
        reconcile_worker.check_interval
    )
    SchedulerManager.add_interval_job(
        segment_cleanup_worker.run_once,
        "replay_segment_cleanup",
        segment_cleanup_worker.check_interval
    )
    SchedulerManager.add_interval_job(
        orphan_reaper_worker.run_once,
        "replay_orphan_reaper",
        orphan_reaper_worker.check_interval
    )


__all__ = [
    "ReconcileWorker",
    "SegmentCleanupWorker",
    "OrphanReaperWorker",
    "register_jobs"
]
