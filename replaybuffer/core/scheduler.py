"""
Configuração do APScheduler para tarefas em background.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.interval import IntervalTrigger
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


class SchedulerManager:
    """Gerenciador central do APScheduler."""

    _instance: Optional[AsyncIOScheduler] = None

    @classmethod
    def get_scheduler(cls) -> AsyncIOScheduler:
        """Retorna a instância singleton do scheduler."""
        if cls._instance is None:
            jobstores = {
                'default': MemoryJobStore()
            }
            # Jobs de manutenção são corrotinas, correm no event loop
            executors = {
                'default': AsyncIOExecutor()
            }
            job_defaults = {
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 30
            }

            cls._instance = AsyncIOScheduler(
                jobstores=jobstores,
                executors=executors,
                job_defaults=job_defaults,
                timezone='UTC'
            )
            logger.info("APScheduler inicializado")

        return cls._instance

    @classmethod
    def add_interval_job(cls, func: Callable, job_id: str, seconds: int):
        """Regista (ou substitui) um job periódico."""
        scheduler = cls.get_scheduler()
        scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=job_id,
            replace_existing=True
        )
        logger.info(f"Job agendado: {job_id} (a cada {seconds}s)")

    @classmethod
    def start(cls):
        """Inicia o scheduler."""
        scheduler = cls.get_scheduler()
        if not scheduler.running:
            scheduler.start()
            logger.info("APScheduler iniciado")

    @classmethod
    def shutdown(cls):
        """Para o scheduler."""
        if cls._instance and cls._instance.running:
            cls._instance.shutdown()
            logger.info("APScheduler parado")


# Instância global para importação direta
scheduler = SchedulerManager.get_scheduler()
