"""
Aplicação FastAPI principal do Buffer de Replay de partilha de ecrã.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from replaybuffer.core.config import settings
from replaybuffer.core.database import Base, engine
from replaybuffer.core.exceptions import ReplayBufferError
from replaybuffer.core.scheduler import SchedulerManager
from replaybuffer.routers import replay, clips, files, webhooks, realtime
from replaybuffer.utils.egress_client import egress_controller
from replaybuffer.utils.storage_manager import storage_manager
from replaybuffer.workers import register_jobs

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.
    Agenda as tarefas de manutenção no startup e para-as no shutdown.
    """
    # Startup
    logger.info("Iniciando aplicação...")

    # Criar tabelas no banco de dados
    Base.metadata.create_all(bind=engine)
    logger.info("Tabelas do banco de dados criadas/verificadas")

    storage_manager.ensure_structure()

    register_jobs()
    SchedulerManager.start()

    logger.info("Tarefas de manutenção agendadas")

    yield

    # Shutdown
    logger.info("Parando aplicação...")

    SchedulerManager.shutdown()
    await egress_controller.close()

    logger.info("Aplicação parada")


# Criar aplicação FastAPI
app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReplayBufferError)
async def replay_buffer_error_handler(request: Request, exc: ReplayBufferError):
    """Converte as exceções de domínio em respostas HTTP."""
    if exc.status_code >= 500:
        logger.error(f"Erro em {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Incluir rotas
app.include_router(replay.router)
app.include_router(clips.router)
app.include_router(files.router)
app.include_router(webhooks.router)
app.include_router(realtime.router)


@app.get("/")
async def root():
    """Endpoint raiz da API."""
    return {
        "message": "Bem-vindo à Replay Buffer API",
        "version": settings.api_version,
        "docs": "/docs",
        "openapi": "/openapi.json"
    }


@app.get("/health")
async def health_check():
    """Health check da API."""
    scheduler = SchedulerManager.get_scheduler()
    return {
        "status": "ok",
        "scheduler": scheduler.running,
        "jobs": [job.id for job in scheduler.get_jobs()]
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
