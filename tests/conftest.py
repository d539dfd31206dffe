"""
Fixtures partilhadas: base de dados SQLite em memória, storage temporário
e implementações falsas dos colaboradores externos.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import itertools
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from replaybuffer.core.database import Base
from replaybuffer import models  # noqa: F401  (regista as tabelas)
from replaybuffer.models.egress_session import EgressSession
from replaybuffer.services.egress_session_service import EgressSessionService
from replaybuffer.services.clip_library_service import ClipLibraryService
from replaybuffer.services.replay_session_service import ReplaySessionService
from replaybuffer.utils.egress_client import EgressController, EgressInfo, TrackInfo
from replaybuffer.utils.ffmpeg_wrapper import FFmpegError
from replaybuffer.utils.message_publisher import MessagePublishError
from replaybuffer.utils.storage_manager import StorageManager

SEGMENT_SIZE = 20_000


class FakeEgressController(EgressController):
    """Controlador de egress em memória."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.started: List[dict] = []
        self.stopped: List[str] = []
        self.egresses: Dict[str, EgressInfo] = {}
        self.tracks: List[TrackInfo] = []
        self.start_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None

    async def start_track_composite(self, room_name, video_track_id, audio_track_id, output, encoding=None):
        if self.start_error:
            raise self.start_error

        egress_id = f"EG_{next(self._ids)}"
        self.started.append({
            "egress_id": egress_id,
            "room_name": room_name,
            "output": output,
            "encoding": encoding
        })
        info = EgressInfo(egress_id=egress_id, status="EGRESS_STARTING")
        self.egresses[egress_id] = info
        return info

    async def stop(self, egress_id):
        if self.stop_error:
            raise self.stop_error
        self.stopped.append(egress_id)
        if egress_id in self.egresses:
            self.egresses[egress_id].status = "EGRESS_COMPLETE"

    async def get(self, egress_id):
        return self.egresses.get(egress_id)

    async def get_participant_tracks(self, room_name, identity):
        return self.tracks


class FakeNotifier:
    """Regista os eventos em vez de os enviar por WebSocket."""

    def __init__(self):
        self.events: List[tuple] = []

    async def send_to_room(self, room, event, data):
        self.events.append((room, event, data))
        return 1


class FakeFFmpeg:
    """Substituto do FFmpegWrapper que escreve ficheiros sem invocar o binário."""

    def __init__(self):
        self.concat_calls: List[tuple] = []
        self.remux_calls: List[tuple] = []
        self.fail = False

    async def concatenate_segments(self, segment_paths, output_path, trim=None):
        self.concat_calls.append((list(segment_paths), output_path, trim))
        if self.fail:
            Path(output_path).write_bytes(b"partial")
            raise FFmpegError("concat failed", "Invalid data found when processing input")
        Path(output_path).write_bytes(b"\x00" * 4096)

    async def remux_segment(self, input_path, output_path):
        self.remux_calls.append((input_path, output_path))
        if self.fail:
            Path(output_path).write_bytes(b"partial")
            raise FFmpegError("remux failed")
        shutil.copyfile(input_path, output_path)


class FakeProbe:
    def __init__(self, duration: Optional[float] = None):
        self.duration = duration

    async def get_duration(self, file_path):
        return self.duration


class FakePublisher:
    def __init__(self):
        self.published: List[dict] = []
        self.fail = False

    async def publish_clip(self, author_id, destination, target_id, text, file_id):
        if self.fail:
            raise MessagePublishError("messages service unavailable")
        message = {"id": f"msg-{len(self.published) + 1}", "text": text, "file_id": file_id}
        self.published.append({
            "author_id": author_id,
            "destination": destination,
            "target_id": target_id,
            "text": text,
            "file_id": file_id
        })
        return message


def write_segments(directory: Path, count: int, size: int = SEGMENT_SIZE, start: int = 0) -> List[Path]:
    """Escreve `count` segmentos com o formato de nomes do egress."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for sequence in range(start, start + count):
        path = directory / f"2025-11-15T040603-segment_{sequence:05d}.ts"
        path.write_bytes(b"\x47" * size)
        paths.append(path)
    return paths


def create_active_session(db, storage: StorageManager, user_id: str = "user-1",
                          egress_id: str = "EG_existing", started_hours_ago: float = 0,
                          segments: int = 0) -> EgressSession:
    """Cria uma sessão ativa (e opcionalmente os seus segmentos)."""
    import uuid

    session_id = uuid.uuid4()
    session = EgressSessionService.create_session(
        db,
        session_id=session_id,
        user_id=user_id,
        room_name="room-1",
        channel_id="channel-1",
        egress_id=egress_id,
        segment_path=str(session_id)
    )

    if started_hours_ago:
        session.started_at = datetime.utcnow() - timedelta(hours=started_hours_ago)
        db.commit()

    if segments:
        write_segments(storage.resolve_segment_path(session.segment_path), segments)

    return session


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(
        segments_path=str(tmp_path / "segments"),
        clips_path=str(tmp_path / "clips"),
        remux_cache_path=str(tmp_path / "remux"),
        temp_path=str(tmp_path / "temp")
    )
    manager.ensure_structure()
    return manager


@pytest.fixture
def controller():
    return FakeEgressController()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def session_service(controller, storage, notifier):
    return ReplaySessionService(
        controller,
        storage,
        notifier,
        egress_output_path="/out",
        segment_duration=10,
        request_timeout=5
    )


@pytest.fixture
def library(storage, publisher, notifier):
    return ClipLibraryService(storage, publisher, notifier)
