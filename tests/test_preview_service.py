"""
Testes da playlist de pré-visualização e do remux de segmentos.
"""
import asyncio
import shutil
from pathlib import Path

import pytest

from replaybuffer.core.exceptions import BadRequestError, NotFoundError
from replaybuffer.services.preview_service import PreviewService, build_playlist, is_valid_segment_filename
from replaybuffer.utils.segment_index import Segment
from conftest import FakeFFmpeg, create_active_session


@pytest.fixture
def preview(storage, fake_ffmpeg):
    return PreviewService(storage, fake_ffmpeg, segment_base_url="/replay/preview/segment")


def test_build_playlist_is_finite_and_seekable():
    segments = [Segment(filename=f"t-segment_{i:05d}.ts", sequence=i, path="") for i in range(3)]

    lines = build_playlist(segments, "/replay/preview/segment/").split("\n")

    assert lines[0] == "#EXTM3U"
    assert "#EXT-X-TARGETDURATION:10" in lines
    assert "#EXT-X-PLAYLIST-TYPE:EVENT" in lines
    assert lines.count("#EXTINF:10.0,") == 3
    assert "/replay/preview/segment/t-segment_00000.ts" in lines
    assert lines[-1] == "#EXT-X-ENDLIST"


@pytest.mark.parametrize("filename", ["../secret.ts", "a/b.ts", "segment.mp4", "seg ment.ts"])
def test_rejects_unsafe_segment_names(filename):
    assert not is_valid_segment_filename(filename)


def test_playlist_lists_only_complete_segments(preview, storage, db):
    session = create_active_session(db, storage, segments=3)
    partial = storage.resolve_segment_path(session.segment_path) / "2025-11-15T040603-segment_00003.ts"
    partial.write_bytes(b"x" * 512)

    content = preview.get_playlist_content(db, "user-1")

    assert content.count("#EXTINF") == 3
    assert "segment_00003.ts" not in content


def test_playlist_without_session(preview, db):
    with pytest.raises(NotFoundError):
        preview.get_playlist_content(db, "user-1")


def test_playlist_with_only_partial_segments(preview, storage, db):
    session = create_active_session(db, storage)
    directory = storage.resolve_segment_path(session.segment_path)
    directory.mkdir(parents=True)
    (directory / "2025-11-15T040603-segment_00000.ts").write_bytes(b"x" * 10)

    with pytest.raises(BadRequestError, match="No complete segments"):
        preview.get_playlist_content(db, "user-1")


@pytest.mark.asyncio
async def test_segment_with_traversal_name_is_rejected(preview, storage, db):
    create_active_session(db, storage, segments=1)

    with pytest.raises(BadRequestError):
        await preview.get_remuxed_segment_path(db, "user-1", "../other.ts")


@pytest.mark.asyncio
async def test_missing_segment_is_not_found(preview, storage, db):
    create_active_session(db, storage, segments=1)

    with pytest.raises(NotFoundError):
        await preview.get_remuxed_segment_path(db, "user-1", "2025-11-15T040603-segment_00042.ts")


@pytest.mark.asyncio
async def test_remux_result_is_cached(preview, storage, fake_ffmpeg, db):
    create_active_session(db, storage, segments=1)
    filename = "2025-11-15T040603-segment_00000.ts"

    first = await preview.get_remuxed_segment_path(db, "user-1", filename)
    second = await preview.get_remuxed_segment_path(db, "user-1", filename)

    assert first == second == str(storage.get_remux_cache_path("user-1") / filename)
    assert len(fake_ffmpeg.remux_calls) == 1


@pytest.mark.asyncio
async def test_small_segment_is_served_without_remux(preview, storage, fake_ffmpeg, db):
    session = create_active_session(db, storage)
    directory = storage.resolve_segment_path(session.segment_path)
    directory.mkdir(parents=True)
    original = directory / "2025-11-15T040603-segment_00000.ts"
    original.write_bytes(b"x" * 100)

    path = await preview.get_remuxed_segment_path(db, "user-1", original.name)

    assert path == str(original)
    assert fake_ffmpeg.remux_calls == []


@pytest.mark.asyncio
async def test_failed_remux_falls_back_to_original(preview, storage, fake_ffmpeg, db):
    session = create_active_session(db, storage, segments=1)
    filename = "2025-11-15T040603-segment_00000.ts"
    fake_ffmpeg.fail = True

    path = await preview.get_remuxed_segment_path(db, "user-1", filename)

    assert path == str(storage.resolve_segment_path(session.segment_path) / filename)
    assert not (storage.get_remux_cache_path("user-1") / filename).exists()


class SlowRemuxFFmpeg(FakeFFmpeg):
    """Remux que escreve o output aos poucos, como o FFmpeg real."""

    async def remux_segment(self, input_path, output_path):
        self.remux_calls.append((input_path, output_path))
        Path(output_path).write_bytes(b"x" * 100)
        await asyncio.sleep(0.05)
        shutil.copyfile(input_path, output_path)


@pytest.mark.asyncio
async def test_remux_in_progress_is_never_served(storage, db):
    session = create_active_session(db, storage, segments=1)
    filename = "2025-11-15T040603-segment_00000.ts"
    original_size = (storage.resolve_segment_path(session.segment_path) / filename).stat().st_size
    preview = PreviewService(storage, SlowRemuxFFmpeg(), segment_base_url="/replay/preview/segment")

    async def served_size(delay):
        await asyncio.sleep(delay)
        path = await preview.get_remuxed_segment_path(db, "user-1", filename)
        return Path(path).stat().st_size

    sizes = await asyncio.gather(served_size(0), served_size(0.01))

    assert sizes == [original_size, original_size]
    assert list(storage.get_remux_cache_path("user-1").glob("*.part")) == []


@pytest.mark.asyncio
async def test_failed_remux_leaves_no_partial_files(preview, storage, fake_ffmpeg, db):
    create_active_session(db, storage, segments=1)
    fake_ffmpeg.fail = True

    await preview.get_remuxed_segment_path(db, "user-1", "2025-11-15T040603-segment_00000.ts")

    assert list(storage.get_remux_cache_path("user-1").iterdir()) == []
