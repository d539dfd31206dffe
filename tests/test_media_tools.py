"""
Testes dos wrappers de FFmpeg e ffprobe.
"""
import math

import pytest

from replaybuffer.utils.ffmpeg_wrapper import FFmpegError, FFmpegWrapper, TrimOptions
from replaybuffer.utils.stream_probe import StreamInfo, StreamProbe


def test_concat_command_places_trim_after_input():
    wrapper = FFmpegWrapper(ffmpeg_path="ffmpeg")

    cmd = wrapper._build_concat_command("/tmp/concat.txt", "/clips/out.mp4", TrimOptions(3, 25))

    assert cmd.index("-ss") > cmd.index("-i")
    assert cmd[cmd.index("-t") + 1] == "25"
    assert cmd[-1] == "/clips/out.mp4"


def test_concat_file_escapes_quotes():
    content = FFmpegWrapper._build_concat_file_content(["/a/it's.ts", "/a/b.ts"])

    assert content.split("\n") == ["file '/a/it'\\''s.ts'", "file '/a/b.ts'"]


@pytest.mark.asyncio
async def test_missing_ffmpeg_binary_raises_ffmpeg_error(tmp_path):
    wrapper = FFmpegWrapper(ffmpeg_path=str(tmp_path / "missing-ffmpeg"))

    with pytest.raises(FFmpegError, match="Não foi possível executar o FFmpeg"):
        await wrapper.remux_segment(str(tmp_path / "in.ts"), str(tmp_path / "out.ts"))


def test_stream_info_reads_format_duration():
    assert StreamInfo({"format": {"duration": "12.5"}}).duration == 12.5


@pytest.mark.parametrize("data", [{}, {"format": {}}, {"format": {"duration": "N/A"}}, {"format": None}])
def test_stream_info_without_usable_duration(data):
    assert StreamInfo(data).duration is None


class StaticProbe(StreamProbe):
    """Probe que devolve um resultado fixo sem invocar o ffprobe."""

    def __init__(self, info):
        super().__init__(ffprobe_path="ffprobe")
        self.info = info

    async def probe(self, file_path, timeout=30):
        return self.info


@pytest.mark.asyncio
@pytest.mark.parametrize("duration", ["0", "-1", "nan", "inf"])
async def test_get_duration_rejects_invalid_values(duration):
    probe = StaticProbe(StreamInfo({"format": {"duration": duration}}))

    assert await probe.get_duration("/clips/out.mp4") is None


@pytest.mark.asyncio
async def test_get_duration_returns_probed_value():
    probe = StaticProbe(StreamInfo({"format": {"duration": "29.6"}}))

    assert math.isclose(await probe.get_duration("/clips/out.mp4"), 29.6)


@pytest.mark.asyncio
async def test_missing_ffprobe_binary_gives_no_duration(tmp_path):
    probe = StreamProbe(ffprobe_path=str(tmp_path / "missing-ffprobe"))

    assert await probe.get_duration(str(tmp_path / "out.mp4")) is None
