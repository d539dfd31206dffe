"""
Stream Probe - Duração real de ficheiros de mídia usando ffprobe.
"""
import asyncio
import json
import logging
import math
from typing import Optional, Dict, Any
from replaybuffer.core.config import settings

logger = logging.getLogger(__name__)


class StreamInfo:
    """Informações de um ficheiro de mídia."""

    def __init__(self, data: Dict[str, Any]):
        self.duration: Optional[float] = None

        self._parse_data(data)

    def _parse_data(self, data: Dict[str, Any]):
        """Parse dos dados retornados pelo ffprobe."""
        try:
            duration = data.get("format", {}).get("duration")
            if duration is not None:
                self.duration = float(duration)

        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Erro ao parsear dados do ffprobe: {e}")


class StreamProbe:
    """Utilitário para probe de ficheiros usando ffprobe."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path

    async def probe(self, file_path: str, timeout: int = 30) -> Optional[StreamInfo]:
        """
        Executa probe num ficheiro.

        Returns:
            StreamInfo ou None se falhar
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            file_path
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.error(f"Erro ao executar probe: {e}")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"Probe timeout após {timeout}s")
            return None

        if process.returncode != 0:
            error = stderr.decode('utf-8', errors='ignore')
            logger.error(f"ffprobe erro: {error}")
            return None

        try:
            return StreamInfo(json.loads(stdout.decode('utf-8')))
        except json.JSONDecodeError as e:
            logger.error(f"Erro ao parsear JSON do ffprobe: {e}")
            return None

    async def get_duration(self, file_path: str) -> Optional[float]:
        """Duração real em segundos, ou None se o probe falhar ou for inválido."""
        info = await self.probe(file_path)

        if info is None or info.duration is None:
            return None

        if not math.isfinite(info.duration) or info.duration <= 0:
            logger.warning(f"Duração inválida do ffprobe para {file_path}: {info.duration}")
            return None

        return info.duration


# Instância global
stream_probe = StreamProbe()
