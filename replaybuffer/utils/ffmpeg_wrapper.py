"""
Wrapper para FFmpeg - Concatenação de segmentos HLS em clips MP4 e remux de segmentos.
"""
import asyncio
import logging
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import List, Optional
from pathlib import Path
from replaybuffer.core.config import settings

logger = logging.getLogger(__name__)

# Erros do FFmpeg típicos de ficheiros ainda não visíveis via NFS
NFS_ERROR_MARKERS = (
    "Impossible to open",
    "Invalid data found when processing input",
)


class FFmpegError(Exception):
    """Falha na execução do FFmpeg."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(f"{message}\n{stderr}" if stderr else message)
        self.stderr = stderr


@dataclass
class TrimOptions:
    """Corte preciso dentro dos segmentos concatenados."""
    start_offset: float  # segundos a saltar no primeiro segmento
    duration: float  # duração exata do output em segundos


class FFmpegWrapper:
    """Wrapper para operações FFmpeg."""

    def __init__(self, ffmpeg_path: Optional[str] = None, timeout_seconds: Optional[int] = None):
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.timeout_seconds = timeout_seconds or settings.ffmpeg_timeout_seconds
        self.retry_delay_seconds = 2.0
        self._validate_executables()

    def _validate_executables(self):
        """Valida que o FFmpeg está acessível."""
        if not Path(self.ffmpeg_path).exists():
            logger.warning(f"FFmpeg não encontrado em: {self.ffmpeg_path}")
        else:
            logger.info(f"FFmpeg encontrado: {self.ffmpeg_path}")

    @staticmethod
    def _build_concat_file_content(segment_paths: List[str]) -> str:
        """Conteúdo do ficheiro do concat demuxer: uma linha `file '...'` por segmento."""
        lines = []
        for segment_path in segment_paths:
            escaped = segment_path.replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        return "\n".join(lines)

    def _build_concat_command(
        self,
        concat_file: str,
        output_path: str,
        trim: Optional[TrimOptions] = None
    ) -> List[str]:
        """Constrói o comando de concatenação (stream copy, sem re-encoding)."""
        cmd = [
            self.ffmpeg_path, "-y", "-loglevel", "error",
            "-f", "concat",
            "-safe", "0",  # Permitir caminhos absolutos
            "-i", concat_file,
        ]

        # -ss depois do input: mais lento mas preciso ao frame
        if trim:
            cmd.extend(["-ss", str(trim.start_offset)])

        cmd.extend([
            "-c", "copy",
            "-movflags", "+faststart",
        ])

        if trim:
            cmd.extend(["-t", str(trim.duration)])

        cmd.append(output_path)
        return cmd

    async def _run(self, cmd: List[str]) -> None:
        """Executa um comando FFmpeg e lança FFmpegError se falhar."""
        logger.debug(f"Comando FFmpeg: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                creationflags=subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0
            )
        except OSError as e:
            raise FFmpegError(f"Não foi possível executar o FFmpeg ({self.ffmpeg_path}): {e}") from e

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise FFmpegError(f"Processo FFmpeg excedeu o timeout de {self.timeout_seconds}s")

        if process.returncode != 0:
            error = stderr.decode('utf-8', errors='ignore')
            raise FFmpegError(f"FFmpeg falhou (código {process.returncode})", error)

    @staticmethod
    def _refresh_file_attributes(file_paths: List[str]):
        """Força o refresh da cache de atributos NFS fazendo stat de cada ficheiro."""
        for file_path in file_paths:
            try:
                Path(file_path).stat()
            except OSError:
                # O retry trata ficheiros ainda invisíveis
                pass

    async def _run_with_retry(self, cmd: List[str], segment_paths: List[str], max_retries: int = 3):
        """Executa o FFmpeg com retry para problemas de timing NFS."""
        for attempt in range(1, max_retries + 1):
            try:
                await self._run(cmd)
                if attempt > 1:
                    logger.info(f"FFmpeg sucesso na tentativa {attempt}")
                return

            except FFmpegError as e:
                is_nfs_error = any(marker in str(e) for marker in NFS_ERROR_MARKERS)

                if not is_nfs_error or attempt >= max_retries:
                    logger.error(f"FFmpeg falhou após {attempt} tentativa(s): {e}")
                    raise

                logger.warning(
                    f"FFmpeg: problema de timing NFS (tentativa {attempt}/{max_retries}), "
                    f"novo retry em {self.retry_delay_seconds}s"
                )
                await asyncio.sleep(self.retry_delay_seconds)
                self._refresh_file_attributes(segment_paths)

    async def concatenate_segments(
        self,
        segment_paths: List[str],
        output_path: str,
        trim: Optional[TrimOptions] = None
    ) -> None:
        """
        Concatena segmentos .ts num único MP4.

        Args:
            segment_paths: Caminhos absolutos dos segmentos (por ordem)
            output_path: Caminho absoluto do MP4 de saída
            trim: Corte preciso opcional (offset inicial e duração)

        Raises:
            ValueError: Se a lista de segmentos estiver vazia
            FFmpegError: Se o FFmpeg falhar
        """
        if not segment_paths:
            raise ValueError("Nenhum segmento fornecido para concatenação")

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        temp_dir = tempfile.mkdtemp(prefix="replay-concat-")
        concat_file = str(Path(temp_dir) / "concat.txt")

        try:
            Path(concat_file).write_text(
                self._build_concat_file_content(segment_paths),
                encoding="utf-8"
            )

            logger.info(f"Concatenando {len(segment_paths)} segmentos para {output_path}")
            if trim:
                logger.info(f"Corte: saltar {trim.start_offset}s, duração {trim.duration}s")

            self._refresh_file_attributes(segment_paths)

            cmd = self._build_concat_command(concat_file, output_path, trim)
            await self._run_with_retry(cmd, segment_paths)

            logger.info(f"✓ Clip criado: {output_path}")

        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    async def remux_segment(self, input_path: str, output_path: str) -> None:
        """
        Re-empacota um segmento em MPEG-TS padrão (stream copy).

        O egress escreve MPEG-TS estilo HDMV que alguns players web não lêem.
        """
        cmd = [
            self.ffmpeg_path, "-y", "-loglevel", "error",
            "-i", input_path,
            "-c", "copy",
            "-f", "mpegts",
            output_path
        ]

        await self._run(cmd)
        logger.debug(f"Segmento remuxado: {output_path}")


# Instância global
ffmpeg_wrapper = FFmpegWrapper()
