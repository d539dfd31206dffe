"""
Storage Manager - Gestão de storage local para segmentos, clips e cache de remux.
"""
import hashlib
import shutil
import logging
from pathlib import Path
from typing import Optional
from datetime import datetime
import aiofiles
import asyncio
from replaybuffer.core.config import settings

logger = logging.getLogger(__name__)

CHECKSUM_CHUNK_SIZE = 1024 * 1024


class StorageManager:
    """Gerenciador de storage local."""

    def __init__(
        self,
        segments_path: Optional[str] = None,
        clips_path: Optional[str] = None,
        remux_cache_path: Optional[str] = None,
        temp_path: Optional[str] = None
    ):
        self.segments_path = Path(segments_path or settings.replay_segments_path)
        # Caminho absoluto para compatibilidade com o FFmpeg
        self.clips_path = Path(clips_path or settings.replay_clips_path).resolve()
        self.remux_cache_path = Path(remux_cache_path or settings.replay_remux_cache_path)
        self.temp_path = Path(temp_path or settings.replay_temp_path)

    def ensure_structure(self):
        """Garante que a estrutura de diretórios existe."""
        directories = [
            self.segments_path,
            self.clips_path,
            self.remux_cache_path,
            self.temp_path
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Diretório garantido: {directory}")

    def resolve_segment_path(self, relative_path: str) -> Path:
        """Resolve o caminho relativo de uma sessão para o caminho absoluto."""
        return self.segments_path / relative_path

    def segment_directory_exists(self, relative_path: str) -> bool:
        """Verifica se o diretório de segmentos de uma sessão existe."""
        return self.resolve_segment_path(relative_path).is_dir()

    async def delete_segment_directory(self, relative_path: str) -> bool:
        """Remove o diretório de segmentos de uma sessão."""
        return await self.delete_directory(str(self.resolve_segment_path(relative_path)))

    def get_user_clips_path(self, user_id: str) -> Path:
        """Retorna o caminho para os clips de um utilizador."""
        path = self.clips_path / user_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_remux_cache_path(self, user_id: str) -> Path:
        """Retorna o diretório de cache de segmentos remuxados de um utilizador."""
        path = self.remux_cache_path / user_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    async def delete_remux_cache(self, user_id: str) -> bool:
        """Remove a cache de segmentos remuxados de um utilizador."""
        return await self.delete_directory(str(self.remux_cache_path / user_id))

    async def prune_remux_cache(self, cutoff: datetime) -> int:
        """
        Remove da cache de remux os ficheiros modificados antes de `cutoff`.

        Returns:
            Número de ficheiros removidos
        """
        if not self.remux_cache_path.is_dir():
            return 0

        deleted = 0
        for user_dir in self.remux_cache_path.iterdir():
            if user_dir.is_dir():
                deleted += await self.delete_old_files(str(user_dir), cutoff)

        return deleted

    def get_temp_path(self) -> Path:
        """Retorna o caminho temporário."""
        self.temp_path.mkdir(parents=True, exist_ok=True)
        return self.temp_path

    @staticmethod
    def file_exists(file_path: str) -> bool:
        """Verifica se um ficheiro existe."""
        return Path(file_path).is_file()

    async def delete_file(self, file_path: str) -> bool:
        """
        Remove um ficheiro.

        Args:
            file_path: Caminho do ficheiro

        Returns:
            True se sucesso
        """
        try:
            path = Path(file_path)
            if path.exists():
                await asyncio.to_thread(path.unlink)
                logger.info(f"Ficheiro removido: {file_path}")
                return True
            return False

        except Exception as e:
            logger.error(f"Erro ao remover ficheiro: {e}")
            return False

    async def delete_directory(self, dir_path: str) -> bool:
        """
        Remove um diretório recursivamente.

        Args:
            dir_path: Caminho do diretório

        Returns:
            True se removido, False se não existia ou se falhou
        """
        try:
            path = Path(dir_path)
            if path.exists() and path.is_dir():
                await asyncio.to_thread(shutil.rmtree, str(path))
                logger.info(f"Diretório removido: {dir_path}")
                return True
            return False

        except Exception as e:
            logger.error(f"Erro ao remover diretório: {e}")
            return False

    async def delete_old_files(self, directory: str, cutoff: datetime) -> int:
        """
        Remove ficheiros de um diretório modificados antes de `cutoff`.

        A playlist do egress é reescrita continuamente, por isso o seu
        mtime fica sempre recente e não é apagada.

        Returns:
            Número de ficheiros removidos
        """
        path = Path(directory)
        if not path.is_dir():
            return 0

        cutoff_ts = cutoff.timestamp()
        deleted = 0

        for file_path in path.iterdir():
            try:
                if file_path.is_file() and file_path.stat().st_mtime < cutoff_ts:
                    await asyncio.to_thread(file_path.unlink)
                    deleted += 1
            except FileNotFoundError:
                continue

        return deleted

    def get_file_info(self, file_path: str) -> Optional[dict]:
        """
        Obtém informações sobre um ficheiro.

        Returns:
            Dict com size, created_at, modified_at ou None
        """
        try:
            path = Path(file_path)
            if path.exists() and path.is_file():
                stat = path.stat()
                return {
                    "size_bytes": stat.st_size,
                    "created_at": datetime.fromtimestamp(stat.st_ctime),
                    "modified_at": datetime.fromtimestamp(stat.st_mtime),
                    "path": str(path)
                }
            return None

        except Exception as e:
            logger.error(f"Erro ao obter info do ficheiro: {e}")
            return None

    async def compute_checksum(self, file_path: str) -> str:
        """Calcula o SHA-256 (hex) de um ficheiro."""
        digest = hashlib.sha256()

        async with aiofiles.open(file_path, 'rb') as f:
            while True:
                chunk = await f.read(CHECKSUM_CHUNK_SIZE)
                if not chunk:
                    break
                digest.update(chunk)

        return digest.hexdigest()


# Instância global
storage_manager = StorageManager()
