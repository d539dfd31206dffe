"""
Índice de segmentos - Lista e ordena os segmentos HLS (.ts) de uma sessão.
"""
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

# Formato: 2025-11-15T040603-segment_00000.ts
SEGMENT_SEQUENCE_PATTERN = re.compile(r"_(\d+)\.ts$")

# Abaixo disto o segmento ainda está a ser escrito pelo egress
MIN_COMPLETE_SEGMENT_BYTES = 10_000


@dataclass
class Segment:
    """Segmento de mídia no buffer (não persistido)."""
    filename: str
    sequence: int
    path: str


def _is_segment_file(filename: str) -> bool:
    return filename.endswith(".ts") and "segment" in filename


def list_and_sort(segment_dir: str) -> List[Segment]:
    """
    Lista os segmentos de um diretório ordenados pelo número de sequência.

    O timestamp no nome pode repetir-se entre segmentos, por isso a ordem
    vem apenas do sufixo `_<dígitos>`.

    Args:
        segment_dir: Diretório da sessão

    Returns:
        Lista de Segment (mais antigo primeiro); vazia se o diretório não existe
    """
    try:
        filenames = os.listdir(segment_dir)
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.error(f"Erro ao listar segmentos em {segment_dir}: {e}")
        return []

    segments: List[Segment] = []

    for filename in filenames:
        if not _is_segment_file(filename):
            continue

        match = SEGMENT_SEQUENCE_PATTERN.search(filename)
        if not match:
            logger.warning(f"Ignorando ficheiro com formato inesperado: {filename}")
            continue

        segments.append(Segment(
            filename=filename,
            sequence=int(match.group(1)),
            path=str(Path(segment_dir) / filename)
        ))

    segments.sort(key=lambda s: s.sequence)
    return segments


def filter_complete(segments: List[Segment], min_bytes: int = MIN_COMPLETE_SEGMENT_BYTES) -> List[Segment]:
    """Remove segmentos incompletos (pequenos demais) ou inacessíveis."""
    complete: List[Segment] = []

    for segment in segments:
        try:
            size = os.stat(segment.path).st_size
        except OSError as e:
            logger.warning(f"Não foi possível obter stat de {segment.filename}, excluído: {e}")
            continue

        if size >= min_bytes:
            complete.append(segment)
        else:
            logger.debug(f"Segmento incompleto excluído: {segment.filename} ({size} bytes)")

    return complete
