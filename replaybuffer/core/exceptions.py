"""
Exceções de domínio do buffer de replay.

Os serviços lançam estas exceções; os handlers registados em main.py
convertem-nas em respostas HTTP (400/404).
"""


class ReplayBufferError(Exception):
    """Erro base do buffer de replay."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ReplayBufferError):
    """Pedido inválido ou falha recuperável (o cliente pode tentar de novo)."""

    status_code = 400


class NotFoundError(ReplayBufferError):
    """Recurso inexistente (sessão ativa, segmento, clip)."""

    status_code = 404
