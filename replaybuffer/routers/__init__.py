"""
Módulo routers com as rotas da API.
"""
from replaybuffer.routers import replay, clips, files, webhooks, realtime

__all__ = ["replay", "clips", "files", "webhooks", "realtime"]
