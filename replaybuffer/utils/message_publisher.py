"""
Publicação de mensagens com clips no serviço de chat (externo).
"""
import logging
from typing import Optional, Dict, Any
import aiohttp
from replaybuffer.core.config import settings

logger = logging.getLogger(__name__)


class MessagePublishError(Exception):
    """Falha ao publicar a mensagem no serviço de chat."""


class MessagePublisher:
    """Cliente HTTP do serviço de mensagens."""

    def __init__(self, api_url: Optional[str] = None, api_token: Optional[str] = None, timeout: int = 10):
        self.api_url = api_url or settings.messages_api_url
        self.api_token = api_token or settings.messages_api_token
        self.timeout = timeout

    async def publish_clip(
        self,
        author_id: str,
        destination: str,
        target_id: str,
        text: str,
        file_id: str
    ) -> Dict[str, Any]:
        """
        Cria uma mensagem com o clip em anexo num canal ou DM.

        Args:
            author_id: Autor da mensagem (dono do clip)
            destination: "channel" ou "dm"
            target_id: ID do canal ou do grupo de DM
            text: Texto da mensagem
            file_id: ID do ficheiro anexado

        Returns:
            Mensagem criada (deve conter "id")

        Raises:
            MessagePublishError: Se o serviço não estiver configurado ou falhar
        """
        if not self.api_url:
            raise MessagePublishError("MESSAGES_API_URL não configurado")

        payload = {
            "authorId": author_id,
            "channelId": target_id if destination == "channel" else None,
            "directMessageGroupId": target_id if destination == "dm" else None,
            "spans": [{"type": "PLAINTEXT", "text": text}],
            "attachments": [file_id],
        }
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.api_url, json=payload, headers=headers) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise MessagePublishError(f"Serviço de mensagens respondeu {response.status}: {body}")
                    message = await response.json()

        except aiohttp.ClientError as e:
            raise MessagePublishError(f"Erro ao contactar serviço de mensagens: {e}") from e

        if "id" not in message:
            raise MessagePublishError("Resposta do serviço de mensagens sem ID")

        logger.info(f"Mensagem {message['id']} criada em {destination} {target_id}")
        return message


# Instância global
message_publisher = MessagePublisher()
