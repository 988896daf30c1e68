"""
Adaptadores do chat para o pipeline de IA: leitura de histórico e envio de
mensagens geradas pela IA.
"""
import logging
from typing import Any, Dict, List, Optional

from asgiref.sync import sync_to_async

from apps.ai.conf import get_sender_name
from apps.ai.types import HistoryMessage
from apps.chat.models import Conversation, Message

logger = logging.getLogger(__name__)


class ChatHistoryReader:
    """Histórico de uma conversa (ticket), sempre restrito ao tenant."""

    def _recent(self, tenant_id, ticket_id, limit) -> List[HistoryMessage]:
        messages = Message.objects.filter(
            conversation_id=ticket_id,
            conversation__tenant_id=tenant_id,
            is_internal=False,
        ).order_by('-created_at')[:limit]
        return [
            HistoryMessage(
                direction=msg.direction,
                content=msg.content or '',
                message_id=str(msg.id),
                created_at=msg.created_at.isoformat(),
            )
            for msg in messages
        ]

    def _has_reply(self, tenant_id, ticket_id, message_id) -> bool:
        return Message.objects.filter(
            conversation_id=ticket_id,
            conversation__tenant_id=tenant_id,
            direction='outgoing',
            metadata__triggered_by_message_id=str(message_id),
        ).exists()

    async def recent_messages(self, tenant_id: str, ticket_id: str, limit: int) -> List[HistoryMessage]:
        """Mensagens mais recentes primeiro."""
        return await sync_to_async(self._recent)(tenant_id, ticket_id, limit)

    async def has_reply_for(self, tenant_id: str, ticket_id: str, message_id: str) -> bool:
        return await sync_to_async(self._has_reply)(tenant_id, ticket_id, message_id)


class ChatOutboundSender:
    """
    Cria a mensagem de saída (status `pending`) na conversa.
    A entrega ao WhatsApp fica a cargo do worker de envio do canal.
    """

    def _create(self, tenant_id, ticket_id, contact_id, content, metadata) -> str:
        conversation = Conversation.objects.get(id=ticket_id, tenant_id=tenant_id)
        if contact_id and conversation.contact_phone and contact_id != conversation.contact_phone:
            logger.warning(
                "[AI SEND] Contato divergente ticket=%s esperado=%s recebido=%s",
                ticket_id,
                conversation.contact_phone,
                contact_id,
            )
        message = Message.objects.create(
            conversation=conversation,
            sender=None,
            sender_name=get_sender_name(),
            content=content,
            direction='outgoing',
            status='pending',
            is_internal=False,
            metadata=dict(metadata or {}),
        )
        logger.info("[AI SEND] Mensagem %s enfileirada ticket=%s", message.id, ticket_id)
        return str(message.id)

    async def send(
        self,
        tenant_id: str,
        ticket_id: str,
        contact_id: Optional[str],
        content: str,
        metadata: Dict[str, Any],
    ) -> str:
        return await sync_to_async(self._create)(tenant_id, ticket_id, contact_id, content, metadata)
