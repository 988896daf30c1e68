"""
Ferramentas registradas por padrão na inicialização do app.
"""

import logging
from typing import Any, Dict

from asgiref.sync import sync_to_async

from apps.ai.tool_registry import ToolRegistry
from apps.ai.types import ToolDefinition

logger = logging.getLogger(__name__)

HISTORY_MAX_LIMIT = 20
HISTORY_DEFAULT_LIMIT = 10


def _load_history(tenant_id, conversation_id, limit):
    from apps.chat.models import Message

    messages = list(
        Message.objects.filter(
            conversation_id=conversation_id,
            conversation__tenant_id=tenant_id,
            is_internal=False,
        ).order_by("-created_at")[:limit]
    )
    messages.reverse()
    return [
        {
            "direction": msg.direction,
            "content": msg.content,
            "created_at": msg.created_at.isoformat(),
        }
        for msg in messages
    ]


async def conversation_history(args: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    """Últimas mensagens da conversa atual, restritas ao tenant do contexto."""
    tenant_id = context.get("tenant_id")
    conversation_id = context.get("conversation_id")
    if not tenant_id or not conversation_id:
        raise ValueError("conversation_history requires tenant_id and conversation_id")
    try:
        limit = int(args.get("limit") or HISTORY_DEFAULT_LIMIT)
    except (TypeError, ValueError):
        limit = HISTORY_DEFAULT_LIMIT
    limit = max(1, min(limit, HISTORY_MAX_LIMIT))
    messages = await sync_to_async(_load_history)(tenant_id, conversation_id, limit)
    return {"messages": messages}


CONVERSATION_HISTORY_TOOL = ToolDefinition(
    name="conversation_history",
    description="Retorna as mensagens mais recentes da conversa atual.",
    json_schema={
        "type": "object",
        "properties": {
            "limit": {
                "type": "integer",
                "minimum": 1,
                "maximum": HISTORY_MAX_LIMIT,
                "description": "Quantidade de mensagens (máximo 20).",
            },
        },
        "additionalProperties": False,
    },
    handler=conversation_history,
)


def register_builtin_tools(registry: ToolRegistry) -> ToolRegistry:
    registry.register(CONVERSATION_HISTORY_TOOL)
    logger.debug("[AI TOOLS] Ferramentas padrão registradas: %s", [t.name for t in registry.list()])
    return registry
