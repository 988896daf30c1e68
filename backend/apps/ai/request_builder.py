"""
Montagem do corpo de requisição para a Responses API.
"""

from typing import Any, Dict, Iterable, List, Optional

from apps.ai.tool_registry import ToolRegistry
from apps.ai.types import ROLE_ASSISTANT, ROLE_SYSTEM, ConversationMessage, EffectiveConfig

DEFAULT_SUGGESTION_SCHEMA = {
    "type": "object",
    "properties": {
        "next_step": {"type": "string"},
        "tips": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "message": {"type": "string"},
                },
                "required": ["title", "message"],
                "additionalProperties": False,
            },
        },
        "objections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "label": {"type": "string"},
                    "reply": {"type": "string"},
                },
                "required": ["label", "reply"],
                "additionalProperties": False,
            },
        },
        "confidence": {"type": "number"},
    },
    "required": ["next_step", "tips", "objections", "confidence"],
    "additionalProperties": False,
}

DEFAULT_SUGGEST_PROMPT = (
    "Você é um copiloto de atendimento. Analise a conversa e sugira o próximo passo, "
    "dicas para o atendente e respostas para possíveis objeções."
)


def content_type_for(role: str) -> str:
    return "output_text" if role == ROLE_ASSISTANT else "input_text"


def build_input(messages: Iterable[ConversationMessage], system_prompt: Optional[str] = None) -> List[Dict[str, Any]]:
    items = []
    if system_prompt:
        items.append({
            "role": ROLE_SYSTEM,
            "content": [{"type": "input_text", "text": system_prompt}],
        })
    for message in messages:
        items.append({
            "role": message.role,
            "content": [{"type": content_type_for(message.role), "text": message.content}],
        })
    return items


def _tool_name(tool) -> Optional[str]:
    if not isinstance(tool, dict):
        return None
    function = tool.get("function")
    if isinstance(function, dict) and function.get("name"):
        return function["name"]
    return tool.get("name")


def merge_tools(config_tools: Iterable[Dict[str, Any]], registry_tools: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Une as ferramentas da config com as do registro, sem nomes repetidos.

    Em colisão de nome a ferramenta declarada na config vence. Ferramentas sem
    nome identificável são mantidas.
    """
    seen = set()
    merged = []
    for tool in list(config_tools or []) + list(registry_tools or []):
        name = _tool_name(tool)
        if name:
            if name in seen:
                continue
            seen.add(name)
        merged.append(tool)
    return merged


def sanitize_metadata(raw: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Mantém apenas valores escalares, convertidos para string."""
    if not isinstance(raw, dict):
        return {}
    clean = {}
    for key, value in raw.items():
        if value is None or isinstance(value, (dict, list, tuple, set)):
            continue
        if isinstance(value, bool):
            clean[str(key)] = "true" if value else "false"
        else:
            clean[str(key)] = value if isinstance(value, str) else str(value)
    return clean


def _request_metadata(metadata, tenant_id, conversation_id, queue_id) -> Dict[str, str]:
    data = sanitize_metadata(metadata)
    data["tenantId"] = str(tenant_id)
    data["conversationId"] = str(conversation_id)
    if queue_id:
        data["queueId"] = str(queue_id)
    return data


def _apply_sampling(body: Dict[str, Any], config: EffectiveConfig) -> None:
    if config.temperature is not None:
        body["temperature"] = config.temperature
    if config.max_output_tokens is not None:
        body["max_output_tokens"] = config.max_output_tokens


def build_reply_request(
    config: EffectiveConfig,
    messages: Iterable[ConversationMessage],
    metadata: Optional[Dict[str, Any]],
    registry: Optional[ToolRegistry],
    *,
    tenant_id: str,
    conversation_id: str,
    stream: bool = True,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": config.model,
        "input": build_input(messages, config.system_prompt_reply),
        "metadata": _request_metadata(metadata, tenant_id, conversation_id, config.queue_id),
    }
    _apply_sampling(body, config)

    tools = merge_tools(config.tools, registry.as_provider_payload() if registry else [])
    if tools:
        body["tools"] = tools

    if config.vector_store_enabled and config.vector_store_ids:
        body.setdefault("tools", []).append({
            "type": "file_search",
            "vector_store_ids": list(config.vector_store_ids),
        })

    if stream:
        body["stream"] = True
        body["stream_options"] = {"include_usage": True}
    return body


def build_suggest_request(
    config: EffectiveConfig,
    messages: Iterable[ConversationMessage],
    metadata: Optional[Dict[str, Any]],
    *,
    tenant_id: str,
    conversation_id: str,
    goal: Optional[str] = None,
) -> Dict[str, Any]:
    """Requisição não-streaming com saída estruturada (JSON schema)."""
    items = build_input(messages, config.system_prompt_suggest or DEFAULT_SUGGEST_PROMPT)
    if goal:
        items.append({"role": "user", "content": [{"type": "input_text", "text": goal}]})
    request_metadata = _request_metadata(metadata, tenant_id, conversation_id, config.queue_id)
    request_metadata["mode"] = config.default_mode
    body: Dict[str, Any] = {
        "model": config.model,
        "input": items,
        "metadata": request_metadata,
        "text": {
            "format": {
                "type": "json_schema",
                "name": "crm_suggestion",
                "schema": config.structured_output_schema or DEFAULT_SUGGESTION_SCHEMA,
                "strict": True,
            },
        },
    }
    _apply_sampling(body, config)
    return body
