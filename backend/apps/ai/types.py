"""
Tipos compartilhados pelo pipeline de respostas da IA.

Eventos emitidos para o chamador (SSE ou coletor interno), configuração efetiva,
ferramentas e resultados de execução.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


GLOBAL_SCOPE_KEY = "__global__"

MODE_AUTO = "IA_AUTO"
MODE_COPILOT = "COPILOTO"
MODE_HUMAN = "HUMANO"
AI_MODES = (MODE_AUTO, MODE_COPILOT, MODE_HUMAN)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
ROLES = (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM)

RUN_TYPE_REPLY = "reply"
RUN_TYPE_SUGGEST = "suggest"
RUN_TYPE_TOOL_CALL = "tool_call"

STATUS_SUCCESS = "success"
STATUS_STUBBED = "stubbed"
STATUS_PARTIAL = "partial"
STATUS_ABORTED = "aborted"
STATUS_ERROR = "error"

STUB_MODEL = "stub"

EVENT_DELTA = "delta"
EVENT_TOOL_CALL = "tool_call"
EVENT_DONE = "done"
EVENT_ERROR = "error"


@dataclass
class ConversationMessage:
    role: str
    content: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        return cls(role=data.get("role") or ROLE_USER, content=data.get("content") or "")


@dataclass
class EffectiveConfig:
    """Configuração de IA já resolvida (fila → global → padrão do ambiente)."""

    tenant_id: str
    model: str
    default_mode: str
    queue_id: Optional[str] = None
    scope_key: str = GLOBAL_SCOPE_KEY
    config_id: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    system_prompt_reply: Optional[str] = None
    system_prompt_suggest: Optional[str] = None
    structured_output_schema: Optional[Dict[str, Any]] = None
    tools: List[Dict[str, Any]] = field(default_factory=list)
    vector_store_enabled: bool = False
    vector_store_ids: List[str] = field(default_factory=list)
    streaming_enabled: bool = True
    confidence_threshold: Optional[float] = None
    fallback_policy: Optional[str] = None
    persisted: bool = False


@dataclass
class ToolDefinition:
    name: str
    description: str = ""
    json_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: Optional[Callable[[Dict[str, Any], Dict[str, Any]], Union[Any, Awaitable[Any]]]] = None


@dataclass
class ToolExecutionResult:
    ok: bool
    result: Any = None
    error: Optional[str] = None


@dataclass
class ToolCallRecord:
    """Registro de uma chamada de ferramenta executada durante o stream."""

    id: str
    name: str
    arguments: Dict[str, Any]
    status: str
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.error is None:
            data.pop("error")
        return data


@dataclass
class StreamEvent:
    kind: str
    data: Dict[str, Any]

    @classmethod
    def delta(cls, text: str) -> "StreamEvent":
        return cls(EVENT_DELTA, {"delta": text})

    @classmethod
    def tool_call(cls, payload: Dict[str, Any]) -> "StreamEvent":
        return cls(EVENT_TOOL_CALL, payload)

    @classmethod
    def done(cls, message: str, model: str, usage: Optional[Dict[str, Any]], tool_calls: List[Dict[str, Any]], status: str) -> "StreamEvent":
        return cls(EVENT_DONE, {
            "message": message,
            "model": model,
            "usage": usage,
            "toolCalls": tool_calls,
            "status": status,
        })

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(EVENT_ERROR, {"message": message})


Emitter = Callable[[StreamEvent], Union[None, Awaitable[None]]]


@dataclass
class StreamSummary:
    text: str = ""
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    completed: bool = False
    tool_calls: List[ToolCallRecord] = field(default_factory=list)


@dataclass
class ReplyResult:
    message: str
    model: str
    usage: Optional[Dict[str, Any]]
    status: str
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    mode: Optional[str] = None


@dataclass
class SuggestionResult:
    payload: Dict[str, Any]
    confidence: Optional[float]
    model: str
    usage: Optional[Dict[str, Any]]
    status: str = STATUS_SUCCESS


@dataclass
class HistoryMessage:
    direction: str
    content: str
    message_id: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class InboundMessageEvent:
    tenant_id: str
    ticket_id: str
    message_id: str
    content: str
    contact_id: Optional[str] = None
    queue_id: Optional[str] = None
    direction: str = "incoming"


async def emit_event(emit: Optional[Emitter], event: StreamEvent) -> None:
    """Entrega o evento ao emissor (síncrono ou assíncrono)."""
    if emit is None:
        return
    result = emit(event)
    if result is not None and hasattr(result, "__await__"):
        await result
