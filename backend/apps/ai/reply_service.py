"""
Serviço de respostas da IA.

`stream_reply` orquestra uma execução completa: resolve a configuração, monta a
requisição, consome o stream do provedor (executando ferramentas pedidas no
meio do caminho), emite os eventos para o chamador e registra um `AiRun`.
`generate_reply` e `suggest` são as variantes sem streaming.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from apps.ai.conf import is_ai_enabled
from apps.ai.config_resolver import ConfigResolver
from apps.ai.exceptions import AiError
from apps.ai.provider import ResponsesClient
from apps.ai.request_builder import build_reply_request, build_suggest_request
from apps.ai.stores import ConfigStore, RunStore
from apps.ai.stream_consumer import StreamConsumer, extract_text
from apps.ai.tool_coordinator import ToolCoordinator
from apps.ai.tool_registry import ToolRegistry
from apps.ai.types import (
    RUN_TYPE_REPLY,
    RUN_TYPE_SUGGEST,
    STATUS_ABORTED,
    STATUS_ERROR,
    STATUS_PARTIAL,
    STATUS_STUBBED,
    STATUS_SUCCESS,
    STUB_MODEL,
    ConversationMessage,
    EffectiveConfig,
    Emitter,
    ReplyResult,
    StreamEvent,
    StreamSummary,
    SuggestionResult,
    emit_event,
)

logger = logging.getLogger(__name__)

STUB_CHUNKS = (
    "Ainda estou configurando a IA neste workspace, ",
    "mas já anotei a solicitação.",
    " Um atendente humano assume a conversa em instantes.",
)
STUB_MESSAGE = "".join(STUB_CHUNKS)

EMPTY_REPLY_MESSAGE = "Desculpe, não consegui gerar uma resposta no momento."
ERROR_MESSAGE = (
    "Desculpe, ocorreu um erro ao processar sua mensagem. "
    "Um atendente humano irá ajudá-lo em breve."
)

STUB_SUGGESTION = {
    "next_step": "Aguardando contato humano",
    "tips": [
        {
            "title": "Configurar chave da OpenAI",
            "message": "Defina OPENAI_API_KEY no ambiente para ativar as respostas da IA.",
        },
    ],
    "objections": [],
    "confidence": 0,
}


def usage_tokens(usage: Optional[Dict[str, Any]]) -> Dict[str, Optional[int]]:
    """Contagem de tokens aceitando nomes da Chat Completions e da Responses API."""
    if not isinstance(usage, dict):
        return {"prompt_tokens": None, "completion_tokens": None, "total_tokens": None}

    def pick(*keys):
        for key in keys:
            value = usage.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return int(value)
        return None

    return {
        "prompt_tokens": pick("prompt_tokens", "input_tokens"),
        "completion_tokens": pick("completion_tokens", "output_tokens"),
        "total_tokens": pick("total_tokens"),
    }


def extract_response_text(data: Dict[str, Any]) -> Optional[str]:
    """Texto de uma resposta não-streaming da Responses API (ou Chat Completions)."""
    if not isinstance(data, dict):
        return None
    try:
        text = data["output"][0]["content"][0]["text"]
        if isinstance(text, str) and text:
            return text
    except (KeyError, IndexError, TypeError):
        pass
    try:
        text = data["choices"][0]["message"]["content"]
        if isinstance(text, str) and text:
            return text
    except (KeyError, IndexError, TypeError):
        pass
    return extract_text(data.get("output_text")) or extract_text(data.get("output"))


def normalize_messages(messages: Iterable[Any]) -> List[ConversationMessage]:
    normalized = []
    for message in messages or []:
        if isinstance(message, ConversationMessage):
            normalized.append(message)
        elif isinstance(message, dict):
            normalized.append(ConversationMessage.from_dict(message))
    return normalized


async def _consume_until_abort(consumption, abort_event: Optional[asyncio.Event]) -> None:
    """
    Aguarda o consumo do stream ou o sinal de abort, o que vier primeiro.

    Com o abort, a leitura pendente é cancelada e a conexão com o provedor
    fecha ao sair do `async with` de `stream_reply`.
    """
    if abort_event is None:
        await consumption
        return
    consume_task = asyncio.ensure_future(consumption)
    abort_task = asyncio.ensure_future(abort_event.wait())
    try:
        await asyncio.wait({consume_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        abort_task.cancel()
        if not consume_task.done():
            consume_task.cancel()
            await asyncio.gather(consume_task, return_exceptions=True)
    if not consume_task.cancelled():
        consume_task.result()


class ReplyService:
    def __init__(
        self,
        config_store: ConfigStore,
        run_store: RunStore,
        registry: Optional[ToolRegistry] = None,
        provider: Optional[ResponsesClient] = None,
        resolver: Optional[ConfigResolver] = None,
    ):
        self.run_store = run_store
        self.registry = registry if registry is not None else ToolRegistry()
        self.provider = provider or ResponsesClient()
        self.resolver = resolver or ConfigResolver(config_store)

    async def _record_run(self, **fields) -> None:
        try:
            await self.run_store.record_run(**fields)
        except Exception as exc:
            logger.warning(
                "[AI REPLY] Falha ao registrar AiRun (%s/%s): %s",
                fields.get("run_type"),
                fields.get("status"),
                exc,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_reply(
        self,
        tenant_id: str,
        queue_id: Optional[str],
        conversation_id: str,
        messages: Iterable[Any],
        metadata: Optional[Dict[str, Any]] = None,
        emit: Optional[Emitter] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> ReplyResult:
        started = time.monotonic()
        messages = normalize_messages(messages)
        config = await self.resolver.resolve(tenant_id, queue_id)

        if not is_ai_enabled():
            return await self._stream_stub(tenant_id, conversation_id, config, emit, started)

        body = build_reply_request(
            config,
            messages,
            metadata,
            self.registry,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            stream=True,
        )
        coordinator = ToolCoordinator(
            self.registry,
            self.run_store,
            emit,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            queue_id=queue_id,
            config_id=config.config_id,
        )
        summary = StreamSummary(model=config.model)
        consumer = StreamConsumer(default_model=config.model)

        def aborted():
            return abort_event is not None and abort_event.is_set()

        async def on_delta(text):
            if not aborted():
                await emit_event(emit, StreamEvent.delta(text))

        logger.info(
            "[AI REPLY] Stream iniciado tenant=%s conversation=%s model=%s",
            tenant_id,
            conversation_id,
            config.model,
        )
        try:
            async with self.provider.stream(body) as chunks:
                await _consume_until_abort(
                    consumer.consume(chunks, on_delta, coordinator, should_stop=aborted, summary=summary),
                    abort_event,
                )
        except asyncio.CancelledError:
            logger.info("[AI REPLY] Stream cancelado conversation=%s", conversation_id)
            await self._record_aborted(tenant_id, conversation_id, config, body, summary, coordinator, started)
            raise
        except Exception as exc:
            if isinstance(exc, AiError):
                logger.warning("[AI REPLY] Falha do provedor conversation=%s: %s", conversation_id, exc)
            else:
                logger.exception("[AI REPLY] Erro inesperado conversation=%s", conversation_id)
            return await self._stream_error(tenant_id, conversation_id, config, body, exc, emit, started)

        if aborted():
            logger.info("[AI REPLY] Stream abortado pelo cliente conversation=%s", conversation_id)
            await self._record_aborted(tenant_id, conversation_id, config, body, summary, coordinator, started)
            return ReplyResult(
                message=summary.text,
                model=summary.model or config.model,
                usage=summary.usage,
                status=STATUS_ABORTED,
                tool_calls=[record.to_dict() for record in coordinator.records],
                mode=config.default_mode,
            )

        status = STATUS_SUCCESS if summary.completed else STATUS_PARTIAL
        tool_calls = [record.to_dict() for record in summary.tool_calls]
        model = summary.model or config.model

        await emit_event(emit, StreamEvent.done(summary.text, model, summary.usage, tool_calls, status))
        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_REPLY,
            request_payload=body,
            response_payload={
                "message": summary.text,
                "toolCalls": tool_calls,
                "usage": summary.usage,
            },
            latency_ms=int((time.monotonic() - started) * 1000),
            status=status,
            **usage_tokens(summary.usage),
        )
        logger.info(
            "[AI REPLY] Stream finalizado conversation=%s status=%s chars=%s tools=%s",
            conversation_id,
            status,
            len(summary.text),
            len(tool_calls),
        )
        return ReplyResult(
            message=summary.text,
            model=model,
            usage=summary.usage,
            status=status,
            tool_calls=tool_calls,
            mode=config.default_mode,
        )

    async def _stream_stub(self, tenant_id, conversation_id, config: EffectiveConfig, emit, started) -> ReplyResult:
        for chunk in STUB_CHUNKS:
            await emit_event(emit, StreamEvent.delta(chunk))
        await emit_event(emit, StreamEvent.done(STUB_MESSAGE, STUB_MODEL, None, [], STATUS_STUBBED))
        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_REPLY,
            request_payload={"stub": True},
            response_payload={"message": STUB_MESSAGE},
            latency_ms=int((time.monotonic() - started) * 1000),
            status=STATUS_STUBBED,
        )
        logger.info("[AI REPLY] IA desabilitada, resposta stub conversation=%s", conversation_id)
        return ReplyResult(
            message=STUB_MESSAGE,
            model=STUB_MODEL,
            usage=None,
            status=STATUS_STUBBED,
            mode=config.default_mode,
        )

    async def _stream_error(self, tenant_id, conversation_id, config, body, exc, emit, started) -> ReplyResult:
        message = str(exc) or exc.__class__.__name__
        await emit_event(emit, StreamEvent.error(message))
        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_REPLY,
            request_payload=body,
            response_payload={"error": message},
            latency_ms=int((time.monotonic() - started) * 1000),
            status=STATUS_ERROR,
        )
        return ReplyResult(
            message="",
            model=config.model,
            usage=None,
            status=STATUS_ERROR,
            mode=config.default_mode,
        )

    async def _record_aborted(self, tenant_id, conversation_id, config, body, summary, coordinator, started) -> None:
        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_REPLY,
            request_payload=body,
            response_payload={
                "message": summary.text,
                "toolCalls": [record.to_dict() for record in coordinator.records],
            },
            latency_ms=int((time.monotonic() - started) * 1000),
            status=STATUS_ABORTED,
        )

    # ------------------------------------------------------------------
    # Sem streaming
    # ------------------------------------------------------------------

    async def generate_reply(
        self,
        tenant_id: str,
        queue_id: Optional[str],
        conversation_id: str,
        messages: Iterable[Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ReplyResult:
        """Resposta completa, usada pelas automações (auto-reply)."""
        started = time.monotonic()
        messages = normalize_messages(messages)
        config = await self.resolver.resolve(tenant_id, queue_id)

        if not is_ai_enabled():
            await self._record_run(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                config_id=config.config_id,
                run_type=RUN_TYPE_REPLY,
                request_payload={"stub": True},
                response_payload={"message": STUB_MESSAGE},
                latency_ms=int((time.monotonic() - started) * 1000),
                status=STATUS_STUBBED,
            )
            return ReplyResult(
                message=STUB_MESSAGE,
                model=STUB_MODEL,
                usage=None,
                status=STATUS_STUBBED,
                mode=config.default_mode,
            )

        if config.streaming_enabled:
            return await self.stream_reply(tenant_id, queue_id, conversation_id, messages, metadata)

        body = build_reply_request(
            config,
            messages,
            metadata,
            self.registry,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            stream=False,
        )
        try:
            data = await self.provider.create(body)
        except AiError as exc:
            logger.warning("[AI REPLY] Falha ao gerar resposta conversation=%s: %s", conversation_id, exc)
            await self._record_run(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                config_id=config.config_id,
                run_type=RUN_TYPE_REPLY,
                request_payload=body,
                response_payload={"error": str(exc)},
                latency_ms=int((time.monotonic() - started) * 1000),
                status=STATUS_ERROR,
            )
            return ReplyResult(
                message=ERROR_MESSAGE,
                model=STATUS_ERROR,
                usage=None,
                status=STATUS_ERROR,
                mode=config.default_mode,
            )

        message = extract_response_text(data) or EMPTY_REPLY_MESSAGE
        usage = data.get("usage")
        model = data.get("model") or config.model
        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_REPLY,
            request_payload=body,
            response_payload={"message": message, "usage": usage},
            latency_ms=int((time.monotonic() - started) * 1000),
            status=STATUS_SUCCESS,
            **usage_tokens(usage),
        )
        logger.info(
            "[AI REPLY] Resposta gerada conversation=%s model=%s chars=%s",
            conversation_id,
            model,
            len(message),
        )
        return ReplyResult(
            message=message,
            model=model,
            usage=usage,
            status=STATUS_SUCCESS,
            mode=config.default_mode,
        )

    async def suggest(
        self,
        tenant_id: str,
        queue_id: Optional[str],
        conversation_id: str,
        goal: Optional[str],
        context_messages: Iterable[Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SuggestionResult:
        """Sugestão estruturada para o atendente (modo copiloto)."""
        started = time.monotonic()
        context_messages = normalize_messages(context_messages)
        config = await self.resolver.resolve(tenant_id, queue_id)

        if not is_ai_enabled():
            await self._record_run(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                config_id=config.config_id,
                run_type=RUN_TYPE_SUGGEST,
                request_payload={"goal": goal, "stub": True},
                response_payload=STUB_SUGGESTION,
                latency_ms=int((time.monotonic() - started) * 1000),
                status=STATUS_STUBBED,
            )
            return SuggestionResult(
                payload=dict(STUB_SUGGESTION),
                confidence=0,
                model=STUB_MODEL,
                usage=None,
                status=STATUS_STUBBED,
            )

        body = build_suggest_request(
            config,
            context_messages,
            metadata,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            goal=goal,
        )
        try:
            data = await self.provider.create(body)
        except AiError as exc:
            logger.error("[AI SUGGEST] Falha ao gerar sugestão conversation=%s: %s", conversation_id, exc)
            await self._record_run(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                config_id=config.config_id,
                run_type=RUN_TYPE_SUGGEST,
                request_payload=body,
                response_payload={"error": str(exc)},
                latency_ms=int((time.monotonic() - started) * 1000),
                status=STATUS_ERROR,
            )
            raise

        output_text = extract_response_text(data) or "{}"
        try:
            payload = json.loads(output_text)
        except ValueError:
            logger.warning("[AI SUGGEST] Saída estruturada inválida, retornando texto bruto")
            payload = {"raw": output_text}
        if not isinstance(payload, dict):
            payload = {"raw": output_text}

        usage = data.get("usage")
        confidence = payload.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = None

        await self._record_run(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            config_id=config.config_id,
            run_type=RUN_TYPE_SUGGEST,
            request_payload=body,
            response_payload=data,
            latency_ms=int((time.monotonic() - started) * 1000),
            status=STATUS_SUCCESS,
            **usage_tokens(usage),
        )
        return SuggestionResult(
            payload=payload,
            confidence=confidence,
            model=data.get("model") or config.model,
            usage=usage,
        )


def build_reply_service(provider: Optional[ResponsesClient] = None) -> ReplyService:
    """ReplyService com os stores Django e o registro de ferramentas do app."""
    from django.apps import apps as django_apps

    from apps.ai.stores import DjangoConfigStore, DjangoRunStore

    registry = django_apps.get_app_config("ai").tool_registry
    return ReplyService(DjangoConfigStore(), DjangoRunStore(), registry=registry, provider=provider)
