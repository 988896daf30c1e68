"""
Resposta automática da IA para mensagens recebidas.

`AutoReplyGuard.process` avalia, em ordem fixa, se a mensagem deve receber uma
resposta gerada pela IA; só chama o provedor quando todas as condições passam.
Nenhuma etapa propaga exceção: o resultado é sempre um `AutoReplyOutcome`.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import close_old_connections, transaction

from apps.ai.conf import get_default_mode, is_ai_enabled
from apps.ai.config_resolver import ConfigResolver
from apps.ai.exceptions import AutoReplyTimeout, SendFailure
from apps.ai.reply_service import ReplyService
from apps.ai.stores import HistoryReader, OutboundSender
from apps.ai.types import (
    MODE_AUTO,
    ROLE_ASSISTANT,
    ROLE_USER,
    STATUS_STUBBED,
    STATUS_SUCCESS,
    ConversationMessage,
    InboundMessageEvent,
)

logger = logging.getLogger(__name__)

MAX_HISTORY_WINDOW = 12
PREVIEW_CHARS = 80


@dataclass
class AutoReplyOutcome:
    status: str
    reason: Optional[str] = None
    sent_message_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.status}:{self.reason}" if self.reason else self.status

    @classmethod
    def skipped(cls, reason: str) -> "AutoReplyOutcome":
        return cls("skipped", reason)


class AutoReplyGuard:
    def __init__(
        self,
        reply_service: ReplyService,
        history_reader: HistoryReader,
        sender: OutboundSender,
        resolver: Optional[ConfigResolver] = None,
        *,
        timeout: Optional[float] = None,
        history_limit: Optional[int] = None,
        max_chars: Optional[int] = None,
    ):
        self.reply_service = reply_service
        self.history_reader = history_reader
        self.sender = sender
        self.resolver = resolver or reply_service.resolver
        self._timeout = timeout
        self._history_limit = history_limit
        self._max_chars = max_chars

    @property
    def timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return float(getattr(settings, "AI_AUTO_REPLY_TIMEOUT", 30.0))

    @property
    def history_limit(self) -> int:
        limit = self._history_limit or getattr(settings, "AI_AUTO_REPLY_HISTORY_LIMIT", MAX_HISTORY_WINDOW)
        return max(1, min(int(limit), MAX_HISTORY_WINDOW))

    @property
    def max_chars(self) -> int:
        return int(self._max_chars or getattr(settings, "AI_AUTO_REPLY_MAX_CHARS", 2000))

    def _skip(self, event: InboundMessageEvent, reason: str) -> AutoReplyOutcome:
        logger.info(
            "[AI AUTO-REPLY] Skip: %s (ticket=%s message=%s)",
            reason,
            event.ticket_id,
            event.message_id,
        )
        return AutoReplyOutcome.skipped(reason)

    async def process(self, event: InboundMessageEvent) -> AutoReplyOutcome:
        if not (event.content or "").strip():
            return self._skip(event, "empty_content")
        if not getattr(settings, "AI_AUTO_REPLY_ENABLED", True):
            return self._skip(event, "auto_reply_disabled")
        if not is_ai_enabled():
            return self._skip(event, "ai_disabled")
        if event.direction != "incoming":
            return self._skip(event, "outbound_message")

        try:
            already_replied = await self.history_reader.has_reply_for(
                event.tenant_id, event.ticket_id, event.message_id
            )
        except Exception as exc:
            logger.warning("[AI AUTO-REPLY] Falha ao verificar resposta anterior: %s", exc)
            already_replied = False
        if already_replied:
            return self._skip(event, "already_replied")

        try:
            mode = await self.resolver.resolve_mode(event.tenant_id, event.queue_id)
        except Exception as exc:
            logger.warning("[AI AUTO-REPLY] Falha ao resolver modo: %s", exc)
            mode = get_default_mode()
        if getattr(settings, "AI_FORCE_AUTO_REPLY", False):
            mode = MODE_AUTO
        if mode != MODE_AUTO:
            return self._skip(event, f"mode_{mode.lower()}")

        conversation = await self._build_window(event)
        if not conversation:
            return self._skip(event, "empty_history")

        try:
            result = await asyncio.wait_for(
                self.reply_service.generate_reply(
                    event.tenant_id,
                    event.queue_id,
                    event.ticket_id,
                    conversation,
                    {"autoReply": True, "triggeredByMessageId": event.message_id},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            exc = AutoReplyTimeout(f"geração excedeu {self.timeout}s")
            logger.error("[AI AUTO-REPLY] Timeout ticket=%s: %s", event.ticket_id, exc)
            return AutoReplyOutcome("timeout")
        except Exception as exc:
            logger.exception("[AI AUTO-REPLY] Falha na geração ticket=%s: %s", event.ticket_id, exc)
            return AutoReplyOutcome("failed", "generation_error")

        text = (result.message or "").strip()
        if result.status not in (STATUS_SUCCESS, STATUS_STUBBED) or not text:
            logger.info(
                "[AI AUTO-REPLY] Resposta não enviada ticket=%s status=%s",
                event.ticket_id,
                result.status,
            )
            return AutoReplyOutcome("not_sent", result.status)

        metadata = {
            "ai_generated": True,
            "ai_model": result.model,
            "ai_mode": MODE_AUTO,
            "triggered_by_message_id": event.message_id,
            "usage": result.usage,
        }
        try:
            sent = await self.sender.send(event.tenant_id, event.ticket_id, event.contact_id, text, metadata)
        except Exception as exc:
            failure = SendFailure(str(exc))
            logger.warning("[AI AUTO-REPLY] Falha ao enviar ticket=%s: %s", event.ticket_id, failure, exc_info=True)
            return AutoReplyOutcome("failed", "send_error")

        logger.info(
            "[AI AUTO-REPLY] Resposta enviada ticket=%s model=%s preview=%s",
            event.ticket_id,
            result.model,
            text[:PREVIEW_CHARS],
        )
        return AutoReplyOutcome("sent", sent_message_id=str(sent) if sent is not None else None)

    async def _build_window(self, event: InboundMessageEvent) -> List[ConversationMessage]:
        try:
            recent = await self.history_reader.recent_messages(
                event.tenant_id, event.ticket_id, self.history_limit
            )
        except Exception as exc:
            logger.warning("[AI AUTO-REPLY] Falha ao ler histórico ticket=%s: %s", event.ticket_id, exc)
            recent = []

        window = []
        trigger_seen = False
        # recent_messages vem do mais novo para o mais antigo
        for item in reversed(list(recent or [])[: self.history_limit]):
            content = (item.content or "").strip()
            if item.message_id and str(item.message_id) == str(event.message_id):
                trigger_seen = True
            if not content:
                continue
            role = ROLE_ASSISTANT if item.direction == "outgoing" else ROLE_USER
            window.append(ConversationMessage(role=role, content=content[: self.max_chars]))

        trigger_content = (event.content or "").strip()
        if not trigger_seen and trigger_content:
            window.append(ConversationMessage(role=ROLE_USER, content=trigger_content[: self.max_chars]))
        return window


def build_default_guard() -> AutoReplyGuard:
    from apps.ai.reply_service import build_reply_service
    from apps.chat.services.ai_adapters import ChatHistoryReader, ChatOutboundSender

    return AutoReplyGuard(build_reply_service(), ChatHistoryReader(), ChatOutboundSender())


def event_from_message(message) -> InboundMessageEvent:
    conversation = message.conversation
    return InboundMessageEvent(
        tenant_id=str(conversation.tenant_id),
        ticket_id=str(conversation.id),
        message_id=str(message.id),
        content=message.content or "",
        contact_id=conversation.contact_phone or None,
        queue_id=str(conversation.department_id) if conversation.department_id else None,
        direction=message.direction,
    )


async def _run_guard(event: InboundMessageEvent) -> AutoReplyOutcome:
    guard = build_default_guard()
    try:
        return await guard.process(event)
    finally:
        await guard.resolver.wait_pending_writes()


def _auto_reply_worker(event: InboundMessageEvent) -> None:
    """Worker em background: roda o guard num event loop próprio."""
    close_old_connections()
    try:
        outcome = asyncio.run(_run_guard(event))
        logger.info("[AI AUTO-REPLY] ticket=%s resultado=%s", event.ticket_id, outcome.label)
    except Exception as exc:
        logger.exception("[AI AUTO-REPLY] Worker falhou ticket=%s: %s", event.ticket_id, exc)
    finally:
        close_old_connections()


def dispatch_auto_reply_async(message) -> None:
    """
    Dispara o guard em thread daemon após o commit da mensagem recebida.
    Condições baratas (flag de rota, chave da IA) são checadas antes para
    não criar threads à toa.
    """
    if not getattr(settings, "AI_AUTO_REPLY_ENABLED", True):
        logger.debug("[AI AUTO-REPLY] Skip: auto-reply desligado")
        return
    if not is_ai_enabled():
        logger.debug("[AI AUTO-REPLY] Skip: IA desabilitada (sem OPENAI_API_KEY)")
        return
    try:
        event = event_from_message(message)
    except Exception as exc:
        logger.warning("[AI AUTO-REPLY] Skip: falha ao montar evento: %s", exc, exc_info=True)
        return

    def start():
        logger.info(
            "[AI AUTO-REPLY] Disparando worker ticket=%s message=%s tenant=%s",
            event.ticket_id,
            event.message_id,
            event.tenant_id,
        )
        thread = threading.Thread(target=_auto_reply_worker, args=(event,), daemon=True)
        thread.start()

    transaction.on_commit(start)
