"""
Contratos de persistência usados pelo pipeline de IA e implementações Django.

O pipeline só conhece os protocolos abaixo; as implementações Django envolvem o
ORM com `sync_to_async` para poderem ser chamadas do código assíncrono.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from asgiref.sync import sync_to_async
from django.forms.models import model_to_dict

from apps.ai.models import AiConfig, AiRun
from apps.ai.types import GLOBAL_SCOPE_KEY, HistoryMessage

logger = logging.getLogger(__name__)

CONFIG_FIELDS = (
    "model",
    "temperature",
    "max_output_tokens",
    "system_prompt_reply",
    "system_prompt_suggest",
    "structured_output_schema",
    "tools",
    "vector_store_enabled",
    "vector_store_ids",
    "streaming_enabled",
    "default_mode",
    "confidence_threshold",
    "fallback_policy",
)

RUN_FIELDS = (
    "conversation_id",
    "config_id",
    "run_type",
    "request_payload",
    "response_payload",
    "latency_ms",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "status",
)


def scope_key_for(queue_id: Optional[str]) -> str:
    return str(queue_id) if queue_id else GLOBAL_SCOPE_KEY


class ConfigStore(Protocol):
    async def get_config(self, tenant_id: str, queue_id: Optional[str]) -> Optional[Dict[str, Any]]:
        ...

    async def upsert_config(self, tenant_id: str, queue_id: Optional[str], **fields) -> Dict[str, Any]:
        ...


class RunStore(Protocol):
    async def record_run(self, **fields) -> Any:
        ...


class HistoryReader(Protocol):
    async def recent_messages(self, tenant_id: str, ticket_id: str, limit: int) -> List[HistoryMessage]:
        """Mensagens mais recentes primeiro."""
        ...

    async def has_reply_for(self, tenant_id: str, ticket_id: str, message_id: str) -> bool:
        ...


class OutboundSender(Protocol):
    async def send(
        self,
        tenant_id: str,
        ticket_id: str,
        contact_id: Optional[str],
        content: str,
        metadata: Dict[str, Any],
    ) -> Any:
        ...


def _config_to_record(config: AiConfig) -> Dict[str, Any]:
    record = model_to_dict(config, fields=CONFIG_FIELDS)
    record["id"] = str(config.pk)
    record["tenant_id"] = str(config.tenant_id)
    record["queue_id"] = str(config.queue_id) if config.queue_id else None
    record["scope_key"] = config.scope_key
    return record


class DjangoConfigStore:
    """Leitura/escrita de `AiConfig` (único por tenant + scope_key)."""

    def _get(self, tenant_id, queue_id):
        config = AiConfig.objects.filter(
            tenant_id=tenant_id,
            scope_key=scope_key_for(queue_id),
        ).first()
        return _config_to_record(config) if config else None

    def _upsert(self, tenant_id, queue_id, fields):
        defaults = {key: value for key, value in fields.items() if key in CONFIG_FIELDS}
        defaults["queue_id"] = queue_id or None
        config, created = AiConfig.objects.update_or_create(
            tenant_id=tenant_id,
            scope_key=fields.get("scope_key") or scope_key_for(queue_id),
            defaults=defaults,
        )
        logger.info(
            "[AI CONFIG] %s tenant=%s scope=%s",
            "Criada" if created else "Atualizada",
            tenant_id,
            config.scope_key,
        )
        return _config_to_record(config)

    async def get_config(self, tenant_id, queue_id=None):
        return await sync_to_async(self._get)(tenant_id, queue_id)

    async def upsert_config(self, tenant_id, queue_id=None, **fields):
        return await sync_to_async(self._upsert)(tenant_id, queue_id, fields)


class DjangoRunStore:
    """Append-only: cada chamada cria um `AiRun` novo."""

    def _create(self, tenant_id, fields):
        data = {key: value for key, value in fields.items() if key in RUN_FIELDS}
        config_id = data.pop("config_id", None)
        run = AiRun.objects.create(
            tenant_id=tenant_id,
            config_id=int(config_id) if config_id else None,
            **data,
        )
        return run.pk

    async def record_run(self, **fields):
        tenant_id = fields.pop("tenant_id")
        return await sync_to_async(self._create)(tenant_id, fields)
