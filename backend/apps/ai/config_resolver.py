"""
Resolução da configuração efetiva de IA.

Ordem: configuração da fila → configuração global do tenant → padrão do
ambiente. Falhas de armazenamento nunca interrompem o fluxo: o padrão
sintetizado é usado e a persistência é apenas uma tentativa, agendada em
background para não atrasar quem pediu a config.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from apps.ai.conf import get_default_mode, get_default_model, normalize_mode
from apps.ai.exceptions import ConfigResolutionFailure
from apps.ai.stores import ConfigStore, scope_key_for
from apps.ai.types import GLOBAL_SCOPE_KEY, EffectiveConfig

logger = logging.getLogger(__name__)


def synthesize_default(tenant_id: str, queue_id: Optional[str] = None) -> EffectiveConfig:
    return EffectiveConfig(
        tenant_id=str(tenant_id),
        queue_id=queue_id,
        scope_key=GLOBAL_SCOPE_KEY,
        model=get_default_model(),
        default_mode=get_default_mode(),
        config_id=None,
        persisted=False,
    )


def config_from_record(record: Dict[str, Any], tenant_id: str, queue_id: Optional[str]) -> EffectiveConfig:
    return EffectiveConfig(
        tenant_id=str(tenant_id),
        queue_id=queue_id,
        scope_key=record.get("scope_key") or scope_key_for(record.get("queue_id")),
        config_id=str(record["id"]) if record.get("id") is not None else None,
        model=record.get("model") or get_default_model(),
        default_mode=normalize_mode(record.get("default_mode")) or get_default_mode(),
        temperature=record.get("temperature"),
        max_output_tokens=record.get("max_output_tokens"),
        system_prompt_reply=record.get("system_prompt_reply") or None,
        system_prompt_suggest=record.get("system_prompt_suggest") or None,
        structured_output_schema=record.get("structured_output_schema") or None,
        tools=list(record.get("tools") or []),
        vector_store_enabled=bool(record.get("vector_store_enabled")),
        vector_store_ids=list(record.get("vector_store_ids") or []),
        streaming_enabled=record.get("streaming_enabled") is not False,
        confidence_threshold=record.get("confidence_threshold"),
        fallback_policy=record.get("fallback_policy"),
        persisted=True,
    )


class ConfigResolver:
    """Resolve `EffectiveConfig` para (tenant, fila)."""

    def __init__(self, store: ConfigStore):
        self.store = store
        self._pending_writes: Set[asyncio.Task] = set()

    async def _read(self, tenant_id, queue_id):
        try:
            record = None
            if queue_id:
                record = await self.store.get_config(tenant_id, queue_id)
                if record is None:
                    logger.debug("[AI CONFIG] Fila %s sem config, usando escopo global", queue_id)
            if record is None:
                record = await self.store.get_config(tenant_id, None)
            return record
        except Exception as exc:
            raise ConfigResolutionFailure(str(exc)) from exc

    async def _safe_upsert(self, tenant_id, queue_id, **fields) -> None:
        try:
            await self.store.upsert_config(tenant_id, queue_id, **fields)
        except Exception as exc:
            logger.warning(
                "[AI CONFIG] Falha ao persistir config (tenant=%s scope=%s): %s",
                tenant_id,
                fields.get("scope_key"),
                exc,
            )

    def _schedule_upsert(self, tenant_id, queue_id, **fields) -> asyncio.Task:
        task = asyncio.ensure_future(self._safe_upsert(tenant_id, queue_id, **fields))
        # o loop guarda só referência fraca da task
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return task

    async def wait_pending_writes(self) -> None:
        """Aguarda as escritas best-effort ainda em andamento."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def resolve(self, tenant_id: str, queue_id: Optional[str] = None) -> EffectiveConfig:
        try:
            record = await self._read(tenant_id, queue_id)
        except ConfigResolutionFailure as exc:
            logger.warning(
                "[AI CONFIG] Leitura falhou, usando padrão do ambiente (tenant=%s queue=%s): %s",
                tenant_id,
                queue_id,
                exc,
            )
            return synthesize_default(tenant_id, queue_id)

        if record is None:
            config = synthesize_default(tenant_id, queue_id)
            self._schedule_upsert(
                tenant_id,
                None,
                scope_key=GLOBAL_SCOPE_KEY,
                model=config.model,
                default_mode=config.default_mode,
            )
            logger.info(
                "[AI CONFIG] Config padrão sintetizada (tenant=%s mode=%s)",
                tenant_id,
                config.default_mode,
            )
            return config

        config = config_from_record(record, tenant_id, queue_id)
        missing_mode = not normalize_mode(record.get("default_mode"))
        missing_scope = not record.get("scope_key")
        if missing_mode or missing_scope:
            # Concorrência: última escrita vence, o valor vem do mesmo padrão
            record_queue = record.get("queue_id")
            self._schedule_upsert(
                tenant_id,
                record_queue,
                scope_key=scope_key_for(record_queue),
                model=config.model,
                default_mode=config.default_mode,
            )
            logger.info(
                "[AI CONFIG] Backfill de modo/escopo (tenant=%s scope=%s mode=%s)",
                tenant_id,
                config.scope_key,
                config.default_mode,
            )
        return config

    async def resolve_mode(self, tenant_id: str, queue_id: Optional[str] = None) -> str:
        config = await self.resolve(tenant_id, queue_id)
        return config.default_mode
