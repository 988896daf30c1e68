"""
Leitura e atualização da configuração de IA exposta pela API.

A API trabalha em camelCase; os stores em snake_case (`CONFIG_FIELDS`).
"""

import logging
from typing import Any, Dict, Optional

from apps.ai.conf import get_default_mode, get_default_model, is_ai_enabled, normalize_mode
from apps.ai.request_builder import DEFAULT_SUGGESTION_SCHEMA
from apps.ai.stores import CONFIG_FIELDS, ConfigStore, scope_key_for

logger = logging.getLogger(__name__)

API_FIELDS = {
    "model": "model",
    "temperature": "temperature",
    "max_output_tokens": "maxOutputTokens",
    "system_prompt_reply": "systemPromptReply",
    "system_prompt_suggest": "systemPromptSuggest",
    "structured_output_schema": "structuredOutputSchema",
    "tools": "tools",
    "vector_store_enabled": "vectorStoreEnabled",
    "vector_store_ids": "vectorStoreIds",
    "streaming_enabled": "streamingEnabled",
    "default_mode": "defaultMode",
    "confidence_threshold": "confidenceThreshold",
    "fallback_policy": "fallbackPolicy",
}

DEFAULT_TEMPERATURE = 0.3


def build_config_upsert_payload(existing: Optional[Dict[str, Any]], overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Mescla `overrides` sobre o registro existente (ambos em snake_case).

    Valores None em `overrides` mantêm o que já estava salvo. Campos
    obrigatórios do modelo recebem o padrão do ambiente.
    """
    existing = existing or {}
    overrides = overrides or {}
    payload = {}
    for field in CONFIG_FIELDS:
        value = overrides.get(field)
        if value is None:
            value = existing.get(field)
        payload[field] = value

    payload["model"] = payload["model"] or get_default_model()
    payload["default_mode"] = normalize_mode(payload["default_mode"]) or get_default_mode()
    payload["tools"] = list(payload["tools"] or [])
    payload["vector_store_ids"] = list(payload["vector_store_ids"] or [])
    payload["vector_store_enabled"] = bool(payload["vector_store_enabled"])
    payload["streaming_enabled"] = payload["streaming_enabled"] is not False
    return payload


def serialize_config(record: Dict[str, Any]) -> Dict[str, Any]:
    data = {
        "id": record.get("id"),
        "tenantId": record.get("tenant_id"),
        "queueId": record.get("queue_id"),
        "scopeKey": record.get("scope_key"),
    }
    for field, api_name in API_FIELDS.items():
        data[api_name] = record.get(field)
    data["defaultMode"] = normalize_mode(record.get("default_mode")) or get_default_mode()
    data["aiEnabled"] = is_ai_enabled()
    return data


def default_settings(tenant_id: str, queue_id: Optional[str]) -> Dict[str, Any]:
    """Documento retornado quando nada está persistido para o tenant."""
    return {
        "id": None,
        "tenantId": str(tenant_id),
        "queueId": queue_id,
        "scopeKey": scope_key_for(queue_id),
        "model": get_default_model(),
        "temperature": DEFAULT_TEMPERATURE,
        "maxOutputTokens": None,
        "systemPromptReply": None,
        "systemPromptSuggest": None,
        "structuredOutputSchema": DEFAULT_SUGGESTION_SCHEMA,
        "tools": [],
        "vectorStoreEnabled": False,
        "vectorStoreIds": [],
        "streamingEnabled": True,
        "defaultMode": get_default_mode(),
        "confidenceThreshold": None,
        "fallbackPolicy": None,
        "aiEnabled": is_ai_enabled(),
    }


async def _fetch_with_fallback(store: ConfigStore, tenant_id, queue_id):
    record = await store.get_config(tenant_id, queue_id)
    if record is None and queue_id:
        record = await store.get_config(tenant_id, None)
        if record is not None:
            logger.debug("[AI CONFIG] Fila %s sem config, retornando global", queue_id)
    return record


async def get_config_settings(store: ConfigStore, tenant_id: str, queue_id: Optional[str] = None) -> Dict[str, Any]:
    record = await _fetch_with_fallback(store, tenant_id, queue_id)
    if record is None:
        return default_settings(tenant_id, queue_id)
    return serialize_config(record)


async def update_config_settings(
    store: ConfigStore,
    tenant_id: str,
    queue_id: Optional[str],
    overrides: Dict[str, Any],
) -> Dict[str, Any]:
    """Upsert no escopo exato (fila ou global), sem herdar do global."""
    existing = await store.get_config(tenant_id, queue_id)
    payload = build_config_upsert_payload(existing, overrides)
    record = await store.upsert_config(tenant_id, queue_id, scope_key=scope_key_for(queue_id), **payload)
    logger.info("[AI CONFIG] Configuração atualizada tenant=%s scope=%s", tenant_id, record.get("scope_key"))
    return serialize_config(record)


async def get_mode(store: ConfigStore, tenant_id: str, queue_id: Optional[str] = None) -> Dict[str, Any]:
    record = await _fetch_with_fallback(store, tenant_id, queue_id)
    mode = normalize_mode((record or {}).get("default_mode")) or get_default_mode()
    return {"mode": mode, "aiEnabled": is_ai_enabled()}


async def update_mode(store: ConfigStore, tenant_id: str, queue_id: Optional[str], mode: str) -> Dict[str, Any]:
    existing = await store.get_config(tenant_id, queue_id)
    payload = build_config_upsert_payload(existing, {"default_mode": mode})
    record = await store.upsert_config(tenant_id, queue_id, scope_key=scope_key_for(queue_id), **payload)
    logger.info("[AI CONFIG] Modo atualizado tenant=%s scope=%s mode=%s", tenant_id, record.get("scope_key"), mode)
    return {"mode": normalize_mode(record.get("default_mode")) or get_default_mode()}
