"""
Leitura das configurações de IA (settings / variáveis de ambiente).
"""

from typing import Optional

from django.conf import settings

from apps.ai.types import AI_MODES, MODE_COPILOT


def is_ai_enabled() -> bool:
    """IA ativa apenas quando há chave do provedor configurada."""
    return bool((getattr(settings, "OPENAI_API_KEY", "") or "").strip())


def get_api_key() -> str:
    return (getattr(settings, "OPENAI_API_KEY", "") or "").strip()


def get_responses_url() -> str:
    return getattr(settings, "AI_RESPONSES_API_URL", "https://api.openai.com/v1/responses")


def get_default_model() -> str:
    return (getattr(settings, "AI_DEFAULT_MODEL", "") or "").strip() or "gpt-4o-mini"


def normalize_mode(value) -> Optional[str]:
    if not value:
        return None
    candidate = str(value).strip().upper()
    return candidate if candidate in AI_MODES else None


def get_default_mode() -> str:
    """Modo padrão do ambiente; valores inválidos caem em COPILOTO."""
    return normalize_mode(getattr(settings, "AI_DEFAULT_MODE", MODE_COPILOT)) or MODE_COPILOT


def get_provider_timeout() -> float:
    return float(getattr(settings, "AI_PROVIDER_TIMEOUT", 60.0))


def get_tool_timeout() -> float:
    return float(getattr(settings, "AI_TOOL_TIMEOUT", 15.0))


def get_sender_name() -> str:
    return getattr(settings, "AI_SENDER_NAME", "Assistente IA")
