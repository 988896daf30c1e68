"""
Exceções do pipeline de IA.
"""
from typing import Optional


class AiError(Exception):
    """Base para erros do pipeline de IA."""


class ConfigResolutionFailure(AiError):
    """Falha ao ler ou persistir a configuração de IA (sempre recuperada)."""


class StreamFramingError(AiError):
    """Linha `data:` do stream que não pôde ser interpretada."""


class ProviderTransportError(AiError):
    """Resposta não-2xx (ou sem corpo) do provedor."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderStreamError(AiError):
    """Evento de erro enviado pelo provedor no meio do stream."""


class ToolExecutionFailure(AiError):
    """Falha ao executar uma ferramenta registrada."""


class AutoReplyTimeout(AiError):
    """Geração da resposta automática excedeu o tempo limite."""


class SendFailure(AiError):
    """Falha ao enfileirar a mensagem de saída."""
