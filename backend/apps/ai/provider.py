"""
Cliente HTTP da Responses API (httpx assíncrono).
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from apps.ai.conf import get_api_key, get_provider_timeout, get_responses_url
from apps.ai.exceptions import ProviderTransportError

logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW = 500


class ResponsesClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else get_api_key()
        self.url = url or get_responses_url()
        self.timeout = timeout if timeout is not None else get_provider_timeout()
        self.transport = transport

    def _headers(self, accept: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": accept,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _transport_error(status_code: int, body: str) -> ProviderTransportError:
        preview = body[:ERROR_BODY_PREVIEW] if body else ""
        message = f"Responses API falhou ({status_code})"
        if preview:
            message = f"{message} :: {preview}"
        return ProviderTransportError(message, status_code=status_code, body=body)

    @asynccontextmanager
    async def stream(self, body: Dict[str, Any]) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Abre o stream e entrega um iterador de bytes.

        Respostas não-2xx levantam `ProviderTransportError` antes de qualquer
        leitura do corpo pelo chamador.
        """
        async with self._client() as client:
            try:
                async with client.stream(
                    "POST",
                    self.url,
                    json=body,
                    headers=self._headers("text/event-stream"),
                ) as response:
                    if not response.is_success:
                        raw = await response.aread()
                        raise self._transport_error(response.status_code, raw.decode("utf-8", errors="replace"))
                    logger.debug("[AI PROVIDER] Stream aberto (%s)", response.status_code)
                    yield self._iter_bytes(response)
            except httpx.HTTPError as exc:
                raise ProviderTransportError(f"Erro de transporte: {exc}") from exc

    @staticmethod
    async def _iter_bytes(response: httpx.Response) -> AsyncIterator[bytes]:
        async for chunk in response.aiter_bytes():
            if chunk:
                yield chunk

    async def create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST sem streaming; retorna o JSON da resposta."""
        async with self._client() as client:
            try:
                response = await client.post(self.url, json=body, headers=self._headers("application/json"))
            except httpx.HTTPError as exc:
                raise ProviderTransportError(f"Erro de transporte: {exc}") from exc
        if not response.is_success:
            raise self._transport_error(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderTransportError(
                f"Resposta inválida do provedor: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc
