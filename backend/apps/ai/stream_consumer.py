"""
Consumo do stream `text/event-stream` da Responses API.

Os bytes chegam em pedaços arbitrários: a decodificação UTF-8 é incremental e
os frames são separados por linha em branco. Cada linha `data:` carrega um
evento JSON; `[DONE]` encerra o stream.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, List, Optional, Union

from apps.ai.exceptions import AiError, ProviderStreamError, StreamFramingError
from apps.ai.tool_coordinator import ToolCoordinator
from apps.ai.types import StreamSummary

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

TEXT_KEYS = ("text", "content", "value", "values", "output_text", "delta", "arguments")

TEXT_DELTA_EVENTS = {"response.output_text.delta"}
TEXT_DONE_EVENTS = {"response.output_text.done"}
COMPLETED_EVENTS = {"response.completed"}
TOOL_DELTA_EVENTS = {"response.tool_call.delta", "response.function_call_arguments.delta"}
TOOL_DONE_EVENTS = {
    "response.tool_call.completed",
    "response.tool_call.done",
    "response.function_call_arguments.done",
}
ERROR_EVENTS = {"response.error", "error"}

CALL_ID_KEYS = ("id", "tool_call_id", "call_id", "item_id")


def extract_text(source: Any) -> Optional[str]:
    """
    Junta todo o texto encontrado em `source`.

    Percorre strings, números, listas e os campos conhecidos de objetos
    (`TEXT_KEYS`, nessa ordem). Retorna None quando nada foi encontrado.
    """
    segments: List[str] = []

    def visit(value):
        if value is None:
            return
        if isinstance(value, str):
            if value:
                segments.append(value)
            return
        if isinstance(value, bool):
            segments.append("true" if value else "false")
            return
        if isinstance(value, (int, float)):
            segments.append(str(value))
            return
        if isinstance(value, (list, tuple)):
            for entry in value:
                visit(entry)
            return
        if isinstance(value, dict):
            for key in TEXT_KEYS:
                if key in value:
                    visit(value[key])

    visit(source)
    return "".join(segments) if segments else None


def _first_text(*sources) -> Optional[str]:
    for source in sources:
        text = extract_text(source)
        if text:
            return text
    return None


def _call_id(*payloads) -> Optional[str]:
    for payload in payloads:
        if not isinstance(payload, dict):
            continue
        for key in CALL_ID_KEYS:
            if payload.get(key):
                return str(payload[key])
    return None


def _as_dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _argument_fragment(value) -> Optional[str]:
    if isinstance(value, dict):
        return json.dumps(value)
    return extract_text(value)


def iter_frames(buffer: str):
    """Separa frames completos; retorna (frames, resto)."""
    frames = []
    while True:
        boundary = buffer.find("\n\n")
        if boundary == -1:
            return frames, buffer
        frames.append(buffer[:boundary])
        buffer = buffer[boundary + 2:]


DeltaCallback = Callable[[str], Union[None, Awaitable[None]]]


class StreamConsumer:
    def __init__(self, default_model: Optional[str] = None):
        self.default_model = default_model

    async def consume(
        self,
        byte_chunks: AsyncIterable[bytes],
        on_delta: Optional[DeltaCallback] = None,
        coordinator: Optional[ToolCoordinator] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        summary: Optional[StreamSummary] = None,
    ) -> StreamSummary:
        if summary is None:
            summary = StreamSummary(model=self.default_model)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        finished = False

        async for chunk in byte_chunks:
            buffer += decoder.decode(chunk)
            buffer = buffer.replace("\r\n", "\n")
            frames, buffer = iter_frames(buffer)
            for frame in frames:
                if await self._process_frame(frame, summary, on_delta, coordinator):
                    finished = True
                    break
            if finished or (should_stop is not None and should_stop()):
                break

        if not finished:
            buffer += decoder.decode(b"", final=True)
            tail = buffer.replace("\r\n", "\n").strip()
            if tail:
                await self._process_frame(tail, summary, on_delta, coordinator)

        if coordinator is not None:
            summary.tool_calls = list(coordinator.records)
        return summary

    async def _process_frame(self, frame, summary, on_delta, coordinator) -> bool:
        """Processa um frame; retorna True ao encontrar `[DONE]`."""
        for raw_line in frame.split("\n"):
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if not data:
                continue
            if data == DONE_SENTINEL:
                return True
            try:
                event = self._parse(data)
            except StreamFramingError as exc:
                logger.warning("[AI STREAM] Linha ignorada: %s", exc)
                continue
            try:
                await self._dispatch(event, summary, on_delta, coordinator)
            except AiError:
                raise
            except Exception as exc:
                logger.warning(
                    "[AI STREAM] Evento ignorado (%s): %s", event.get("type"), exc, exc_info=True
                )
        return False

    def _parse(self, data: str) -> Dict[str, Any]:
        try:
            event = json.loads(data)
        except ValueError as exc:
            raise StreamFramingError(f"JSON inválido ({exc}): {data[:80]}") from exc
        if not isinstance(event, dict):
            raise StreamFramingError(f"evento não é objeto: {data[:80]}")
        return event

    async def _dispatch(self, event, summary, on_delta, coordinator) -> None:
        event_type = event.get("type")

        if event_type in TEXT_DELTA_EVENTS:
            text = _first_text(event.get("delta"), event.get("output_text"), event.get("text"))
            if text:
                summary.text += text
                if on_delta is not None:
                    result = on_delta(text)
                    if result is not None and hasattr(result, "__await__"):
                        await result

        elif event_type in TEXT_DONE_EVENTS:
            response = _as_dict(event.get("response"))
            text = _first_text(
                event.get("text"),
                event.get("output_text"),
                response.get("output"),
                response.get("output_text"),
            )
            if text and len(text) > len(summary.text):
                summary.text = text

        elif event_type in COMPLETED_EVENTS:
            summary.completed = True
            response = _as_dict(event.get("response"))
            summary.model = response.get("model") or summary.model
            summary.usage = response.get("usage") or summary.usage
            text = _first_text(response.get("output"), response.get("output_text"))
            if text and len(text) > len(summary.text):
                summary.text = text

        elif event_type in TOOL_DELTA_EVENTS:
            if coordinator is None:
                return
            nested = event.get("delta")
            if isinstance(nested, dict):
                payload = nested
                fragment = _argument_fragment(nested.get("arguments"))
            else:
                payload = event
                fragment = _argument_fragment(event.get("arguments")) if "arguments" in event else extract_text(nested)
            coordinator.on_delta(
                _call_id(payload, event),
                payload.get("name") or event.get("name"),
                fragment,
            )

        elif event_type in TOOL_DONE_EVENTS:
            if coordinator is None:
                return
            await coordinator.on_complete(_call_id(event, event.get("item"), event.get("delta")))

        elif event_type in ERROR_EVENTS:
            error = event.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            else:
                message = error or event.get("message")
            raise ProviderStreamError(message or "Erro na resposta da IA")
