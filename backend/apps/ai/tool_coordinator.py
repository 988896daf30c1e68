"""
Coordena as chamadas de ferramenta pedidas pelo modelo durante o stream.

Fragmentos de argumentos são acumulados por id de chamada; na conclusão os
argumentos são interpretados, a ferramenta é executada uma única vez e o
resultado é emitido e auditado.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from apps.ai.stores import RunStore
from apps.ai.tool_registry import ToolRegistry
from apps.ai.types import (
    RUN_TYPE_TOOL_CALL,
    STATUS_ERROR,
    STATUS_SUCCESS,
    Emitter,
    StreamEvent,
    ToolCallRecord,
    ToolExecutionResult,
    emit_event,
)

logger = logging.getLogger(__name__)


class _Accumulator:
    __slots__ = ("call_id", "name", "fragments")

    def __init__(self, call_id: str, name: Optional[str] = None):
        self.call_id = call_id
        self.name = name
        self.fragments: List[str] = []


def parse_arguments(text: str, call_id: str = "", name: str = "") -> Dict[str, Any]:
    """JSON tolerante: texto vazio ou inválido vira `{}`."""
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        logger.warning("[AI TOOLS] Argumentos inválidos call=%s tool=%s: %s", call_id, name, exc)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("[AI TOOLS] Argumentos não são objeto call=%s tool=%s", call_id, name)
        return {}
    return parsed


class ToolCoordinator:
    def __init__(
        self,
        registry: ToolRegistry,
        run_store: Optional[RunStore],
        emit: Optional[Emitter],
        *,
        tenant_id: str,
        conversation_id: str,
        queue_id: Optional[str] = None,
        config_id: Optional[str] = None,
    ):
        self.registry = registry
        self.run_store = run_store
        self.emit = emit
        self.tenant_id = tenant_id
        self.conversation_id = conversation_id
        self.queue_id = queue_id
        self.config_id = config_id
        self.records: List[ToolCallRecord] = []
        self._accumulators: Dict[str, _Accumulator] = {}
        self._executed = set()

    @property
    def context(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "conversation_id": self.conversation_id,
            "queue_id": self.queue_id,
        }

    def on_delta(self, call_id: Optional[str], name: Optional[str], fragment: Optional[str]) -> None:
        if not call_id:
            return
        accumulator = self._accumulators.get(call_id)
        if accumulator is None:
            accumulator = _Accumulator(call_id, name)
            self._accumulators[call_id] = accumulator
        if name:
            accumulator.name = name
        if fragment:
            accumulator.fragments.append(fragment)

    async def on_complete(self, call_id: Optional[str]) -> Optional[ToolExecutionResult]:
        if not call_id:
            return None
        if call_id in self._executed:
            logger.debug("[AI TOOLS] Conclusão repetida ignorada call=%s", call_id)
            return None
        accumulator = self._accumulators.get(call_id)
        if accumulator is None or not accumulator.name:
            logger.warning("[AI TOOLS] Conclusão sem acumulador/nome call=%s", call_id)
            return None
        self._executed.add(call_id)

        name = accumulator.name
        arguments = parse_arguments("".join(accumulator.fragments), call_id, name)
        await emit_event(self.emit, StreamEvent.tool_call({
            "id": call_id,
            "name": name,
            "status": "executing",
            "arguments": arguments,
        }))

        started = time.monotonic()
        execution = await self.registry.execute(name, arguments, self.context)
        latency_ms = int((time.monotonic() - started) * 1000)

        record = ToolCallRecord(
            id=call_id,
            name=name,
            arguments=arguments,
            status=STATUS_SUCCESS if execution.ok else STATUS_ERROR,
            result=execution.result,
            error=None if execution.ok else (execution.error or "unknown_error"),
        )
        self.records.append(record)
        logger.info("[AI TOOLS] %s call=%s status=%s (%sms)", name, call_id, record.status, latency_ms)

        await self._record_run(record, latency_ms)
        await emit_event(self.emit, StreamEvent.tool_call(record.to_dict()))
        return execution

    async def _record_run(self, record: ToolCallRecord, latency_ms: int) -> None:
        if self.run_store is None:
            return
        try:
            await self.run_store.record_run(
                tenant_id=self.tenant_id,
                conversation_id=self.conversation_id,
                config_id=self.config_id,
                run_type=RUN_TYPE_TOOL_CALL,
                request_payload={"name": record.name, "arguments": record.arguments},
                response_payload=record.result if record.status == STATUS_SUCCESS else {"error": record.error},
                latency_ms=latency_ms,
                status=record.status,
            )
        except Exception as exc:
            logger.warning("[AI TOOLS] Falha ao registrar execução %s: %s", record.id, exc, exc_info=True)
