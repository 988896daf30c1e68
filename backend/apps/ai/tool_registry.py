"""
Registro de ferramentas (function calling) disponíveis para a IA.

O registro é um objeto explícito, criado na inicialização do app `ai` e
injetado no pipeline; testes criam registros próprios.
"""

import asyncio
import inspect
import logging
from typing import Any, Dict, List, Optional

from apps.ai.exceptions import ToolExecutionFailure
from apps.ai.types import ToolDefinition, ToolExecutionResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self, timeout: Optional[float] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        # None ou 0 desliga o timeout por ferramenta
        self.timeout = timeout

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.info("[AI TOOLS] Substituindo ferramenta %s", tool.name)
        self._tools[tool.name] = tool

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def clear(self) -> None:
        self._tools.clear()

    def as_provider_payload(self) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.json_schema,
                },
            }
            for tool in self._tools.values()
        ]

    async def _invoke(self, tool: ToolDefinition, args: Dict[str, Any], context: Dict[str, Any]):
        result = tool.handler(args, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute(self, name: str, args: Dict[str, Any], context: Dict[str, Any]) -> ToolExecutionResult:
        """Executa a ferramenta; nunca levanta exceção."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolExecutionResult(ok=False, error=f"Tool {name} not registered")
        if tool.handler is None:
            return ToolExecutionResult(ok=False, error=f"Tool {name} has no handler")
        try:
            if self.timeout:
                result = await asyncio.wait_for(self._invoke(tool, args, context), timeout=self.timeout)
            else:
                result = await self._invoke(tool, args, context)
        except asyncio.TimeoutError:
            logger.warning("[AI TOOLS] Timeout executando %s (%.1fs)", name, self.timeout)
            return ToolExecutionResult(ok=False, error=f"timeout after {self.timeout}s")
        except Exception as exc:
            failure = ToolExecutionFailure(str(exc) or exc.__class__.__name__)
            logger.warning("[AI TOOLS] Falha executando %s: %s", name, failure, exc_info=True)
            return ToolExecutionResult(ok=False, error=str(failure))
        return ToolExecutionResult(ok=True, result=result)
