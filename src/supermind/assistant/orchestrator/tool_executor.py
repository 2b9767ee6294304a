"""
Tool Executor.

Runs the delegation tool calls of one model step. Calls of the same
step run concurrently; their results come back in emission order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..delegation.registry import DelegationToolRegistry
from ..domain.entities import ToolCall

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Executes tool calls with error handling.

    Tool failures never propagate: they are folded into the ToolCall
    result as recoverable errors so the model can phrase them.

    Usage:
        executor = ToolExecutor(registry)
        executed = await executor.execute_tool_calls(step.tool_calls)
    """

    def __init__(self, tool_registry: Optional[DelegationToolRegistry] = None):
        """Initialize the tool executor.

        Args:
            tool_registry: Delegation tools of the orchestrator, if any
        """
        self.tools = tool_registry

    async def execute_tool_call(self, tool_call: ToolCall) -> ToolCall:
        """Execute a tool call with error handling.

        Returns:
            ToolCall with result populated (either success or error)
        """
        logger.info(f"Executing tool: {tool_call.name}")

        try:
            if self.tools is None:
                result = {"error": f"Unknown tool: {tool_call.name}"}
            else:
                result = await self.tools.execute_tool_call(tool_call)
            logger.debug(f"Tool {tool_call.name} result: {result}")

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.error(f"Tool execution failed: {e}")
            result = {"error": str(e), "recoverable": True}

        tool_call.result = result
        tool_call.error = result.get("error") if isinstance(result, dict) else None
        return tool_call

    async def execute_tool_calls(self, tool_calls: list[ToolCall]) -> list[ToolCall]:
        """Execute the tool calls of one step concurrently.

        A failed tool call does not affect the others.

        Returns:
            ToolCalls with results populated, in the input order
        """
        if not tool_calls:
            return []
        results = await asyncio.gather(*(self.execute_tool_call(tc) for tc in tool_calls))
        return list(results)
