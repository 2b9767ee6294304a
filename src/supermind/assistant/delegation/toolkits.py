"""
Composio toolkit client.

Discovers the tools of one toolkit (gmail, googlecalendar, ...) and
executes them against a user's connected account over the Composio
HTTP API.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from ..domain.entities import ToolDefinition
from ..domain.ports import IToolkitClient

logger = logging.getLogger(__name__)


class ToolkitError(Exception):
    """Error listing or executing a toolkit tool."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        recoverable: bool = True,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.tool_name = tool_name
        self.recoverable = recoverable
        self.original_error = original_error


@dataclass
class ComposioConfig:
    """Configuration for the Composio client."""

    api_key: str
    base_url: str = "https://backend.composio.dev"
    timeout: float = 60.0
    max_retries: int = 3
    tools_limit: int = 100


class ComposioToolkitClient(IToolkitClient):
    """HTTP client for Composio toolkits.

    Usage:
        client = ComposioToolkitClient(ComposioConfig(api_key="..."))

        tools = await client.list_tools("gmail")
        result = await client.execute(
            "GMAIL_FETCH_EMAILS",
            {"max_results": 5},
            connection_id="ca_123",
            user_id="user-1",
        )
    """

    # Cache TTL for tool definitions
    TOOL_CACHE_TTL_SECONDS = 300

    def __init__(self, config: ComposioConfig):
        """Initialize the client.

        Args:
            config: Client configuration
        """
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._tools_cache: dict[str, tuple[float, list[ToolDefinition]]] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-key": self.config.api_key,
        }

    async def list_tools(self, toolkit: str) -> list[ToolDefinition]:
        """List the tools of one toolkit.

        Caches results per toolkit for TOOL_CACHE_TTL_SECONDS.

        Args:
            toolkit: Toolkit slug (e.g. 'gmail')

        Returns:
            Tool definitions of that toolkit only
        """
        cached = self._tools_cache.get(toolkit)
        if cached and time.time() - cached[0] < self.TOOL_CACHE_TTL_SECONDS:
            return cached[1]

        session = await self._get_session()
        url = f"{self.config.base_url}/api/v3/tools"
        params = {"toolkit_slug": toolkit, "limit": str(self.config.tools_limit)}

        try:
            async with session.get(url, headers=self._get_headers(), params=params) as response:
                if response.status != 200:
                    text = await response.text()
                    raise ToolkitError(
                        f"Failed to list {toolkit} tools: {response.status} - {text}",
                        tool_name="list_tools",
                    )
                data = await response.json()
        except aiohttp.ClientError as e:
            raise ToolkitError(
                f"Failed to connect to Composio: {e}",
                tool_name="list_tools",
                original_error=e,
            )

        tools = []
        for item in data.get("items", []):
            tool_toolkit = (item.get("toolkit") or {}).get("slug", toolkit)
            if tool_toolkit.lower() != toolkit.lower():
                continue
            tools.append(
                ToolDefinition(
                    name=item["slug"],
                    description=item.get("description") or item.get("name", ""),
                    parameters=item.get("input_parameters") or {"type": "object", "properties": {}},
                )
            )

        self._tools_cache[toolkit] = (time.time(), tools)
        logger.info(f"Discovered {len(tools)} {toolkit} tools")
        return tools

    async def execute(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        connection_id: str,
        user_id: str,
    ) -> Any:
        """Execute a tool against a connected account.

        Args:
            tool_name: Tool slug
            arguments: Tool arguments
            connection_id: Connected account to act as
            user_id: Composio user (entity) identifier

        Returns:
            The ``data`` field of the execution result

        Raises:
            ToolkitError: On execution failure
        """
        session = await self._get_session()
        url = f"{self.config.base_url}/api/v3/tools/execute/{tool_name}"
        payload = {
            "connected_account_id": connection_id,
            "user_id": user_id,
            "arguments": arguments,
        }

        for attempt in range(self.config.max_retries):
            try:
                async with session.post(url, headers=self._get_headers(), json=payload) as response:
                    if response.status == 200:
                        data = await response.json()
                        if data.get("successful", True) is False:
                            raise ToolkitError(
                                data.get("error") or f"{tool_name} failed",
                                tool_name=tool_name,
                            )
                        return data.get("data")

                    elif response.status == 404:
                        raise ToolkitError(
                            f"Tool not found: {tool_name}",
                            tool_name=tool_name,
                            recoverable=False,
                        )

                    elif response.status == 429:
                        if attempt < self.config.max_retries - 1:
                            wait_time = 2 ** attempt
                            logger.warning(f"Rate limited, retrying in {wait_time}s")
                            await asyncio.sleep(wait_time)
                            continue

                        raise ToolkitError("Rate limited by Composio", tool_name=tool_name)

                    else:
                        text = await response.text()
                        raise ToolkitError(
                            f"Tool execution failed: {response.status} - {text}",
                            tool_name=tool_name,
                        )

            except aiohttp.ClientError as e:
                if attempt < self.config.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Connection error, retrying in {wait_time}s: {e}")
                    await asyncio.sleep(wait_time)
                    continue

                raise ToolkitError(
                    f"Failed to connect to Composio: {e}",
                    tool_name=tool_name,
                    original_error=e,
                )

        raise ToolkitError(
            f"Tool execution failed after {self.config.max_retries} retries",
            tool_name=tool_name,
        )
