"""
Supermemory client.

Thin HTTP adapter over the Supermemory API. Memories are partitioned by
container tag, which is always the user identity.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..domain.ports import IMemoryClient

logger = logging.getLogger(__name__)


class SupermemoryError(Exception):
    """Error talking to the Supermemory API."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


@dataclass
class SupermemoryConfig:
    """Configuration for the Supermemory client.

    Attributes:
        api_key: Supermemory API key
        base_url: API base URL
        timeout: Request timeout in seconds
        threshold: Minimum similarity of returned memories
        search_mode: 'memories' or 'hybrid'
    """

    api_key: str
    base_url: str = "https://api.supermemory.ai"
    timeout: float = 15.0
    threshold: float = 0.5
    search_mode: str = "memories"


class SupermemoryClient(IMemoryClient):
    """Supermemory implementation of the memory port.

    Usage:
        client = SupermemoryClient(SupermemoryConfig(api_key="sm_..."))

        snippets = await client.search("What is my name?", container_tag="user-1")
        await client.add("My name is Ada", container_tag="user-1")
    """

    def __init__(self, config: SupermemoryConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            headers={"Authorization": f"Bearer {config.api_key}"},
        )

    async def search(
        self,
        query: str,
        container_tag: str,
        limit: int = 5,
    ) -> list[str]:
        """Search the memories of one container.

        Raises:
            SupermemoryError: On API or connection errors
        """
        payload = {
            "q": query,
            "containerTag": container_tag,
            "threshold": self.config.threshold,
            "limit": limit,
            "searchMode": self.config.search_mode,
        }
        data = await self._post("/v4/search", payload)

        snippets = []
        for item in data.get("results", []):
            content = item.get("memory") or item.get("chunk")
            if content:
                snippets.append(content)
        return snippets

    async def add(
        self,
        content: str,
        container_tag: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """Store a memory in one container.

        Raises:
            SupermemoryError: On API or connection errors
        """
        payload = {
            "content": content,
            "containerTag": container_tag,
            "customId": str(uuid.uuid4()),
            "metadata": metadata or {},
        }
        data = await self._post("/v3/documents", payload)
        return data.get("id")

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=payload)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            raise SupermemoryError(
                f"Supermemory API error: {e.response.status_code} - {e.response.text}",
                original_error=e,
            )

        except httpx.TimeoutException as e:
            raise SupermemoryError(f"Supermemory request timeout: {e}", original_error=e)

        except httpx.RequestError as e:
            raise SupermemoryError(f"Supermemory connection error: {e}", original_error=e)

    async def close(self) -> None:
        await self.client.aclose()
