"""
Chat stream client.

Consumes the SSE chat stream over httpx with a bearer token. The
consumer is notified through callbacks; ``on_complete`` fires exactly
once per stream, whether the server sends ``complete``, the stream
simply ends, or the caller aborts with ``stop_stream``. Aborting is
never reported as an error.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from .sse import SSEDecoder, SSEEventType, SSEMessage

logger = logging.getLogger(__name__)

TokenProvider = Union[str, Callable[[], Union[str, Awaitable[str]]]]


class StreamStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class StreamError:
    """Error reported to ``on_error``.

    Attributes:
        message: Human-readable message
        code: SERVER_ERROR for error events, STREAM_ERROR for transport
            or HTTP failures
    """

    message: str
    code: str


async def _call(callback: Optional[Callable[..., Any]], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ChatStreamClient:
    """Cancellable client of the chat SSE endpoint.

    Usage:
        client = ChatStreamClient(
            "https://assistant.example.com/api/chat/stream",
            token=get_id_token,
            on_message_chunk=lambda chunk, full: print(chunk, end=""),
            on_complete=lambda full: print(),
        )
        await client.start_stream("session-1", [{"role": "user", "content": "Hi"}])

        # From another task:
        client.stop_stream()
    """

    def __init__(
        self,
        url: str,
        token: TokenProvider,
        on_message_chunk: Optional[Callable[[str, str], Any]] = None,
        on_complete: Optional[Callable[[str], Any]] = None,
        on_error: Optional[Callable[[StreamError], Any]] = None,
        on_connection: Optional[Callable[[], Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0,
    ):
        """Initialize the client.

        Args:
            url: Chat stream endpoint
            token: Bearer token, or a (possibly async) callable returning one
            on_message_chunk: Called with (chunk, accumulated text)
            on_complete: Called once with the accumulated text
            on_error: Called with a StreamError
            on_connection: Called when the server confirms the connection
            http_client: Shared httpx client (created per stream otherwise)
            timeout: Read timeout of per-stream clients, in seconds
        """
        self.url = url
        self._token = token
        self.on_message_chunk = on_message_chunk
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_connection = on_connection
        self._http_client = http_client
        self.timeout = timeout

        self.status = StreamStatus.IDLE
        self.streamed_message = ""
        self.error: Optional[StreamError] = None
        self._task: Optional[asyncio.Task] = None
        self._completed = False
        self._aborted = False

    @property
    def is_streaming(self) -> bool:
        return self.status == StreamStatus.STREAMING

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _resolve_token(self) -> str:
        if isinstance(self._token, str):
            return self._token
        token = self._token()
        if inspect.isawaitable(token):
            token = await token
        return token

    async def start_stream(self, session_id: str, messages: list[dict[str, str]]) -> None:
        """Open the stream and consume it until it ends or is stopped.

        Only one stream may be active per client; a second call while one
        is running is ignored.
        """
        if self.active:
            logger.warning("Stream already active")
            return

        self.status = StreamStatus.CONNECTING
        self.streamed_message = ""
        self.error = None
        self._completed = False
        self._aborted = False

        self._task = asyncio.create_task(self._run(session_id, messages))
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._aborted:
                raise
            logger.info("Stream aborted by user")
        finally:
            self._task = None

    def stop_stream(self) -> None:
        """Abort the active stream.

        Fires ``on_complete`` with the text received so far, unless the
        stream already completed.
        """
        if not self.active:
            return
        logger.info("Stopping stream")
        self._aborted = True
        self._task.cancel()
        self.status = StreamStatus.COMPLETED
        if not self._completed:
            self._completed = True
            if self.on_complete is not None:
                result = self.on_complete(self.streamed_message)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)

    async def _complete(self) -> None:
        self.status = StreamStatus.COMPLETED
        if self._completed:
            return
        self._completed = True
        await _call(self.on_complete, self.streamed_message)

    async def _fail(self, error: StreamError) -> None:
        self.error = error
        self.status = StreamStatus.ERROR
        await _call(self.on_error, error)

    async def _run(self, session_id: str, messages: list[dict[str, str]]) -> None:
        try:
            token = await self._resolve_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Accept": "text/event-stream",
                "Content-Type": "application/json",
            }
            body = {"sessionId": session_id, "messages": messages}

            client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
            try:
                async with client.stream("POST", self.url, json=body, headers=headers) as response:
                    if response.status_code >= 400:
                        await self._fail(
                            StreamError(
                                message=f"HTTP {response.status_code}: {response.reason_phrase}",
                                code="STREAM_ERROR",
                            )
                        )
                        return

                    decoder = SSEDecoder()
                    async for text in response.aiter_text():
                        for message in decoder.feed(text):
                            await self._handle(message)
                    for message in decoder.flush():
                        await self._handle(message)
            finally:
                if self._http_client is None:
                    await client.aclose()

        except Exception as e:
            logger.error(f"Failed to stream: {e}")
            await self._fail(StreamError(message=str(e) or "Failed to start stream", code="STREAM_ERROR"))
            return

        logger.debug("Stream completed")
        if self.status != StreamStatus.ERROR:
            await self._complete()

    async def _handle(self, message: SSEMessage) -> None:
        if message.event == SSEEventType.CONNECTION.value:
            logger.debug(f"Connected: {message.data}")
            self.status = StreamStatus.STREAMING
            await _call(self.on_connection)

        elif message.event == SSEEventType.MESSAGE.value:
            self.status = StreamStatus.STREAMING
            self.streamed_message += message.data
            await _call(self.on_message_chunk, message.data, self.streamed_message)

        elif message.event == SSEEventType.COMPLETE.value:
            await self._complete()

        elif message.event == SSEEventType.ERROR.value:
            logger.error(f"Server error: {message.data}")
            try:
                text = json.loads(message.data).get("error") or "Server error"
            except (ValueError, AttributeError):
                text = message.data or "Server error"
            await self._fail(StreamError(message=text, code="SERVER_ERROR"))

        else:
            logger.warning(f"Unknown event type: {message.event}")
