"""
Server-Sent Events encoding and decoding.

Wire grammar of one frame:

    event: <kind>\\n
    id: <n>\\n            (optional)
    retry: <ms>\\n        (optional)
    data: <line>\\n       (one per payload line)
    \\n

A chat stream is one ``connection`` frame, one ``message`` frame per
chunk and exactly one terminal frame, ``complete`` or ``error``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Callable, Optional

from ..domain.entities import StreamChunk

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
KEEP_ALIVE = ": keep-alive\n\n"


class SSEEventType(str, Enum):
    """Event kinds of the chat stream."""

    CONNECTION = "connection"
    MESSAGE = "message"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class SSEMessage:
    """One Server-Sent Events frame.

    Attributes:
        data: Payload; may span several lines
        event: Event kind
        id: Event id (chunk sequence for message frames)
        retry: Reconnection delay in milliseconds
    """

    data: str
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None

    def format(self) -> str:
        return format_sse(self)


def format_sse(message: SSEMessage) -> str:
    """Serialize a frame to its wire form."""
    output = ""
    if message.event:
        output += f"event: {message.event}\n"
    if message.id:
        output += f"id: {message.id}\n"
    if message.retry:
        output += f"retry: {message.retry}\n"
    for line in message.data.split("\n"):
        output += f"data: {line}\n"
    output += "\n"
    return output


def connection_message(user_id: str) -> SSEMessage:
    return SSEMessage(
        data=json.dumps({"type": "connection", "status": "connected", "userId": user_id}),
        event=SSEEventType.CONNECTION.value,
    )


def chunk_message(chunk: StreamChunk) -> SSEMessage:
    return SSEMessage(
        data=chunk.payload,
        event=SSEEventType.MESSAGE.value,
        id=str(chunk.sequence),
    )


def complete_message() -> SSEMessage:
    return SSEMessage(data=DONE_SENTINEL, event=SSEEventType.COMPLETE.value)


def error_message(message: str) -> SSEMessage:
    return SSEMessage(data=json.dumps({"error": message}), event=SSEEventType.ERROR.value)


async def encode_stream(
    user_id: str,
    chunks: AsyncIterable[StreamChunk],
    describe_error: Callable[[Exception], str] = str,
) -> AsyncIterator[str]:
    """Encode a chunk sequence as a complete SSE chat stream.

    Args:
        user_id: Identity announced in the connection frame
        chunks: Ordered chunks of one response
        describe_error: Turns a failure into the client-facing message

    Yields:
        Wire frames: connection, one message per chunk, then exactly
        one complete or error frame
    """
    yield format_sse(connection_message(user_id))

    count = 0
    try:
        async for chunk in chunks:
            count += 1
            yield format_sse(chunk_message(chunk))
    except Exception as e:
        logger.error(f"Chat stream failed after {count} chunk(s): {e}")
        yield format_sse(error_message(describe_error(e)))
        return

    logger.debug(f"Chat stream completed with {count} chunk(s)")
    yield format_sse(complete_message())


# ============================================
# Decoding
# ============================================


def parse_frame(frame: str) -> Optional[SSEMessage]:
    """Parse one frame (without its blank-line terminator).

    Returns:
        The message, or None for frames holding only comments
    """
    event = None
    event_id = None
    retry = None
    data_lines: list[str] = []

    for line in frame.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value
        elif field == "retry" and value.isdigit():
            retry = int(value)

    if event is None and not data_lines:
        return None
    return SSEMessage(
        data="\n".join(data_lines),
        event=event or SSEEventType.MESSAGE.value,
        id=event_id,
        retry=retry,
    )


class SSEDecoder:
    """Incremental SSE decoder.

    Frames may be split across reads at any position; partial frames
    are buffered until their terminator arrives.

    Usage:
        decoder = SSEDecoder()
        async for text in response.aiter_text():
            for message in decoder.feed(text):
                handle(message)
        for message in decoder.flush():
            handle(message)
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, text: str) -> list[SSEMessage]:
        """Add received text and return every completed message."""
        self._buffer += text
        messages = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            message = parse_frame(frame)
            if message is not None:
                messages.append(message)
        return messages

    def flush(self) -> list[SSEMessage]:
        """Parse whatever is left once the stream has ended."""
        frame, self._buffer = self._buffer, ""
        if not frame.strip():
            return []
        message = parse_frame(frame)
        return [message] if message is not None else []


async def iter_sse_messages(texts: AsyncIterable[str]) -> AsyncIterator[SSEMessage]:
    """Decode a stream of text fragments into SSE messages."""
    decoder = SSEDecoder()
    async for text in texts:
        for message in decoder.feed(text):
            yield message
    for message in decoder.flush():
        yield message
