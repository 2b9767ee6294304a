"""Server-Sent Events transport of chat responses."""

from .client import ChatStreamClient, StreamError, StreamStatus
from .sse import (
    DONE_SENTINEL,
    KEEP_ALIVE,
    SSEDecoder,
    SSEEventType,
    SSEMessage,
    encode_stream,
    format_sse,
    iter_sse_messages,
    parse_frame,
)

__all__ = [
    "ChatStreamClient",
    "DONE_SENTINEL",
    "KEEP_ALIVE",
    "SSEDecoder",
    "SSEEventType",
    "SSEMessage",
    "StreamError",
    "StreamStatus",
    "encode_stream",
    "format_sse",
    "iter_sse_messages",
    "parse_frame",
]
