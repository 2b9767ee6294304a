"""
Response Stream.

Consumer-facing handle of one streamed turn. The stream is an explicit
state machine with a single commit point:

    STREAMING -> COMMITTING -> DONE
    STREAMING -> DONE            (cancelled or failed, nothing committed)

Text is produced lazily: the model is not invoked until the first
chunk is requested.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncGenerator, Awaitable, Callable, Optional

from ..domain.entities import ChunkKind, OrchestratorResponse, StreamChunk

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    """Lifecycle of a response stream."""

    STREAMING = "streaming"
    COMMITTING = "committing"
    DONE = "done"


CommitCallback = Callable[[str], Awaitable[OrchestratorResponse]]
AbortCallback = Callable[[Optional[BaseException]], None]


class ResponseStream:
    """Finite, non-restartable async iterator of StreamChunk.

    The assistant turn is committed only once the underlying text
    sequence is fully drained. Closing, cancelling or failing the stream
    before that commits nothing. Closing is idempotent.

    Usage:
        async with await orchestrator.respond_stream("Hi") as stream:
            async for chunk in stream:
                print(chunk.payload, end="")

        print(stream.response.usage)
    """

    def __init__(
        self,
        source: AsyncGenerator[str, None],
        on_commit: CommitCallback,
        on_abort: AbortCallback,
    ):
        """Initialize the stream.

        Args:
            source: Lazily produced text deltas of the turn
            on_commit: Records the full text; called exactly once on success
            on_abort: Rolls the turn back; called exactly once otherwise,
                with the failure (None when cancelled)
        """
        self._source = source
        self._on_commit = on_commit
        self._on_abort = on_abort
        self._state = StreamState.STREAMING
        self._sequence = 0
        self._text = ""
        self.response: Optional[OrchestratorResponse] = None
        self.error: Optional[BaseException] = None
        self.cancelled = False
        self._pull: Optional[asyncio.Task] = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def text(self) -> str:
        """Text produced so far."""
        return self._text

    @property
    def sequence(self) -> int:
        """Sequence number of the last emitted chunk."""
        return self._sequence

    @property
    def committed(self) -> bool:
        return self.response is not None

    def __aiter__(self) -> ResponseStream:
        return self

    async def __anext__(self) -> StreamChunk:
        while True:
            if self._state is not StreamState.STREAMING:
                raise StopAsyncIteration

            pull = asyncio.create_task(self._next_delta())
            self._pull = pull
            try:
                delta = await pull
            except StopAsyncIteration:
                if self._state is not StreamState.STREAMING:
                    raise
                await self._commit()
                raise
            except asyncio.CancelledError:
                if self._state is not StreamState.STREAMING:
                    # Closed from another task while this one was waiting
                    raise StopAsyncIteration
                await self._abort(None)
                raise
            except Exception as e:
                if self._state is not StreamState.STREAMING:
                    raise StopAsyncIteration from e
                await self._abort(e)
                raise
            finally:
                self._pull = None

            if delta:
                break

        if self._state is not StreamState.STREAMING:
            raise StopAsyncIteration

        self._sequence += 1
        self._text += delta
        return StreamChunk(sequence=self._sequence, kind=ChunkKind.DATA, payload=delta)

    async def _next_delta(self) -> str:
        return await self._source.__anext__()

    async def _commit(self) -> None:
        self._state = StreamState.COMMITTING
        try:
            self.response = await self._on_commit(self._text)
        finally:
            self._state = StreamState.DONE

    async def _abort(self, error: Optional[BaseException]) -> None:
        self._state = StreamState.DONE
        self.error = error
        self.cancelled = error is None
        try:
            pull = self._pull
            if pull is not None and not pull.done():
                pull.cancel()
                await asyncio.wait([pull])
            await self._source.aclose()
        finally:
            self._on_abort(error)

    async def aclose(self) -> None:
        """Abandon the stream. Nothing is committed.

        Safe to call any number of times, after the stream is done, and
        from a task other than the one iterating it. In that case the
        pending read is cancelled and the iterating task sees the end of
        the stream.
        """
        if self._state is not StreamState.STREAMING:
            return
        logger.info(f"Response stream cancelled after {self._sequence} chunk(s)")
        await self._abort(None)

    async def cancel(self) -> None:
        await self.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the full text."""
        async for _ in self:
            pass
        return self._text

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
