"""Single-pass, pull-based iteration over a response body."""

from __future__ import annotations

import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable

import httpx

from model_provider.types import RawChunk

_logger = logging.getLogger(__name__)


class _EndOfStream:
    """Marker returned by ``ChunkIterator.next()`` once the body is drained."""

    _instance: _EndOfStream | None = None

    def __new__(cls) -> _EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"

    def __bool__(self) -> bool:
        return False


END_OF_STREAM = _EndOfStream()


class ChunkIterator:
    """Pull raw chunks from an async source, exactly once each.

    Byte chunks are re-framed on newline boundaries (``reframe_lines``)
    so a JSON object split across two network reads is delivered whole.
    Without a newline, data is cut after the last complete JSON object
    instead.  The unterminated tail is flushed when the source is
    exhausted.  Text chunks are passed through untouched.  A source
    should not mix the two.

    There is no rewind: a delivered chunk cannot be fetched again.
    """

    def __init__(
        self,
        source: AsyncIterable[RawChunk],
        on_close: Callable[[], Awaitable[None]] | None = None,
        reframe_lines: bool = True,
    ) -> None:
        self._source: AsyncIterator[RawChunk] = source.__aiter__()
        self._on_close = on_close
        self._reframe = reframe_lines
        self._pending = b""
        self._exhausted = False
        self._closed = False

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_response(
        cls, response: httpx.Response, reframe_lines: bool = True,
    ) -> ChunkIterator:
        """Iterate the raw bytes of a streamed httpx response."""
        return cls(response.aiter_bytes(), on_close=response.aclose,
                   reframe_lines=reframe_lines)

    @classmethod
    def from_chunks(cls, chunks: Iterable[RawChunk], reframe_lines: bool = False) -> ChunkIterator:
        """Iterate an in-memory sequence of chunks."""

        async def _gen() -> AsyncIterator[RawChunk]:
            for chunk in chunks:
                yield chunk

        return cls(_gen(), reframe_lines=reframe_lines)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    async def next(self) -> RawChunk | _EndOfStream:
        """Return the next chunk, or ``END_OF_STREAM``."""
        while True:
            if self._closed:
                return END_OF_STREAM

            if self._exhausted:
                if self._pending:
                    tail, self._pending = self._pending, b""
                    return tail
                await self.aclose()
                return END_OF_STREAM

            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                continue

            if isinstance(chunk, str) or not self._reframe:
                return chunk

            data = self._pending + chunk
            cut = data.rfind(b"\n") + 1 or _object_boundary(data)
            if not cut:
                self._pending = data
                continue
            self._pending = data[cut:]
            return data[:cut]

    def __aiter__(self) -> ChunkIterator:
        return self

    async def __anext__(self) -> RawChunk:
        chunk = await self.next()
        if chunk is END_OF_STREAM:
            raise StopAsyncIteration
        return chunk  # type: ignore[return-value]

    async def aclose(self) -> None:
        """Release the underlying response.  Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._pending = b""
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            await self._on_close()
        _logger.debug("Chunk iterator closed")


_QUOTE, _BACKSLASH, _OPEN, _CLOSE = b'"\\{}'


def _object_boundary(data: bytes) -> int:
    """Offset just past the last complete top-level JSON object, or 0.

    Used for bodies that concatenate objects without newlines.  Bytes
    before the first ``{`` (an SSE ``data:`` prefix, say) are skipped;
    quotes only open strings inside an object.
    """
    depth = 0
    in_string = escaped = False
    end = 0
    for i, byte in enumerate(data):
        if in_string:
            if escaped:
                escaped = False
            elif byte == _BACKSLASH:
                escaped = True
            elif byte == _QUOTE:
                in_string = False
        elif byte == _OPEN:
            depth += 1
        elif byte == _CLOSE and depth:
            depth -= 1
            if not depth:
                end = i + 1
        elif byte == _QUOTE and depth:
            in_string = True
    return end
