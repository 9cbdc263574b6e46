"""Token accumulation over a single-pass chunk stream.

``TokenAccumulator`` owns the chunk iterator of one inference call and
is the only thing that ever reads from it.  Any number of readers can
iterate the accumulator, concurrently or one after another; each sees
every token from the beginning, in decode order, while the underlying
stream is pulled exactly once.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator
from typing import Any, Callable

from model_provider.chunks import END_OF_STREAM, ChunkIterator
from model_provider.decoders import ChunkDecoder
from model_provider.types import AccumulatedMessage, QueryType

_logger = logging.getLogger(__name__)

# Called once with the frozen message
CompletionHook = Callable[[AccumulatedMessage], Any]


class TokenAccumulator:
    """Append-only message built lazily from a chunk stream.

    Readers pull; whichever reader first needs a token that has not been
    produced yet starts a pull step, and every other reader waits on that
    same step.  Steps are tasks owned by the accumulator, so a reader that
    is cancelled mid-pull never interrupts the stream.  The state below is
    only mutated by ``_pull()``.
    """

    def __init__(
        self,
        query_type: QueryType,
        chunks: ChunkIterator | None,
        decoder: ChunkDecoder | None,
        role: str = "assistant",
    ) -> None:
        self.query_type = query_type
        self.role = role
        self._chunks = chunks
        self._decoder = decoder

        self._tokens: list[str] = []
        self._content = ""
        self._complete = chunks is None
        self._unavailable = False
        self._error: BaseException | None = None

        self._step: asyncio.Future[None] | None = None
        self._hooks: list[CompletionHook] = []
        self._hook_tasks: set[asyncio.Future[None]] = set()

    @classmethod
    def empty(cls, query_type: QueryType, role: str = "assistant") -> TokenAccumulator:
        """A completed accumulator with no content (backend unavailable)."""
        acc = cls(query_type, None, None, role=role)
        acc._unavailable = True
        return acc

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def content(self) -> str:
        """Content produced so far (a prefix of the final content)."""
        return self._content

    def snapshot(self) -> AccumulatedMessage:
        """Immutable view of the message at this moment."""
        return AccumulatedMessage(
            role=self.role,
            content=self._content,
            complete=self._complete,
            unavailable=self._unavailable,
        )

    def on_complete(self, hook: CompletionHook) -> None:
        """Register *hook* to run once the message is frozen.

        Runs immediately if the accumulator has already completed.
        """
        if self._complete and self._error is None:
            task = asyncio.ensure_future(_run_hook(hook, self.snapshot()))
            self._hook_tasks.add(task)
            task.add_done_callback(self._hook_tasks.discard)
            return
        self._hooks.append(hook)

    def __repr__(self) -> str:
        return f"<TokenAccumulator {self.snapshot().debug_repr()!r}>"

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def __aiter__(self) -> AsyncIterator[str]:
        return self._reader()

    async def _reader(self) -> AsyncIterator[str]:
        index = 0
        while True:
            if index < len(self._tokens):
                token = self._tokens[index]
                index += 1
                yield token
                continue
            if self._error is not None:
                raise self._error
            if self._complete:
                return
            await self._advance()

    async def result(self) -> AccumulatedMessage:
        """Drive the stream to completion and return the final message."""
        async for _ in self:
            pass
        return self.snapshot()

    async def text(self) -> str:
        return (await self.result()).content

    async def aclose(self) -> None:
        """Stop early: release the stream and freeze the message as is."""
        step = self._step
        if step is not None and not step.done():
            step.cancel()
            await asyncio.wait([step])
        if not self._complete:
            await self._finish()

    # ------------------------------------------------------------------
    # Production
    # ------------------------------------------------------------------

    async def _advance(self) -> None:
        """Wait for the running pull step, starting one if there is none."""
        step = self._step
        if step is None or step.done():
            step = self._step = asyncio.ensure_future(self._pull())
        try:
            await asyncio.shield(step)
        except asyncio.CancelledError:
            # A step stopped by aclose() leaves a frozen message to replay
            if not step.cancelled():
                raise

    async def _pull(self) -> None:
        """Advance until one non-empty token is appended or the stream ends.

        Empty decodes mean "nothing yet" and are skipped.
        """
        assert self._chunks is not None and self._decoder is not None
        try:
            while True:
                chunk = await self._chunks.next()
                if chunk is END_OF_STREAM:
                    await self._finish()
                    return

                _logger.debug("Got message: %r", chunk)
                decoded = self._decoder(chunk, self.query_type)
                produced = False
                for token in decoded.tokens:
                    if token:
                        self._tokens.append(token)
                        self._content += token
                        produced = True

                if decoded.terminated:
                    await self._finish()
                    return
                if produced:
                    return
        except asyncio.CancelledError:
            # Only aclose() cancels a step; freeze before readers resume
            await self._finish()
            raise
        except Exception as e:
            self._error = e
            self._complete = True
            self._hooks.clear()
            await self._chunks.aclose()
            raise

    async def _finish(self) -> None:
        self._complete = True
        if self._chunks is not None:
            await self._chunks.aclose()
        _logger.debug(
            "%s stream complete (%d tokens, %d chars)",
            self.query_type.value, len(self._tokens), len(self._content),
        )
        hooks, self._hooks = self._hooks, []
        message = self.snapshot()
        for hook in hooks:
            await _run_hook(hook, message)


async def _run_hook(hook: CompletionHook, message: AccumulatedMessage) -> None:
    try:
        result = hook(message)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _logger.exception(
            "Completion hook %s raised",
            getattr(hook, "__name__", hook),
        )
