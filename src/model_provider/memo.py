"""Memoized inference calls.

``ModelCall`` is a lazy, single-assignment handle: the first observer
starts the underlying call and stores the resulting task; every observer,
the first included, then awaits that same task.  ``MemoCache`` maps host
supplied call identities onto ``ModelCall`` objects so a value that is
rendered many times is produced once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Hashable
from typing import Awaitable, Callable

from model_provider.accumulator import TokenAccumulator
from model_provider.types import AccumulatedMessage

_logger = logging.getLogger(__name__)

StartFn = Callable[[], Awaitable[TokenAccumulator]]


class ModelCall:
    """Deferred accumulator for one logical inference call."""

    def __init__(self, start: StartFn, name: str = "") -> None:
        self._start = start
        self._name = name
        self._task: asyncio.Task[TokenAccumulator] | None = None

    @property
    def started(self) -> bool:
        return self._task is not None

    def accumulator(self) -> asyncio.Task[TokenAccumulator]:
        """Return the shared task producing the accumulator.

        Creating and storing the task happens without suspension, so
        concurrent first reads resolve to the same task.
        """
        if self._task is None:
            _logger.debug("Starting model call %s", self._name or hex(id(self)))
            self._task = asyncio.ensure_future(self._start())
        return self._task

    def _shared(self) -> asyncio.Future[TokenAccumulator]:
        # Cancelling one observer must not cancel the call for the others
        return asyncio.shield(self.accumulator())

    def __aiter__(self) -> AsyncIterator[str]:
        return self._tokens()

    async def _tokens(self) -> AsyncIterator[str]:
        acc = await self._shared()
        async for token in acc:
            yield token

    async def result(self) -> AccumulatedMessage:
        acc = await self._shared()
        return await acc.result()

    async def text(self) -> str:
        return (await self.result()).content

    def snapshot(self) -> AccumulatedMessage:
        """Current message; empty and incomplete until the call has started."""
        if self._task is None or not self._task.done() or self._task.cancelled():
            return AccumulatedMessage()
        if self._task.exception() is not None:
            return AccumulatedMessage(complete=True)
        return self._task.result().snapshot()

    def __await__(self):
        return self.result().__await__()

    def __repr__(self) -> str:
        return f"<ModelCall {self._name!r} {self.snapshot().debug_repr()!r}>"


class MemoCache:
    """Single-assignment cache of ``ModelCall`` keyed by call identity."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, ModelCall] = {}

    def get_or_create(self, key: Hashable, factory: Callable[[], ModelCall]) -> ModelCall:
        """Return the call stored under *key*, creating it on first use.

        An entry is written at most once.
        """
        call = self._entries.get(key)
        if call is None:
            call = factory()
            self._entries[key] = call
        return call

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
