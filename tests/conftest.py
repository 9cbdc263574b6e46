"""Shared fixtures: in-memory HTTP backends built on httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from model_provider.transport import Transport


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered as the given network chunks."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def ndjson(*objects: dict[str, Any]) -> bytes:
    """Encode objects as newline-delimited JSON."""
    return b"".join(json.dumps(o).encode() + b"\n" for o in objects)


class FakeBackend:
    """Records requests and answers each with a streamed body."""

    def __init__(self, chunks: list[bytes] | None = None, status_code: int = 200) -> None:
        self.chunks = chunks or []
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        # May return a Response or an awaitable of one
        self.handler: Callable[[httpx.Request], Any] | None = None

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        return httpx.Response(self.status_code, stream=ChunkedStream(list(self.chunks)))

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def transport(self) -> Transport:
        return Transport(client=httpx.AsyncClient(transport=httpx.MockTransport(self)))


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
