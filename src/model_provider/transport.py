"""HTTP transport for streamed inference calls.

Uses ``httpx.AsyncClient`` in streaming mode.  A failed streaming call
is logged and reported as ``None`` ("no response") rather than raised:
an unreachable backend must not abort unrelated work.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Mapping

import httpx

from model_provider.chunks import ChunkIterator
from model_provider.errors import TransportError

_logger = logging.getLogger(__name__)

_Callback = Callable[[], Any]


class CancellationToken:
    """Cancellation signal bound to the lifetime of one call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[_Callback] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def add_callback(self, callback: _Callback) -> None:
        """Run *callback* on cancellation (at most once)."""
        self._callbacks.append(callback)

    async def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            result = callback()
            if inspect.isawaitable(result):
                await result

    async def wait(self) -> None:
        await self._event.wait()


class Transport:
    """Issues streamed POST requests and hands back a ``ChunkIterator``."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120,
        read_timeout: float = 300,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30, read=read_timeout),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def call(
        self,
        endpoint: str,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        token: CancellationToken | None = None,
    ) -> ChunkIterator | None:
        """POST *payload* and return the body as a chunk iterator.

        Returns ``None`` on a connection error, a non-2xx status or an
        empty body; *token* is cancelled in each of those cases.
        """
        token = token or CancellationToken()
        if token.cancelled:
            return None

        request = self._client.build_request(
            "POST", endpoint, json=payload, headers=dict(headers or {}),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            _logger.warning("Request to %s failed: %s (no response)", endpoint, e)
            await token.cancel()
            return None

        if not response.is_success or _has_no_body(response):
            body = ""
            try:
                body = (await response.aread()).decode(errors="replace")
            except httpx.HTTPError as e:
                _logger.debug("Could not read error body from %s: %s", endpoint, e)
            finally:
                await response.aclose()
            _logger.warning(
                "%s returned %d: %s (no response)",
                endpoint, response.status_code, body[:500],
            )
            await token.cancel()
            return None

        chunks = ChunkIterator.from_response(response)
        token.add_callback(chunks.aclose)
        return chunks

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def post_json(
        self,
        endpoint: str,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """POST *payload* and return the decoded JSON body.

        Raises ``TransportError`` on any failure.
        """
        try:
            resp = await self._client.post(
                endpoint, json=payload, headers=dict(headers or {}),
            )
        except httpx.HTTPError as e:
            raise TransportError(None, str(e)) from e
        if not resp.is_success:
            raise TransportError(resp.status_code, resp.text)
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(resp.status_code, "invalid JSON response") from e

    async def close(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()


def _has_no_body(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.headers.get("content-length") == "0"

