"""Tests for ChunkIterator."""

from __future__ import annotations

import asyncio

import httpx

from conftest import ChunkedStream
from model_provider.accumulator import TokenAccumulator
from model_provider.chunks import END_OF_STREAM, ChunkIterator
from model_provider.decoders import llamafile_decoder
from model_provider.types import QueryType


async def _drain(it: ChunkIterator) -> list:
    return [chunk async for chunk in it]


class TestNext:
    async def test_end_of_stream_marker(self):
        it = ChunkIterator.from_chunks([b"a\n"])
        assert await it.next() == b"a\n"
        assert await it.next() is END_OF_STREAM
        assert await it.next() is END_OF_STREAM

    async def test_single_pass(self):
        it = ChunkIterator.from_chunks([b"1\n", b"2\n"])
        assert await _drain(it) == [b"1\n", b"2\n"]
        assert await _drain(it) == []

    async def test_text_chunks_pass_through(self):
        it = ChunkIterator.from_chunks(["partial", "text"], reframe_lines=True)
        assert await _drain(it) == ["partial", "text"]


class TestReframing:
    async def test_split_object_is_joined(self):
        it = ChunkIterator.from_chunks(
            [b'{"response": "he', b'llo"}\n{"resp', b'onse": "!"}\n'],
            reframe_lines=True,
        )
        assert await _drain(it) == [b'{"response": "hello"}\n', b'{"response": "!"}\n']

    async def test_unterminated_tail_flushed(self):
        it = ChunkIterator.from_chunks([b"a\nb", b"c"], reframe_lines=True)
        assert await _drain(it) == [b"a\n", b"bc"]

    async def test_objects_without_newlines_are_delivered(self):
        it = ChunkIterator.from_chunks(
            [b'{"a": 1}{"b":', b' 2}{"c"', b': 3}'], reframe_lines=True,
        )
        assert await _drain(it) == [b'{"a": 1}', b'{"b": 2}', b'{"c": 3}']

    async def test_braces_inside_strings(self):
        it = ChunkIterator.from_chunks(
            [b'{"t": "}{\\""}{"u', b'": 1}'], reframe_lines=True,
        )
        assert await _drain(it) == [b'{"t": "}{\\""}', b'{"u": 1}']

    async def test_sse_prefix_kept_with_object(self):
        it = ChunkIterator.from_chunks([b'data: {"x": 1}'], reframe_lines=True)
        assert await it.next() == b'data: {"x": 1}'

    async def test_unterminated_body_streams_incrementally(self):
        blocked = asyncio.Event()

        async def source():
            yield b'{"content": "a"}'
            yield b'{"content": "b"}'
            await blocked.wait()

        it = ChunkIterator(source())
        acc = TokenAccumulator(QueryType.COMPLETION, it, llamafile_decoder)
        reader = acc.__aiter__()
        assert await asyncio.wait_for(reader.__anext__(), 0.2) == "a"
        assert await asyncio.wait_for(reader.__anext__(), 0.2) == "b"
        await acc.aclose()

    async def test_no_reframing(self):
        it = ChunkIterator.from_chunks([b"a", b"b"], reframe_lines=False)
        assert await _drain(it) == [b"a", b"b"]


class TestClose:
    async def test_close_is_idempotent(self):
        calls = []

        async def on_close():
            calls.append(1)

        async def source():
            yield b"x\n"

        it = ChunkIterator(source(), on_close=on_close)
        await it.aclose()
        await it.aclose()
        assert calls == [1]
        assert it.closed
        assert await it.next() is END_OF_STREAM

    async def test_exhaustion_closes(self):
        calls = []

        async def on_close():
            calls.append(1)

        async def source():
            yield b"x\n"

        it = ChunkIterator(source(), on_close=on_close)
        await _drain(it)
        assert calls == [1]

    async def test_from_response_closes_response(self):
        stream = ChunkedStream([b'{"a": 1}\n'])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=stream)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            request = client.build_request("POST", "http://test/api/generate")
            response = await client.send(request, stream=True)
            it = ChunkIterator.from_response(response)
            assert await _drain(it) == [b'{"a": 1}\n']

        assert response.is_closed
        assert stream.closed
