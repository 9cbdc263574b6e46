"""Provider-specific chunk decoders.

A decoder has the signature::

    decode(chunk, query_type) -> DecodedChunk

Text chunks are returned unchanged.  Byte chunks are treated as one or
more newline-delimited JSON objects; a segment that does not start with
``{`` has everything before its first ``{`` discarded, and a segment
carrying ``[DONE]`` terminates the stream.  Anything else that fails to
parse raises ``DecodeError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterator, Union

from model_provider.errors import DecodeError
from model_provider.types import DecodedChunk, QueryType, RawChunk

_logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

ChunkDecoder = Callable[[RawChunk, QueryType], DecodedChunk]

# One parsed JSON object, or the termination marker
_Item = Union[dict[str, Any], None]

_json = json.JSONDecoder()


# ---------------------------------------------------------------------------
# Shared segment parsing
# ---------------------------------------------------------------------------

def _to_text(chunk: bytes) -> str:
    try:
        return chunk.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise DecodeError(chunk.decode("utf-8", errors="replace"), f"Invalid UTF-8 ({e.reason})") from e


def _iter_objects(segment: str) -> Iterator[_Item]:
    """Yield every JSON object in *segment*; ``None`` marks the sentinel.

    Handles leading framing (``data: {...}``) and several objects
    concatenated on one line.
    """
    pos = 0
    while pos < len(segment):
        start = segment.find("{", pos)
        prefix = segment[pos:] if start < 0 else segment[pos:start]
        if DONE_SENTINEL in prefix:
            yield None
            return
        if start < 0:
            if prefix.strip():
                raise DecodeError(segment)
            return
        try:
            obj, end = _json.raw_decode(segment, start)
        except json.JSONDecodeError as e:
            raise DecodeError(segment) from e
        if not isinstance(obj, dict):
            raise DecodeError(segment, "Expected a JSON object")
        yield obj
        pos = end


def _iter_items(chunk: bytes) -> Iterator[_Item]:
    text = _to_text(chunk)
    for line in text.split("\n"):
        segment = line.strip()
        if not segment:
            continue
        yield from _iter_objects(segment)


def _decode_with(
    chunk: RawChunk,
    query_type: QueryType,
    extract: Callable[[dict[str, Any], QueryType], str],
) -> DecodedChunk:
    if isinstance(chunk, str):
        return DecodedChunk(tokens=(chunk,))

    tokens: list[str] = []
    for item in _iter_items(chunk):
        if item is None:
            return DecodedChunk(tokens=tuple(tokens), terminated=True)
        tokens.append(extract(item, query_type))
    return DecodedChunk(tokens=tuple(tokens))


def _lookup(data: dict[str, Any], *path: str | int) -> Any:
    """Follow *path* through nested dicts/lists; raise DecodeError if absent."""
    node: Any = data
    for key in path:
        try:
            node = node[key]
        except (KeyError, IndexError, TypeError):
            raise DecodeError(json.dumps(data), f"Missing field {'.'.join(map(str, path))}") from None
    return node


def _openai_chat_content(data: dict[str, Any]) -> str:
    """``choices[0].message.content`` or the ``content`` of ``choices[0].delta``."""
    choice = _lookup(data, "choices", 0)
    message = choice.get("message")
    if message is not None and message.get("content") is not None:
        return message["content"]
    delta = choice.get("delta") or {}
    return "".join(v for k, v in delta.items() if k == "content" and v)


# ---------------------------------------------------------------------------
# Ollama: NDJSON, message.content / response
# ---------------------------------------------------------------------------

def _ollama_extract(data: dict[str, Any], query_type: QueryType) -> str:
    if "error" in data:
        raise DecodeError(json.dumps(data), f"Ollama error: {data['error']}")
    if query_type is QueryType.CHAT:
        return _lookup(data, "message", "content") or ""
    return data.get("response") or ""


def ollama_decoder(chunk: RawChunk, query_type: QueryType) -> DecodedChunk:
    """Decode an Ollama ``/chat`` or ``/generate`` stream chunk."""
    return _decode_with(chunk, query_type, _ollama_extract)


# ---------------------------------------------------------------------------
# Llamafile: OpenAI-style chat, llama.cpp ``content`` for completions
# ---------------------------------------------------------------------------

def _llamafile_extract(data: dict[str, Any], query_type: QueryType) -> str:
    if query_type is QueryType.CHAT:
        return _openai_chat_content(data)
    return _lookup(data, "content") or ""


def llamafile_decoder(chunk: RawChunk, query_type: QueryType) -> DecodedChunk:
    """Decode a llamafile server stream chunk."""
    return _decode_with(chunk, query_type, _llamafile_extract)


# ---------------------------------------------------------------------------
# TogetherAI: OpenAI-style chat, ``choices[0].text`` or
# ``output.choices[0].text`` for completions, ``[DONE]`` sentinel
# ---------------------------------------------------------------------------

def _together_extract(data: dict[str, Any], query_type: QueryType) -> str:
    if query_type is QueryType.CHAT:
        return _openai_chat_content(data)
    if "output" in data:
        return _lookup(data, "output", "choices", 0, "text") or ""
    return _lookup(data, "choices", 0, "text") or ""


def together_decoder(chunk: RawChunk, query_type: QueryType) -> DecodedChunk:
    """Decode a TogetherAI stream chunk."""
    return _decode_with(chunk, query_type, _together_extract)
