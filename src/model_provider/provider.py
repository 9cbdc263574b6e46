"""Provider composition and the uniform call surface.

A ``ProviderConfig`` bundles the pluggable pieces of one backend (request
builder, endpoints, chunk decoder, optional embedding function).
``ModelProvider`` composes them with a ``Transport`` and hands the host
lazily-started, memoized ``ModelCall`` objects.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from model_provider.accumulator import TokenAccumulator
from model_provider.decoders import ChunkDecoder
from model_provider.errors import ConfigurationError, DecodeError
from model_provider.memo import MemoCache, ModelCall
from model_provider.request_builder import (
    RequestBuilder,
    build_prompt,
    build_request,
    render_messages,
)
from model_provider.transport import CancellationToken, Transport
from model_provider.types import (
    AccumulatedMessage,
    CallProps,
    ChatMessage,
    ConversationElement,
    ModelRequest,
    QueryType,
    Segment,
)

_logger = logging.getLogger(__name__)

EmbeddingFn = Callable[["ModelProvider", str, CallProps], Awaitable[list[float]]]
ConversationLogger = Callable[[list[ChatMessage], AccumulatedMessage], Any]


def log_conversation(conversation: list[ChatMessage], completion: AccumulatedMessage) -> None:
    """Default conversation logger."""
    _logger.debug(
        "Conversation: %s",
        [m.to_dict() for m in conversation] + [
            {"role": completion.role, "content": completion.content},
        ],
    )


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderConfig:
    """Immutable description of one inference backend."""

    name: str
    endpoint_base: str
    endpoints: Mapping[QueryType, str] = field(default_factory=dict)
    chunk_decoder: ChunkDecoder | None = None
    request_builder: RequestBuilder = build_request
    auth_headers: Mapping[str, str] = field(default_factory=dict)
    defaults: CallProps = field(default_factory=CallProps)
    embedding_fn: EmbeddingFn | None = None

    def endpoint(self, query_type: QueryType) -> str:
        path = self.endpoints.get(query_type)
        if path is None:
            raise ConfigurationError(f"{query_type.value} endpoint")
        return f"{self.endpoint_base.rstrip('/')}{path}"


def json_embedding(*path: str | int) -> EmbeddingFn:
    """Embedding function that POSTs the request and reads the vector at *path*."""

    async def _embed(provider: ModelProvider, text: str, props: CallProps) -> list[float]:
        config = provider.config
        request = config.request_builder(QueryType.EMBEDDING, props, text)
        data = await provider.transport.post_json(
            config.endpoint(QueryType.EMBEDDING),
            request.to_payload(),
            config.auth_headers,
        )
        node: Any = data
        for key in path:
            try:
                node = node[key]
            except (KeyError, IndexError, TypeError):
                raise DecodeError(str(data), f"Missing field {'.'.join(map(str, path))}") from None
        return [float(v) for v in node]

    return _embed


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class ModelProvider:
    """Uniform call surface over one configured backend.

    Parameters
    ----------
    config:
        The backend's ``ProviderConfig``.
    transport:
        An optional pre-built ``Transport``.  If ``None``, one is created
        and closed by ``aclose()``.
    conversation_logger:
        Called once per call with the request conversation and the frozen
        completion.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: Transport | None = None,
        conversation_logger: ConversationLogger | None = log_conversation,
    ) -> None:
        self.config = config
        self._owns_transport = transport is None
        self.transport = transport or Transport()
        self._conversation_logger = conversation_logger
        self._memo = MemoCache()

    @property
    def name(self) -> str:
        return self.config.name

    def props(self, **overrides: Any) -> CallProps:
        """Provider defaults overridden by every set keyword."""
        return self.config.defaults.merged(CallProps.from_kwargs(**overrides))

    # ------------------------------------------------------------------
    # Low level
    # ------------------------------------------------------------------

    async def query(
        self,
        query_type: QueryType,
        request: ModelRequest,
        token: CancellationToken | None = None,
    ) -> TokenAccumulator | None:
        """Issue *request* and return its accumulator.

        Returns ``None`` when the backend gave no response.
        """
        decoder = self.config.chunk_decoder
        if decoder is None:
            raise ConfigurationError("chunkDecoder")
        endpoint = self.config.endpoint(query_type)
        payload = request.to_payload()
        _logger.debug(
            "Calling model %s at %s: %s", payload.get("model"), endpoint, payload,
        )

        chunks = await self.transport.call(
            endpoint, payload, self.config.auth_headers, token,
        )
        if chunks is None:
            return None
        return TokenAccumulator(query_type, chunks, decoder)

    # ------------------------------------------------------------------
    # Host surface
    # ------------------------------------------------------------------

    def chat(self, conversation: Sequence[ConversationElement], **props: Any) -> ModelCall:
        """Chat completion over a rendered conversation.

        Unsupported elements are rejected here, before any network call.
        """
        messages = render_messages(conversation)
        request = self.config.request_builder(QueryType.CHAT, self.props(**props), messages)
        return self._deferred(QueryType.CHAT, request, messages)

    def complete(self, prompt: str | Sequence[Segment], **props: Any) -> ModelCall:
        """Text completion; image segments become ``[img-N]`` placeholders."""
        body = build_prompt(prompt)
        request = self.config.request_builder(QueryType.COMPLETION, self.props(**props), body)
        conversation = [ChatMessage(role="user", content=body.text, images=body.images or None)]
        return self._deferred(QueryType.COMPLETION, request, conversation)

    def memo(self, key: Hashable, factory: Callable[[], ModelCall]) -> ModelCall:
        """Return the call memoized under *key*, creating it at most once."""
        return self._memo.get_or_create(key, factory)

    async def embed(self, text: str, **props: Any) -> list[float]:
        if self.config.embedding_fn is None:
            raise ConfigurationError("embed")
        return await self.config.embedding_fn(self, text, self.props(**props))

    async def aclose(self) -> None:
        self._memo.clear()
        if self._owns_transport:
            await self.transport.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _deferred(
        self,
        query_type: QueryType,
        request: ModelRequest,
        conversation: list[ChatMessage],
    ) -> ModelCall:
        async def _start() -> TokenAccumulator:
            acc = await self.query(query_type, request)
            if acc is None:
                acc = TokenAccumulator.empty(query_type)
            if self._conversation_logger is not None:
                logger = self._conversation_logger
                acc.on_complete(lambda message: logger(conversation, message))
            return acc

        return ModelCall(_start, name=f"{self.name}:{query_type.value}")
