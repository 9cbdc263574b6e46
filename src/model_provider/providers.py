"""Concrete providers: Ollama, Llamafile and TogetherAI.

Each factory reads its ``EndpointSpec`` once and freezes it into a
``ProviderConfig``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from model_provider.config import EndpointSpec, Settings, load_settings
from model_provider.decoders import llamafile_decoder, ollama_decoder, together_decoder
from model_provider.provider import (
    ConversationLogger,
    ModelProvider,
    ProviderConfig,
    json_embedding,
    log_conversation,
)
from model_provider.request_builder import Prompt, RequestBody, build_request
from model_provider.transport import Transport
from model_provider.types import CallProps, ModelRequest, QueryType

_logger = logging.getLogger(__name__)


def _transport_for(settings: Settings, transport: Transport | None) -> Transport:
    return transport or Transport(timeout=settings.timeout, read_timeout=settings.read_timeout)


def _defaults(endpoint: EndpointSpec, overrides: dict[str, Any]) -> CallProps:
    return CallProps(model=endpoint.model).merged(CallProps.from_kwargs(**overrides))


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

OLLAMA_ENDPOINTS = {
    QueryType.CHAT: "/chat",
    QueryType.COMPLETION: "/generate",
    QueryType.EMBEDDING: "/embeddings",
}


def ollama_config(endpoint: EndpointSpec, **defaults: Any) -> ProviderConfig:
    return ProviderConfig(
        name="ollama",
        endpoint_base=endpoint.base_url,
        endpoints=OLLAMA_ENDPOINTS,
        chunk_decoder=ollama_decoder,
        defaults=_defaults(endpoint, defaults),
        embedding_fn=json_embedding("embedding"),
    )


def ollama(
    settings: Settings | None = None,
    transport: Transport | None = None,
    conversation_logger: ConversationLogger | None = log_conversation,
    **defaults: Any,
) -> ModelProvider:
    """Provider for an Ollama server (``/api/chat``, ``/api/generate``)."""
    settings = settings or load_settings()
    return ModelProvider(
        ollama_config(settings.ollama, **defaults),
        transport=_transport_for(settings, transport),
        conversation_logger=conversation_logger,
    )


# ---------------------------------------------------------------------------
# Llamafile
# ---------------------------------------------------------------------------

LLAMAFILE_ENDPOINTS = {
    QueryType.CHAT: "/v1/chat/completions",
    QueryType.COMPLETION: "/completion",
    QueryType.EMBEDDING: "/embedding",
}


def llamafile_request(query_type: QueryType, props: CallProps, body: RequestBody) -> ModelRequest:
    """Default mapping, but always streamed; embeddings read ``content``."""
    request = build_request(query_type, props, body)
    if query_type is QueryType.EMBEDDING:
        request.input_field = "content"
        request.stream = None
    else:
        request.stream = True
    return request


def llamafile_config(endpoint: EndpointSpec, **defaults: Any) -> ProviderConfig:
    return ProviderConfig(
        name="llamafile",
        endpoint_base=endpoint.base_url,
        endpoints=LLAMAFILE_ENDPOINTS,
        chunk_decoder=llamafile_decoder,
        request_builder=llamafile_request,
        defaults=_defaults(endpoint, defaults),
        embedding_fn=json_embedding("embedding"),
    )


def llamafile(
    settings: Settings | None = None,
    transport: Transport | None = None,
    conversation_logger: ConversationLogger | None = log_conversation,
    **defaults: Any,
) -> ModelProvider:
    """Provider for a llamafile / llama.cpp server."""
    settings = settings or load_settings()
    return ModelProvider(
        llamafile_config(settings.llamafile, **defaults),
        transport=_transport_for(settings, transport),
        conversation_logger=conversation_logger,
    )


# ---------------------------------------------------------------------------
# TogetherAI
# ---------------------------------------------------------------------------

TOGETHER_ENDPOINTS = {
    QueryType.CHAT: "/v1/chat/completions",
    QueryType.COMPLETION: "/api/inference",
    QueryType.EMBEDDING: "/v1/embeddings",
}

DEFAULT_PROMPT_FORMAT = "[INST]  {prompt}\n [/INST]"


def together_request(query_type: QueryType, props: CallProps, body: RequestBody) -> ModelRequest:
    """TogetherAI payload.

    Tuning parameters go top-level, the stream flag is also sent as
    ``stream_tokens`` and the prompt template as ``prompt_format_string``.
    """
    if query_type is QueryType.EMBEDDING:
        text = body.text if isinstance(body, Prompt) else str(body)
        return ModelRequest(
            query_type=query_type, model=props.model, input=text, input_field="input",
        )

    extra: dict[str, Any] = dict(props.tuning())
    extra.update(props.extra)
    extra.setdefault("prompt_format_string", DEFAULT_PROMPT_FORMAT)
    extra["stream_tokens"] = props.stream if props.stream is not None else False

    request = ModelRequest(
        query_type=query_type, model=props.model, stream=props.stream, extra=extra,
    )
    if query_type is QueryType.CHAT:
        request.messages = list(body)  # type: ignore[arg-type]
    else:
        prompt = body if isinstance(body, Prompt) else Prompt(text=str(body))
        request.prompt = prompt.text
        request.images = prompt.images or None
    return request


def together_config(endpoint: EndpointSpec, **defaults: Any) -> ProviderConfig:
    headers: dict[str, str] = {}
    if endpoint.api_key:
        headers["Authorization"] = f"Bearer {endpoint.api_key}"
    else:
        _logger.warning("No TogetherAI API key configured (TOGETHERAI_API_KEY)")
    return ProviderConfig(
        name="together",
        endpoint_base=endpoint.base_url,
        endpoints=TOGETHER_ENDPOINTS,
        chunk_decoder=together_decoder,
        request_builder=together_request,
        auth_headers=headers,
        defaults=_defaults(endpoint, defaults),
        embedding_fn=json_embedding("data", 0, "embedding"),
    )


def together_ai(
    settings: Settings | None = None,
    transport: Transport | None = None,
    conversation_logger: ConversationLogger | None = log_conversation,
    **defaults: Any,
) -> ModelProvider:
    """Provider for the TogetherAI hosted API."""
    settings = settings or load_settings()
    return ModelProvider(
        together_config(settings.together, **defaults),
        transport=_transport_for(settings, transport),
        conversation_logger=conversation_logger,
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ProviderFactory = Callable[..., ModelProvider]

PROVIDERS: dict[str, ProviderFactory] = {
    "ollama": ollama,
    "llamafile": llamafile,
    "together": together_ai,
}


def create_provider(name: str, settings: Settings | None = None, **kwargs: Any) -> ModelProvider:
    """Look up a provider factory by name and build it."""
    try:
        factory = PROVIDERS[name]
    except KeyError:
        raise KeyError(
            f"Unknown provider {name!r}; expected one of {sorted(PROVIDERS)}"
        ) from None
    return factory(settings, **kwargs)
