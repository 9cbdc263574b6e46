"""Streaming inference pipeline for Ollama, Llamafile and TogetherAI."""

from model_provider.accumulator import TokenAccumulator
from model_provider.chunks import END_OF_STREAM, ChunkIterator
from model_provider.config import EndpointSpec, Settings, load_settings
from model_provider.decoders import llamafile_decoder, ollama_decoder, together_decoder
from model_provider.errors import (
    ConfigurationError,
    DecodeError,
    ErrorCode,
    ModelProviderError,
    TransportError,
    UnsupportedInputError,
)
from model_provider.memo import MemoCache, ModelCall
from model_provider.provider import ModelProvider, ProviderConfig
from model_provider.providers import PROVIDERS, create_provider, llamafile, ollama, together_ai
from model_provider.request_builder import Prompt, build_prompt, build_request, render_messages
from model_provider.transport import CancellationToken, Transport
from model_provider.types import (
    AccumulatedMessage,
    CallProps,
    ChatMessage,
    ConversationElement,
    DecodedChunk,
    ElementKind,
    ImageSegment,
    ModelRequest,
    QueryType,
    TextSegment,
)

__all__ = [
    "AccumulatedMessage",
    "CallProps",
    "CancellationToken",
    "ChatMessage",
    "ChunkIterator",
    "ConfigurationError",
    "ConversationElement",
    "DecodeError",
    "DecodedChunk",
    "END_OF_STREAM",
    "ElementKind",
    "EndpointSpec",
    "ErrorCode",
    "ImageSegment",
    "MemoCache",
    "ModelCall",
    "ModelProvider",
    "ModelProviderError",
    "ModelRequest",
    "PROVIDERS",
    "Prompt",
    "ProviderConfig",
    "QueryType",
    "Settings",
    "TextSegment",
    "TokenAccumulator",
    "Transport",
    "TransportError",
    "UnsupportedInputError",
    "build_prompt",
    "build_request",
    "create_provider",
    "llamafile",
    "llamafile_decoder",
    "load_settings",
    "ollama",
    "ollama_decoder",
    "render_messages",
    "together_ai",
    "together_decoder",
]
