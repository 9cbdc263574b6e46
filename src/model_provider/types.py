"""Shared data types for model_provider."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Any, Sequence, Union

from model_provider.images import load_image


# ---------------------------------------------------------------------------
# Query types
# ---------------------------------------------------------------------------

class QueryType(enum.Enum):
    """Shape of an inference call; selects request body and endpoint."""

    CHAT = "chat"
    COMPLETION = "completion"
    EMBEDDING = "embedding"


# ---------------------------------------------------------------------------
# Conversation input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextSegment:
    """Plain text rendered by the host."""

    text: str


@dataclass(frozen=True)
class ImageSegment:
    """A base64 encoded image (LLaVA style multimodal input)."""

    data: str

    @classmethod
    def from_source(cls, source: str, use_fetch: bool = False) -> ImageSegment:
        return cls(data=load_image(source, use_fetch=use_fetch))


Segment = Union[TextSegment, ImageSegment]


class ElementKind(enum.Enum):
    """Kind of a rendered conversation element."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION_CALL = "functionCall"
    FUNCTION_RESPONSE = "functionResponse"


@dataclass
class ConversationElement:
    """One element of a conversation as rendered by the host.

    ``content`` is either already-rendered text or a sequence of
    text/image segments.
    """

    kind: ElementKind
    content: str | Sequence[Segment] = ""

    @classmethod
    def system(cls, content: str | Sequence[Segment]) -> ConversationElement:
        return cls(ElementKind.SYSTEM, content)

    @classmethod
    def user(cls, content: str | Sequence[Segment]) -> ConversationElement:
        return cls(ElementKind.USER, content)

    @classmethod
    def assistant(cls, content: str | Sequence[Segment]) -> ConversationElement:
        return cls(ElementKind.ASSISTANT, content)


# ---------------------------------------------------------------------------
# Request types
# ---------------------------------------------------------------------------

@dataclass
class ChatMessage:
    """Message in the wire format shared by all providers."""

    role: str  # system | user | assistant
    content: str
    images: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.images:
            data["images"] = list(self.images)
        return data


# Tuning parameters copied into ``options`` when set.
# @see https://github.com/jmorganca/ollama/blob/main/docs/modelfile.md#valid-parameters-and-values
TUNING_FIELDS = (
    "mirostat",
    "mirostat_eta",
    "mirostat_tau",
    "num_ctx",
    "num_gqa",
    "num_gpu",
    "num_thread",
    "repeat_last_n",
    "repeat_penalty",
    "temperature",
    "seed",
    "stop",
    "tfs_z",
    "num_predict",
    "top_k",
    "top_p",
)


@dataclass
class CallProps:
    """Generic per-call parameters supplied by the caller.

    ``None`` means "not set".  Unset fields never reach the wire.
    """

    model: str | None = None
    stream: bool | None = None

    mirostat: int | None = None
    mirostat_eta: float | None = None
    mirostat_tau: float | None = None
    num_ctx: int | None = None
    num_gqa: int | None = None
    num_gpu: int | None = None
    num_thread: int | None = None
    repeat_last_n: int | None = None
    repeat_penalty: float | None = None
    temperature: float | None = None
    seed: int | None = None
    stop: str | None = None
    tfs_z: float | None = None
    num_predict: int | None = None
    top_k: int | None = None
    top_p: float | None = None

    # Provider-specific extras (e.g. TogetherAI prompt_format_string)
    extra: dict[str, Any] = field(default_factory=dict)

    def tuning(self) -> dict[str, Any]:
        """Return the tuning parameters that are set."""
        values = {name: getattr(self, name) for name in TUNING_FIELDS}
        return {k: v for k, v in values.items() if v is not None}

    def merged(self, overrides: CallProps) -> CallProps:
        """Return a copy where every set field of *overrides* wins."""
        data: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(overrides, f.name)
            data[f.name] = value if value is not None else getattr(self, f.name)
        data["extra"] = {**self.extra, **overrides.extra}
        return CallProps(**data)

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> CallProps:
        """Build props from keyword arguments; unknown keys go to ``extra``."""
        known = {f.name for f in fields(cls)} - {"extra"}
        extra = dict(kwargs.pop("extra", None) or {})
        props = {k: v for k, v in kwargs.items() if k in known}
        extra.update({k: v for k, v in kwargs.items() if k not in known})
        return cls(**props, extra=extra)


@dataclass
class ModelRequest:
    """Provider payload for one inference call.

    Exactly one of ``messages`` / ``prompt`` / ``input`` is set, matching
    ``query_type``.  ``extra`` is merged last so a provider can add or
    rename arbitrary fields.
    """

    query_type: QueryType
    model: str | None = None
    stream: bool | None = None
    options: dict[str, Any] | None = None
    messages: list[ChatMessage] | None = None
    prompt: str | None = None
    images: list[str] | None = None
    input: str | None = None
    input_field: str = "prompt"
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict, pruning every unset field."""
        payload: dict[str, Any] = {
            "model": self.model,
            "stream": self.stream,
        }
        if self.options:
            payload["options"] = dict(self.options)
        if self.query_type is QueryType.CHAT:
            payload["messages"] = [m.to_dict() for m in self.messages or []]
        elif self.query_type is QueryType.COMPLETION:
            payload["prompt"] = self.prompt
            if self.images:
                payload["images"] = list(self.images)
        else:
            payload[self.input_field] = self.input
        payload.update(self.extra)
        return {k: v for k, v in payload.items() if v is not None}


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------

RawChunk = Union[str, bytes]


@dataclass(frozen=True)
class DecodedChunk:
    """Result of decoding one raw chunk.

    ``terminated`` is set when a sentinel such as ``[DONE]`` was seen;
    tokens decoded before the sentinel are still delivered.
    """

    tokens: tuple[str, ...] = ()
    terminated: bool = False


@dataclass(frozen=True)
class AccumulatedMessage:
    """Immutable snapshot of an accumulator's message."""

    role: str = "assistant"
    content: str = ""
    complete: bool = False
    unavailable: bool = False

    def debug_repr(self) -> str:
        """Content with a cursor while the message is still growing."""
        return self.content if self.complete else f"{self.content}▮"
