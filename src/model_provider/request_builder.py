"""Request building: conversation rendering and payload mapping.

A request builder has the signature::

    build(query_type, props, body) -> ModelRequest

where *body* is a list of ``ChatMessage`` for CHAT, a ``Prompt`` for
COMPLETION and the text to embed for EMBEDDING.  Providers may replace
``build_request`` entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence, Union

from model_provider.errors import ErrorCode, UnsupportedInputError
from model_provider.types import (
    CallProps,
    ChatMessage,
    ConversationElement,
    ElementKind,
    ImageSegment,
    ModelRequest,
    QueryType,
    Segment,
    TextSegment,
)

_logger = logging.getLogger(__name__)


@dataclass
class Prompt:
    """Completion prompt text plus the images it references."""

    text: str
    images: list[str] = field(default_factory=list)


RequestBody = Union[Sequence[ChatMessage], Prompt, str]
RequestBuilder = Callable[[QueryType, CallProps, RequestBody], ModelRequest]


# ---------------------------------------------------------------------------
# Conversation rendering
# ---------------------------------------------------------------------------

_ROLES = {
    ElementKind.SYSTEM: "system",
    ElementKind.USER: "user",
    ElementKind.ASSISTANT: "assistant",
}


def build_prompt(content: str | Sequence[Segment]) -> Prompt:
    """Flatten text/image segments into prompt text.

    Each image is replaced by an ``[img-N]`` placeholder and collected,
    in order, into ``Prompt.images``.
    """
    if isinstance(content, str):
        return Prompt(text=content)

    parts: list[str] = []
    images: list[str] = []
    for segment in content:
        if isinstance(segment, ImageSegment):
            parts.append(f"[img-{len(images)}]")
            images.append(segment.data)
        elif isinstance(segment, TextSegment):
            parts.append(segment.text)
        else:
            raise TypeError(f"Unsupported prompt segment: {type(segment).__name__}")
    return Prompt(text="".join(parts), images=images)


def render_messages(elements: Sequence[ConversationElement]) -> list[ChatMessage]:
    """Turn rendered conversation elements into wire messages.

    Raises ``UnsupportedInputError`` for function calls, function
    responses, or when no usable element remains.
    """
    for element in elements:
        if element.kind is ElementKind.FUNCTION_CALL:
            raise UnsupportedInputError(
                ErrorCode.FUNCTION_CALL_UNSUPPORTED,
                "ModelProvider does not support function calls. "
                "Please use a system message instead.",
            )
        if element.kind is ElementKind.FUNCTION_RESPONSE:
            raise UnsupportedInputError(
                ErrorCode.FUNCTION_RESPONSE_UNSUPPORTED,
                "ModelProvider does not support function responses. "
                "Please use a system message instead.",
            )

    messages: list[ChatMessage] = []
    for element in elements:
        prompt = build_prompt(element.content)
        messages.append(
            ChatMessage(
                role=_ROLES[element.kind],
                content=prompt.text,
                images=prompt.images or None,
            )
        )

    if not messages:
        raise UnsupportedInputError(
            ErrorCode.MISSING_CHILDREN,
            "Chat completion must have at least one system, user or "
            "assistant message but none were found.",
        )
    return messages


# ---------------------------------------------------------------------------
# Default builder
# ---------------------------------------------------------------------------

def build_request(
    query_type: QueryType,
    props: CallProps,
    body: RequestBody,
) -> ModelRequest:
    """Default mapping of generic props onto a provider payload.

    ``options`` is only present when at least one tuning field is set.
    Unknown props (``props.extra``, e.g. Ollama's ``context``) are sent
    top-level.
    """
    tuning = props.tuning()
    request = ModelRequest(
        query_type=query_type,
        model=props.model,
        stream=props.stream if query_type is not QueryType.EMBEDDING else None,
        options=tuning or None,
        extra=dict(props.extra),
    )
    if query_type is QueryType.CHAT:
        request.messages = list(body)  # type: ignore[arg-type]
    elif query_type is QueryType.COMPLETION:
        prompt = body if isinstance(body, Prompt) else Prompt(text=str(body))
        request.prompt = prompt.text
        request.images = prompt.images or None
    else:
        request.input = body.text if isinstance(body, Prompt) else str(body)
    return request
