"""Tests for request building and conversation rendering."""

from __future__ import annotations

import pytest

from model_provider.errors import ErrorCode, UnsupportedInputError
from model_provider.request_builder import Prompt, build_prompt, build_request, render_messages
from model_provider.types import (
    CallProps,
    ChatMessage,
    ConversationElement,
    ElementKind,
    ImageSegment,
    QueryType,
    TextSegment,
)


class TestBuildRequest:
    def test_options_omitted_when_untuned(self):
        props = CallProps(model="llama2", stream=True)
        payload = build_request(QueryType.COMPLETION, props, Prompt("hi")).to_payload()
        assert payload == {"model": "llama2", "stream": True, "prompt": "hi"}
        assert "options" not in payload

    def test_only_set_options_serialized(self):
        props = CallProps(model="llama2", temperature=0.7, top_k=40, num_ctx=4096)
        payload = build_request(QueryType.COMPLETION, props, Prompt("hi")).to_payload()
        assert payload["options"] == {"temperature": 0.7, "top_k": 40, "num_ctx": 4096}

    def test_zero_is_a_set_value(self):
        props = CallProps(model="llama2", temperature=0.0, seed=0)
        payload = build_request(QueryType.COMPLETION, props, Prompt("hi")).to_payload()
        assert payload["options"] == {"temperature": 0.0, "seed": 0}

    def test_chat_messages(self):
        messages = [ChatMessage("system", "be brief"), ChatMessage("user", "hi")]
        payload = build_request(QueryType.CHAT, CallProps(model="m"), messages).to_payload()
        assert payload == {
            "model": "m",
            "messages": [
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "hi"},
            ],
        }

    def test_embedding_input(self):
        props = CallProps(model="m", stream=True)
        payload = build_request(QueryType.EMBEDDING, props, "text to embed").to_payload()
        assert payload == {"model": "m", "prompt": "text to embed"}

    def test_extra_props_sent_top_level(self):
        props = CallProps.from_kwargs(model="llama2", context=[1, 2, 3])
        payload = build_request(QueryType.COMPLETION, props, Prompt("hi")).to_payload()
        assert payload == {"model": "llama2", "prompt": "hi", "context": [1, 2, 3]}

    def test_completion_from_plain_string(self):
        request = build_request(QueryType.COMPLETION, CallProps(), "raw")
        assert request.prompt == "raw"
        assert request.images is None


class TestBuildPrompt:
    def test_plain_text(self):
        assert build_prompt("hello") == Prompt("hello")

    def test_images_become_placeholders(self):
        prompt = build_prompt([
            TextSegment("compare "),
            ImageSegment("AAA"),
            TextSegment(" and "),
            ImageSegment("BBB"),
        ])
        assert prompt.text == "compare [img-0] and [img-1]"
        assert prompt.images == ["AAA", "BBB"]

    def test_unknown_segment_rejected(self):
        with pytest.raises(TypeError):
            build_prompt([object()])  # type: ignore[list-item]


class TestRenderMessages:
    def test_roles(self):
        messages = render_messages([
            ConversationElement.system("sys"),
            ConversationElement.user("usr"),
            ConversationElement.assistant("asst"),
        ])
        assert [(m.role, m.content) for m in messages] == [
            ("system", "sys"), ("user", "usr"), ("assistant", "asst"),
        ]

    def test_images_attached_to_message(self):
        messages = render_messages([
            ConversationElement.user([TextSegment("what is "), ImageSegment("IMG")]),
        ])
        assert messages[0].to_dict() == {
            "role": "user", "content": "what is [img-0]", "images": ["IMG"],
        }

    def test_function_call_rejected(self):
        with pytest.raises(UnsupportedInputError) as exc_info:
            render_messages([ConversationElement(ElementKind.FUNCTION_CALL, "f()")])
        assert exc_info.value.code is ErrorCode.FUNCTION_CALL_UNSUPPORTED
        assert "function calls" in str(exc_info.value)

    def test_function_response_rejected(self):
        with pytest.raises(UnsupportedInputError) as exc_info:
            render_messages([
                ConversationElement.user("hi"),
                ConversationElement(ElementKind.FUNCTION_RESPONSE, "42"),
            ])
        assert exc_info.value.code is ErrorCode.FUNCTION_RESPONSE_UNSUPPORTED

    def test_empty_rejected(self):
        with pytest.raises(UnsupportedInputError) as exc_info:
            render_messages([])
        assert exc_info.value.code is ErrorCode.MISSING_CHILDREN
