"""Tests for request building."""

import pytest

from tests.mock_tools import EchoTool
from watsonx_chat.errors import (
    InvalidOptionCombination,
    ToolResponseMissingId,
    UnsupportedMediaType,
)
from watsonx_chat.llm.options import ChatOptions, reconcile
from watsonx_chat.llm.request import create_request, media_to_content, message_to_wire
from watsonx_chat.llm.types import (
    AssistantMessage,
    Media,
    SystemMessage,
    ToolCall,
    ToolResponse,
    ToolResponseMessage,
    UserMessage,
)


class TestMediaMapping:
    def test_image_bytes_become_data_url(self):
        part = media_to_content(Media(mime_type="image/png", data=b"\x89PNG"))
        assert part["type"] == "image_url"
        assert part["image_url"]["url"] == "data:image/png;base64,iVBORw=="
        assert part["image_url"]["detail"] == "auto"

    def test_audio_bytes_become_input_audio(self):
        part = media_to_content(Media(mime_type="audio/wav", data=b"abc"))
        assert part == {"type": "input_audio", "input_audio": {"data": "YWJj", "format": "wav"}}

    def test_video_url(self):
        part = media_to_content(Media(mime_type="video/mp4", data="https://example.com/v.mp4"))
        assert part["video_url"]["url"] == "https://example.com/v.mp4"

    def test_data_asset(self):
        part = media_to_content(Media(mime_type="image/jpeg", data_asset_id="asset-1"))
        assert part == {"type": "image_url", "data_asset": {"id": "asset-1"}}

    def test_unsupported_mime_type_raises(self):
        with pytest.raises(UnsupportedMediaType, match="application/pdf"):
            media_to_content(Media(mime_type="application/pdf", data=b"%PDF"))

    def test_media_needs_exactly_one_source(self):
        with pytest.raises(ValueError):
            Media(mime_type="image/png")
        with pytest.raises(ValueError):
            Media(mime_type="image/png", data=b"x", data_asset_id="a")


class TestMessageMapping:
    def test_plain_user_message(self):
        assert message_to_wire(UserMessage("hi")) == [{"role": "user", "content": "hi"}]

    def test_user_message_with_media(self):
        wire = message_to_wire(UserMessage("look", media=[Media("image/png", data="https://x/y.png")]))
        content = wire[0]["content"]
        assert content[0] == {"type": "text", "text": "look"}
        assert content[1]["type"] == "image_url"

    def test_assistant_tool_calls(self):
        msg = AssistantMessage(content=None, tool_calls=[ToolCall("c1", "echo", '{"message":"x"}')])
        wire = message_to_wire(msg)[0]
        assert wire["content"] == ""
        assert wire["tool_calls"][0] == {
            "id": "c1",
            "type": "function",
            "function": {"name": "echo", "arguments": '{"message":"x"}'},
        }

    def test_tool_responses_fan_out(self):
        msg = ToolResponseMessage([ToolResponse("c1", "echo", "x"), ToolResponse("c2", "echo", "y")])
        wire = message_to_wire(msg)
        assert [w["tool_call_id"] for w in wire] == ["c1", "c2"]
        assert all(w["role"] == "tool" for w in wire)

    def test_tool_response_without_id_raises(self):
        with pytest.raises(ToolResponseMissingId):
            message_to_wire(ToolResponseMessage([ToolResponse(None, "echo", "x")]))


class TestCreateRequest:
    def test_body_carries_messages_params_and_tools(self):
        options = reconcile(ChatOptions(model="ibm/granite"), None)
        body = create_request(
            [SystemMessage("be brief"), UserMessage("hi")],
            options,
            [EchoTool().to_definition()],
        )
        assert body["model_id"] == "ibm/granite"
        assert body["temperature"] == 0.7
        assert "stop" not in body
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert body["tools"][0]["function"]["name"] == "echo"
        assert "tool_names" not in body
        assert "max_tool_iterations" not in body

    def test_streaming_with_several_choices_rejected(self):
        options = reconcile(ChatOptions(n=2), None)
        with pytest.raises(InvalidOptionCombination, match="n=2"):
            create_request([UserMessage("hi")], options, stream=True)

    def test_several_choices_allowed_without_streaming(self):
        options = reconcile(ChatOptions(n=2), None)
        assert create_request([UserMessage("hi")], options)["n"] == 2

    def test_additional_params_flattened_in_snake_case(self):
        options = reconcile(ChatOptions(additional={"repetitionPenalty": 1.1}), None)
        body = create_request([UserMessage("hi")], options)
        assert body["repetition_penalty"] == 1.1
