"""Tests for ToolRegistry and ToolDefinition."""

import pytest

from watsonx_chat.errors import ToolResolutionError
from watsonx_chat.tools.registry import ToolRegistry
from tests.mock_tools import DirectAnswerTool, EchoTool, WeatherTool


class TestToolRegistry:
    """Test suite for ToolRegistry."""

    def test_register_and_get(self):
        reg = ToolRegistry()
        tool = EchoTool()
        reg.register(tool)
        assert reg.get("echo") is tool

    def test_get_returns_none_for_unknown(self):
        reg = ToolRegistry()
        assert reg.get("nonexistent") is None

    def test_require_raises_keyerror_for_unknown(self):
        reg = ToolRegistry()
        with pytest.raises(KeyError, match="nonexistent"):
            reg.require("nonexistent")

    def test_duplicate_registration_raises_valueerror(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        with pytest.raises(ValueError, match="already registered"):
            reg.register(EchoTool())

    def test_duplicate_registration_with_overwrite(self):
        reg = ToolRegistry()
        tool1 = EchoTool()
        tool2 = EchoTool()
        reg.register(tool1)
        reg.register(tool2, overwrite=True)
        assert reg.get("echo") is tool2

    def test_list_returns_all_sorted_by_name(self):
        reg = ToolRegistry()
        reg.register(WeatherTool())
        reg.register(EchoTool())
        reg.register(DirectAnswerTool())
        names = [t.name for t in reg.list()]
        assert names == ["echo", "get_weather", "lookup"]

    def test_resolve_by_names(self):
        reg = ToolRegistry()
        reg.register(WeatherTool())
        reg.register(EchoTool())
        assert [t.name for t in reg.resolve({"get_weather", "echo"})] == ["echo", "get_weather"]

    def test_resolve_unknown_name_raises(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        with pytest.raises(ToolResolutionError, match="missing"):
            reg.resolve(["echo", "missing"])

    def test_empty_registry_list(self):
        assert ToolRegistry().list() == []


class TestToolDefinition:
    def test_to_wire(self):
        wire = EchoTool().to_definition().to_wire()
        assert wire["type"] == "function"
        fn = wire["function"]
        assert fn["name"] == "echo"
        assert fn["description"] == "Echoes the input message back."
        assert fn["parameters"]["type"] == "object"
        assert fn["parameters"]["additionalProperties"] is False

    def test_return_direct_default(self):
        assert EchoTool().return_direct is False
        assert DirectAnswerTool().return_direct is True
