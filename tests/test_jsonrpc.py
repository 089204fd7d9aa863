"""Tests for claudecode_stream.jsonrpc module."""

from __future__ import annotations

import json

import pytest
from mcp.types import LATEST_PROTOCOL_VERSION, CallToolResult, TextContent, Tool
from pydantic import ValidationError

from claudecode_stream.jsonrpc import (
    JSONRPC_VERSION,
    ClientInfo,
    InitializeParams,
    InitializeResult,
    JSONRPCResponse,
    ToolsCallParams,
    ToolsCallResult,
    ToolsListResult,
    dump_params,
    encode_request,
)


class TestEncodeRequest:
    """Tests for request serialization."""

    def test_request_line(self) -> None:
        """Requests should be one newline-terminated JSON object."""
        data = encode_request("tools/list", {}, 1)
        assert data.endswith(b"\n")
        assert data.count(b"\n") == 1
        assert json.loads(data) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/list",
            "params": {},
        }

    def test_notification_has_no_id(self) -> None:
        """A request without id is a notification."""
        payload = json.loads(encode_request("initialized", {}))
        assert "id" not in payload
        assert payload["method"] == "initialized"

    def test_none_params_omitted(self) -> None:
        """None params should not be written."""
        assert "params" not in json.loads(encode_request("ping", None, 3))

    def test_version_constant(self) -> None:
        """Only JSON-RPC 2.0 is spoken."""
        assert JSONRPC_VERSION == "2.0"


class TestDumpParams:
    """Tests for params serialization."""

    def test_initialize_defaults(self) -> None:
        """protocolVersion should default to the latest MCP version."""
        params = dump_params(InitializeParams(client_info=ClientInfo(name="c", version="1")))
        assert params == {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "clientInfo": {"name": "c", "version": "1"},
            "capabilities": {},
        }

    def test_top_level_none_dropped(self) -> None:
        """Unset top-level fields should be omitted."""
        assert dump_params(ToolsCallParams(name="calculator")) == {"name": "calculator"}

    def test_nested_none_kept(self) -> None:
        """Nested values such as tool arguments are sent as given."""
        params = dump_params(ToolsCallParams(name="echo", arguments={"value": None}))
        assert params == {"name": "echo", "arguments": {"value": None}}


class TestJSONRPCResponse:
    """Tests for response envelope decoding."""

    def test_result_response(self) -> None:
        """A result response should decode id and result."""
        response = JSONRPCResponse.model_validate_json(
            b'{"jsonrpc":"2.0","id":1,"result":{"tools":[]}}'
        )
        assert response.id == 1
        assert response.result == {"tools": []}
        assert response.error is None

    def test_error_response(self) -> None:
        """An error response should decode the error payload."""
        response = JSONRPCResponse.model_validate_json(
            b'{"jsonrpc":"2.0","id":1,"error":{"code":-32601,"message":"Method not found"}}'
        )
        assert response.error is not None
        assert response.error.code == -32601
        assert response.error.message == "Method not found"

    def test_chat_record_has_no_version(self) -> None:
        """Chat records decode with an empty jsonrpc field."""
        response = JSONRPCResponse.model_validate_json(b'{"type":"other"}')
        assert response.jsonrpc == ""


class TestResults:
    """Tests for MCP result shapes."""

    def test_initialize_result(self) -> None:
        """Initialize results should decode camelCase fields."""
        result = InitializeResult.model_validate(
            {
                "protocolVersion": "2024-11-05",
                "serverInfo": {"name": "test-server", "version": "1.0.0"},
            }
        )
        assert result.protocol_version == "2024-11-05"
        assert result.server_info is not None
        assert result.server_info.name == "test-server"

    def test_empty_results(self) -> None:
        """Empty objects should decode to empty result shapes."""
        assert ToolsListResult.model_validate({}).tools == []
        assert ToolsCallResult.model_validate({}).content == []
        assert InitializeResult.model_validate({}).server_info is None

    def test_non_object_result_rejected(self) -> None:
        """A result that is not an object does not fit."""
        with pytest.raises(ValidationError):
            ToolsListResult.model_validate("bad")

    def test_tools_to_mcp(self) -> None:
        """Tool definitions should convert to mcp.types.Tool."""
        result = ToolsListResult.model_validate(
            {
                "tools": [
                    {"name": "calculator", "description": "calc"},
                    {
                        "name": "echo",
                        "inputSchema": {
                            "type": "object",
                            "properties": {"text": {"type": "string"}},
                        },
                    },
                ]
            }
        )
        tools = result.to_mcp_tools()
        assert all(isinstance(tool, Tool) for tool in tools)
        assert tools[0].inputSchema == {"type": "object"}
        assert tools[1].inputSchema["properties"] == {"text": {"type": "string"}}

    def test_call_result_text(self) -> None:
        """text() should join the text blocks."""
        result = ToolsCallResult.model_validate(
            {
                "content": [
                    {"type": "text", "text": "4"},
                    {"type": "image", "data": "AAAA", "mimeType": "image/png"},
                    {"type": "text", "text": "2"},
                ]
            }
        )
        assert result.text() == "42"
        assert result.content[1].model_extra == {"data": "AAAA", "mimeType": "image/png"}

    def test_call_result_to_mcp(self) -> None:
        """Call results should convert to mcp.types.CallToolResult."""
        result = ToolsCallResult.model_validate(
            {"content": [{"type": "text", "text": "42"}], "isError": True}
        )
        converted = result.to_mcp()
        assert isinstance(converted, CallToolResult)
        assert converted.isError is True
        assert isinstance(converted.content[0], TextContent)
        assert converted.content[0].text == "42"
