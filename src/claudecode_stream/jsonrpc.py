"""JSON-RPC 2.0 envelopes and MCP request/result shapes.

The CLI multiplexes an MCP control channel onto its stream-json output.
Requests are written as one JSON object per line::

    {"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}}

Responses come back interleaved with chat records and are recognized only by
their ``jsonrpc``/``id`` fields (see :mod:`claudecode_stream.protocol`).

The result models are deliberately lenient (every field optional) so that
servers omitting optional MCP fields still decode; use the ``to_mcp*``
helpers to obtain the stricter :mod:`mcp.types` objects.
"""

from __future__ import annotations

import json

from mcp.types import LATEST_PROTOCOL_VERSION, CallToolResult, Tool
from pydantic import BaseModel, Field

from claudecode_stream.types import JsonValue

# ── Constants ──────────────────────────────────────────────────────────────

JSONRPC_VERSION: str = "2.0"
"""The only JSON-RPC version spoken on the stream."""

METHOD_INITIALIZE: str = "initialize"
METHOD_INITIALIZED: str = "initialized"
METHOD_TOOLS_LIST: str = "tools/list"
METHOD_TOOLS_CALL: str = "tools/call"


class _RPCModel(BaseModel):
    model_config = {"populate_by_name": True}


# ── Envelopes ──────────────────────────────────────────────────────────────


class JSONRPCRequest(_RPCModel):
    """Request or, when ``id`` is ``None``, notification."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | None = None
    method: str
    params: JsonValue = None


class JSONRPCErrorPayload(_RPCModel):
    """Error information on the wire (distinct from :class:`JSONRPCError`)."""

    code: int
    message: str
    data: JsonValue = None


class JSONRPCResponse(_RPCModel):
    jsonrpc: str = ""
    id: int | str | None = None
    result: JsonValue = None
    error: JSONRPCErrorPayload | None = None


def encode_request(
    method: str, params: JsonValue, request_id: int | None = None
) -> bytes:
    """Serialize a request (or notification if *request_id* is None) as one line."""
    payload: dict[str, JsonValue] = {"jsonrpc": JSONRPC_VERSION}
    if request_id is not None:
        payload["id"] = request_id
    payload["method"] = method
    if params is not None:
        payload["params"] = params
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")


def dump_params(model: BaseModel) -> dict[str, JsonValue]:
    """Dump a params model with wire aliases, dropping unset top-level fields.

    Only top-level ``None`` values are dropped; nested values such as tool
    arguments are sent as given.
    """
    dumped = model.model_dump(by_alias=True)
    return {key: value for key, value in dumped.items() if value is not None}


# ── MCP initialize ─────────────────────────────────────────────────────────


class ClientInfo(_RPCModel):
    name: str = ""
    version: str = ""


class ServerInfo(_RPCModel):
    name: str = ""
    version: str = ""


class InitializeParams(_RPCModel):
    protocol_version: str = Field(
        default=LATEST_PROTOCOL_VERSION, alias="protocolVersion"
    )
    client_info: ClientInfo | None = Field(default=None, alias="clientInfo")
    capabilities: dict[str, JsonValue] = Field(default_factory=dict)


class InitializeResult(_RPCModel):
    protocol_version: str | None = Field(default=None, alias="protocolVersion")
    server_info: ServerInfo | None = Field(default=None, alias="serverInfo")
    capabilities: dict[str, JsonValue] | None = None
    instructions: str | None = None


# ── MCP tools ──────────────────────────────────────────────────────────────


class ToolDefinition(_RPCModel):
    name: str
    description: str | None = None
    input_schema: dict[str, JsonValue] | None = Field(default=None, alias="inputSchema")

    def to_mcp_tool(self) -> Tool:
        """Convert to an MCP :class:`Tool` (an empty object schema if none was sent)."""
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema or {"type": "object"},
        )


class ToolsListResult(_RPCModel):
    tools: list[ToolDefinition] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")

    def to_mcp_tools(self) -> list[Tool]:
        return [tool.to_mcp_tool() for tool in self.tools]


class ToolsCallParams(_RPCModel):
    name: str
    arguments: dict[str, JsonValue] | None = None


class ToolResultContent(_RPCModel):
    """Single content block of a tool result; non-text payloads are kept as extras."""

    model_config = {"extra": "allow"}

    type: str
    text: str | None = None


class ToolsCallResult(_RPCModel):
    content: list[ToolResultContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")
    structured_content: dict[str, JsonValue] | None = Field(
        default=None, alias="structuredContent"
    )

    def text(self) -> str:
        """Concatenate the text blocks of the result."""
        return "".join(block.text or "" for block in self.content if block.type == "text")

    def to_mcp(self) -> CallToolResult:
        """Convert to an MCP :class:`CallToolResult`.

        Raises:
            pydantic.ValidationError: If a content block does not satisfy the
                MCP content schema (e.g. an image block without ``data``).
        """
        return CallToolResult.model_validate(
            {
                "content": [
                    block.model_dump(by_alias=True, exclude_none=True)
                    for block in self.content
                ],
                "isError": self.is_error,
            }
        )
