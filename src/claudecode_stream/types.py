"""Message model for Claude Code stream-json output.

Every line the CLI prints in ``--output-format stream-json`` mode decodes into
exactly one :data:`Message` variant. Nested unions (content blocks, stream
events) are pydantic discriminated unions keyed by their ``type`` field, so a
record with an unsupported sub-kind fails validation as a whole and the parser
can downgrade it to an :class:`UnknownMessage`.

Each message keeps the exact bytes of the line it came from (``raw``). Those
bytes are the only thing the JSON-RPC correlation loop looks at: JSON-RPC
responses have no chat ``type`` and therefore always arrive as
:class:`UnknownMessage` instances, invisible to a plain chat consumer.
"""

from __future__ import annotations

from typing import Annotated, Literal, Self

from pydantic import BaseModel, Field, PrivateAttr

# JSON互換の再帰型（Any型を避ける）
type JsonValue = (
    int | float | str | bool | None | list[JsonValue] | dict[str, JsonValue]
)

MessageType = Literal["system", "assistant", "user", "result", "stream_event"]


class _WireModel(BaseModel):
    """Base for decoded wire records: immutable, alias-aware, extra keys ignored."""

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "protected_namespaces": (),
    }


# ── Usage ──────────────────────────────────────────────────────────────────


class ServerToolUse(_WireModel):
    """Server-side tool usage counters."""

    web_search_requests: int = Field(default=0, ge=0)
    web_fetch_requests: int = Field(default=0, ge=0)


class CacheCreation(_WireModel):
    """Cache creation breakdown."""

    ephemeral_1h_input_tokens: int = Field(default=0, ge=0)
    ephemeral_5m_input_tokens: int = Field(default=0, ge=0)


class Usage(_WireModel):
    """Aggregate token usage, as reported on assistant and result records."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cache_creation_input_tokens: int = Field(default=0, ge=0)
    cache_read_input_tokens: int = Field(default=0, ge=0)
    server_tool_use: ServerToolUse | None = None
    service_tier: str | None = None
    cache_creation: CacheCreation | None = None


class ModelUsage(_WireModel):
    """Per-model usage entry of a result record.

    The wire format uses camelCase (``inputTokens``); attributes are
    snake_case. Both spellings are accepted on input.
    """

    input_tokens: int = Field(default=0, ge=0, alias="inputTokens")
    output_tokens: int = Field(default=0, ge=0, alias="outputTokens")
    cache_read_input_tokens: int = Field(default=0, ge=0, alias="cacheReadInputTokens")
    cache_creation_input_tokens: int = Field(
        default=0, ge=0, alias="cacheCreationInputTokens"
    )
    web_search_requests: int = Field(default=0, ge=0, alias="webSearchRequests")
    cost_usd: float = Field(default=0.0, ge=0, alias="costUSD")
    context_window: int = Field(default=0, ge=0, alias="contextWindow")
    max_output_tokens: int = Field(default=0, ge=0, alias="maxOutputTokens")


class PermissionDenial(_WireModel):
    """A tool use the CLI refused to run."""

    tool_name: str
    tool_use_id: str | None = None
    tool_input: JsonValue = None


# ── Content blocks ─────────────────────────────────────────────────────────


class TextBlock(_WireModel):
    type: Literal["text"]
    text: str = ""


class ThinkingBlock(_WireModel):
    type: Literal["thinking"]
    thinking: str = ""
    signature: str | None = None


class ToolUseBlock(_WireModel):
    type: Literal["tool_use"]
    id: str = ""
    name: str = ""
    input: JsonValue = None


class ToolResultBlock(_WireModel):
    type: Literal["tool_result"]
    tool_use_id: str = ""
    content: JsonValue = None
    is_error: bool | None = None


ContentBlock = Annotated[
    TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock,
    Field(discriminator="type"),
]


class ToolUseResult(_WireModel):
    """Structured form of ``tool_use_result``.

    Tools report very different shapes here; the common keys are typed and
    anything else is kept as model extras.
    """

    model_config = {"extra": "allow"}

    filenames: list[str] | None = None
    duration_ms: int | None = Field(default=None, alias="durationMs")
    num_files: int | None = Field(default=None, alias="numFiles")
    truncated: bool | None = None
    stdout: str | None = None
    stderr: str | None = None
    interrupted: bool | None = None
    is_image: bool | None = Field(default=None, alias="isImage")


# ── Messages ───────────────────────────────────────────────────────────────


class BaseMessage(_WireModel):
    """Fields and raw-line bookkeeping shared by every message variant."""

    type: str
    _raw: bytes = PrivateAttr(default=b"")

    @property
    def raw(self) -> bytes:
        """Exact bytes of the trimmed line this message was decoded from.

        ``bytes`` is immutable, so the returned value can be handed out
        freely; mutate a ``bytearray(message.raw)`` copy if needed.
        """
        return self._raw

    @classmethod
    def from_wire(cls, data: dict[str, JsonValue], raw: bytes) -> Self:
        """Validate a decoded JSON object and attach its source line.

        Raises:
            pydantic.ValidationError: If *data* does not fit this variant.
        """
        message = cls.model_validate(data)
        message._raw = bytes(raw)
        return message


class MCPServerState(_WireModel):
    name: str
    status: str = ""


class PluginInfo(_WireModel):
    name: str
    path: str = ""


class SystemMessage(BaseMessage):
    """Session metadata, emitted first with ``subtype == "init"``."""

    type: Literal["system"]
    subtype: str = ""
    uuid: str | None = None
    session_id: str | None = None
    cwd: str | None = None
    model: str | None = None
    tools: list[str] | None = None
    mcp_servers: list[MCPServerState] | None = None
    permission_mode: str | None = Field(default=None, alias="permissionMode")
    api_key_source: str | None = Field(default=None, alias="apiKeySource")
    output_style: str | None = None
    skills: list[str] | None = None
    agents: list[str] | None = None
    slash_commands: list[str] | None = None
    plugins: list[PluginInfo] | None = None
    claude_code_version: str | None = None


class AssistantPayload(_WireModel):
    model: str | None = None
    id: str | None = None
    type: str | None = None
    role: str = "assistant"
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage | None = None


class UserPayload(_WireModel):
    role: str = "user"
    content: str | list[ContentBlock] = Field(default_factory=list)


class AssistantMessage(BaseMessage):
    type: Literal["assistant"]
    uuid: str | None = None
    session_id: str | None = None
    parent_tool_use_id: str | None = None
    message: AssistantPayload
    tool_use_result: str | ToolUseResult | None = None


class UserMessage(BaseMessage):
    type: Literal["user"]
    uuid: str | None = None
    session_id: str | None = None
    parent_tool_use_id: str | None = None
    message: UserPayload
    tool_use_result: str | ToolUseResult | None = None
    usage: Usage | None = None
    metadata: JsonValue = None


class ResultMessage(BaseMessage):
    """Terminal summary of a turn."""

    type: Literal["result"]
    subtype: str = ""
    uuid: str | None = None
    session_id: str | None = None
    is_error: bool = False
    duration_ms: int | None = None
    duration_api_ms: int | None = None
    num_turns: int | None = None
    result: str | None = None
    stop_reason: str | None = None
    total_cost_usd: float | None = None
    usage: Usage | None = None
    model_usage: dict[str, ModelUsage] | None = Field(default=None, alias="modelUsage")
    permission_denials: list[PermissionDenial] | None = None
    structured_output: JsonValue = None
    errors: list[str] | None = None


# ── Stream events ──────────────────────────────────────────────────────────


class StreamDelta(_WireModel):
    type: str | None = None
    text: str | None = None
    partial_json: str | None = None
    thinking: str | None = None
    stop_reason: str | None = None


class MessageStartEvent(_WireModel):
    type: Literal["message_start"]
    message: JsonValue = None


class ContentBlockStartEvent(_WireModel):
    type: Literal["content_block_start"]
    index: int | None = None
    content_block: JsonValue = None


class ContentBlockDeltaEvent(_WireModel):
    type: Literal["content_block_delta"]
    index: int | None = None
    delta: StreamDelta


class ContentBlockStopEvent(_WireModel):
    type: Literal["content_block_stop"]
    index: int | None = None


class MessageDeltaEvent(_WireModel):
    type: Literal["message_delta"]
    delta: StreamDelta | None = None
    usage: JsonValue = None


class MessageStopEvent(_WireModel):
    type: Literal["message_stop"]


StreamEvent = Annotated[
    MessageStartEvent
    | ContentBlockStartEvent
    | ContentBlockDeltaEvent
    | ContentBlockStopEvent
    | MessageDeltaEvent
    | MessageStopEvent,
    Field(discriminator="type"),
]


class StreamEventMessage(BaseMessage):
    """Partial-message event (``--include-partial-messages``)."""

    type: Literal["stream_event"]
    uuid: str | None = None
    session_id: str | None = None
    parent_tool_use_id: str | None = None
    event: StreamEvent


class UnknownMessage(BaseMessage):
    """Fallback for lines that are not a recognized chat record.

    ``parse_error`` is ``None`` for foreign records (an unknown ``type``, or
    JSON-RPC traffic) and holds the decode error text for records whose
    ``type`` is known but whose payload failed validation.
    """

    type: str = ""
    parse_error: str | None = None

    @classmethod
    def from_raw(
        cls, raw: bytes, *, type_: str = "", parse_error: str | None = None
    ) -> UnknownMessage:
        message = cls(type=type_, parse_error=parse_error)
        message._raw = bytes(raw)
        return message


type Message = (
    SystemMessage
    | AssistantMessage
    | UserMessage
    | ResultMessage
    | StreamEventMessage
    | UnknownMessage
)
