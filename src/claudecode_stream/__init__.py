"""claudecode-stream: protocol engine for Claude Code stream-json output."""

import logging
import os
import warnings

# Configure log level from environment variable
# Users can set CLAUDECODE_STREAM_LOG_LEVEL to DEBUG, INFO, WARNING, ERROR, or CRITICAL
# Default is WARNING (suppresses debug/info logs)
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_log_level_env = os.getenv("CLAUDECODE_STREAM_LOG_LEVEL")
_log_level_str = (_log_level_env or "WARNING").upper()

if _log_level_str not in _VALID_LOG_LEVELS:
    warnings.warn(
        f"Invalid CLAUDECODE_STREAM_LOG_LEVEL='{_log_level_str}'. "
        f"Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL. Using WARNING.",
        stacklevel=1,
    )
    _log_level_str = "WARNING"

_logger = logging.getLogger("claudecode_stream")
_logger.setLevel(getattr(logging, _log_level_str))

# Add handler only when env var is explicitly set and no handler exists yet
# (prevents duplicate handlers on module reload)
if _log_level_env is not None and not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    _logger.addHandler(_handler)

from claudecode_stream.exceptions import (  # noqa: E402
    ClaudeStreamError,
    InputValidationError,
    JSONRPCError,
    MessageParseError,
    MessageSizeError,
    RPCDecodeError,
    StreamClosedError,
    TransportError,
)
from claudecode_stream.jsonrpc import (  # noqa: E402
    JSONRPC_VERSION,
    ClientInfo,
    InitializeParams,
    InitializeResult,
    JSONRPCErrorPayload,
    JSONRPCRequest,
    JSONRPCResponse,
    ServerInfo,
    ToolDefinition,
    ToolResultContent,
    ToolsCallParams,
    ToolsCallResult,
    ToolsListResult,
)
from claudecode_stream.parser import MAX_LINE_SIZE, ByteSource, MessageParser  # noqa: E402
from claudecode_stream.protocol import (  # noqa: E402
    DEFAULT_QUEUE_SIZE,
    ByteSink,
    ProtocolSettings,
    StreamProtocol,
)
from claudecode_stream.types import (  # noqa: E402
    AssistantMessage,
    AssistantPayload,
    BaseMessage,
    CacheCreation,
    ContentBlock,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    JsonValue,
    MCPServerState,
    Message,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    MessageType,
    ModelUsage,
    PermissionDenial,
    PluginInfo,
    ResultMessage,
    ServerToolUse,
    StreamDelta,
    StreamEvent,
    StreamEventMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    ToolUseResult,
    UnknownMessage,
    Usage,
    UserMessage,
    UserPayload,
)
from claudecode_stream.user_input import (  # noqa: E402
    PermissionInput,
    UserInput,
    UserInputContentBlock,
    UserInputMessage,
    encode_user_input,
)

__all__ = [
    "StreamProtocol",
    "ProtocolSettings",
    "ByteSource",
    "ByteSink",
    "MessageParser",
    "MAX_LINE_SIZE",
    "DEFAULT_QUEUE_SIZE",
    "JSONRPC_VERSION",
    # Errors
    "ClaudeStreamError",
    "StreamClosedError",
    "TransportError",
    "MessageSizeError",
    "MessageParseError",
    "InputValidationError",
    "JSONRPCError",
    "RPCDecodeError",
    # Messages
    "JsonValue",
    "Message",
    "MessageType",
    "BaseMessage",
    "SystemMessage",
    "AssistantMessage",
    "AssistantPayload",
    "UserMessage",
    "UserPayload",
    "ResultMessage",
    "StreamEventMessage",
    "UnknownMessage",
    "MCPServerState",
    "PluginInfo",
    "ContentBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ToolUseResult",
    "Usage",
    "ModelUsage",
    "ServerToolUse",
    "CacheCreation",
    "PermissionDenial",
    # Stream events
    "StreamEvent",
    "StreamDelta",
    "MessageStartEvent",
    "ContentBlockStartEvent",
    "ContentBlockDeltaEvent",
    "ContentBlockStopEvent",
    "MessageDeltaEvent",
    "MessageStopEvent",
    # Input
    "UserInput",
    "PermissionInput",
    "UserInputMessage",
    "UserInputContentBlock",
    "encode_user_input",
    # JSON-RPC / MCP
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCErrorPayload",
    "ClientInfo",
    "ServerInfo",
    "InitializeParams",
    "InitializeResult",
    "ToolDefinition",
    "ToolsListResult",
    "ToolsCallParams",
    "ToolsCallResult",
    "ToolResultContent",
]
