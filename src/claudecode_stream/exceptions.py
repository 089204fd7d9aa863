"""Custom exceptions for claudecode-stream."""

from __future__ import annotations


class ClaudeStreamError(Exception):
    """Base exception for claudecode-stream."""


class StreamClosedError(ClaudeStreamError, EOFError):
    """Raised when the read side of the stream is exhausted.

    This is the normal termination condition of a session and is kept
    distinct from :class:`TransportError` so callers can special-case it.
    """


class TransportError(ClaudeStreamError):
    """Raised when reading from or writing to the underlying stream fails."""


class MessageSizeError(TransportError):
    """Raised when a line exceeds the configured maximum line size."""


class MessageParseError(ClaudeStreamError):
    """Raised when a line's outer envelope cannot be decoded.

    This is fatal for the stream: the line is not valid JSON (or not a JSON
    object), so nothing downstream can make sense of it.

    Attributes:
        raw_output: The offending line, pretty-printed when possible.
    """

    def __init__(self, message: str, *, raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_output = raw_output


class InputValidationError(ClaudeStreamError, ValueError):
    """Raised when a UserInput is empty, ambiguous or malformed.

    Raised before anything is written, so the stream is left untouched.
    """


class JSONRPCError(ClaudeStreamError):
    """Raised when a JSON-RPC response carries an ``error`` object.

    Attributes:
        code: JSON-RPC error code.
        message: Error message reported by the server.
        data: Optional free-form error data.
        method: The request method the error answers.
    """

    def __init__(
        self,
        code: int,
        message: str,
        *,
        data: object = None,
        method: str = "",
    ) -> None:
        super().__init__(f"jsonrpc error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data
        self.method = method


class RPCDecodeError(ClaudeStreamError):
    """Raised when a JSON-RPC result does not fit the expected result shape.

    Attributes:
        method: The request method whose result failed to decode.
    """

    def __init__(self, message: str, *, method: str) -> None:
        super().__init__(message)
        self.method = method
