"""Line parser: stream-json bytes -> :data:`Message` objects.

One JSON value per line, blank lines ignored. Decoding happens in two steps:

1. The outer envelope is decoded just far enough to read ``type``. If the line
   is not a JSON object this is fatal (:class:`MessageParseError`).
2. Known types are validated into their typed model. A validation failure is
   *not* fatal: the line comes back as an :class:`UnknownMessage` carrying the
   error text, so one malformed record cannot end a long-running session.

Lines with an unrecognized ``type`` (or none at all, as with JSON-RPC
responses) come back as :class:`UnknownMessage` without error text.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from claudecode_stream.exceptions import (
    MessageParseError,
    MessageSizeError,
    StreamClosedError,
    TransportError,
)
from claudecode_stream.types import (
    AssistantMessage,
    BaseMessage,
    Message,
    ResultMessage,
    StreamEventMessage,
    SystemMessage,
    UnknownMessage,
    UserMessage,
)

logger = logging.getLogger(__name__)

MAX_LINE_SIZE: int = 10_485_760
"""Maximum line size in bytes (10 MB); tool output can be large."""

# type tag -> (model, label used in decode error text)
_MESSAGE_KINDS: dict[str, tuple[type[BaseMessage], str]] = {
    "system": (SystemMessage, "system"),
    "assistant": (AssistantMessage, "assistant"),
    "user": (UserMessage, "user"),
    "result": (ResultMessage, "result"),
    "stream_event": (StreamEventMessage, "stream event"),
}


@runtime_checkable
class ByteSource(Protocol):
    """Blocking, line-readable byte stream (e.g. a subprocess stdout pipe)."""

    def readline(self, size: int = -1, /) -> bytes: ...


def _format_raw(raw: bytes) -> str:
    """Pretty-print *raw* if it is valid JSON, otherwise return it as text."""
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
    except json.JSONDecodeError:
        return text


def _envelope_error(reason: str, raw: bytes) -> MessageParseError:
    formatted = _format_raw(raw)
    return MessageParseError(
        f"parse message envelope: {reason}\nraw:\n{formatted}",
        raw_output=formatted,
    )


class MessageParser:
    """Decode stream-json lines, either one at a time or from a byte source.

    Args:
        source: Blocking byte source read by :meth:`next`. May be ``None``
            when only :meth:`parse_line` is used.
        max_line_size: Longest accepted line in bytes, excluding the newline.
    """

    def __init__(
        self,
        source: ByteSource | None = None,
        *,
        max_line_size: int = MAX_LINE_SIZE,
    ) -> None:
        if max_line_size <= 0:
            raise ValueError("max_line_size must be a positive integer")
        self._source = source
        self._max_line_size = max_line_size

    @property
    def max_line_size(self) -> int:
        return self._max_line_size

    def parse_line(self, line: bytes | bytearray | memoryview | str) -> Message | None:
        """Decode a single line.

        Args:
            line: One line of output, with or without its trailing newline.

        Returns:
            The decoded message, or ``None`` for a blank line.

        Raises:
            MessageParseError: If the line is not a JSON object with a string
                (or absent) ``type`` field.
        """
        if isinstance(line, str):
            line = line.encode("utf-8")
        trimmed = bytes(line).strip()
        if not trimmed:
            return None

        try:
            data = json.loads(trimmed)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise _envelope_error(str(exc), trimmed) from exc

        if not isinstance(data, dict):
            raise _envelope_error(
                f"expected a JSON object, got {type(data).__name__}", trimmed
            )
        tag = data.get("type", "")
        if not isinstance(tag, str):
            raise _envelope_error(
                f"'type' must be a string, got {type(tag).__name__}", trimmed
            )

        kind = _MESSAGE_KINDS.get(tag)
        if kind is None:
            logger.debug("Unrecognized message type: type=%r, size=%d", tag, len(trimmed))
            return UnknownMessage.from_raw(trimmed, type_=tag)

        model, label = kind
        try:
            return model.from_wire(data, trimmed)  # type: ignore[return-value]
        except ValidationError as exc:
            parse_error = f"parse {label} message: {exc}"
            logger.warning(
                "Malformed %s message kept as UnknownMessage: %s", label, exc
            )
            return UnknownMessage.from_raw(trimmed, type_=tag, parse_error=parse_error)

    def next(self) -> Message:
        """Read and decode the next non-blank line from the source.

        Raises:
            StreamClosedError: If the source is exhausted (or was never given).
            MessageSizeError: If a line exceeds ``max_line_size``.
            TransportError: If reading from the source fails.
            MessageParseError: If a line's envelope cannot be decoded.
        """
        while True:
            message = self.parse_line(self._read_line())
            if message is not None:
                return message

    def __iter__(self) -> Iterator[Message]:
        return self

    def __next__(self) -> Message:
        try:
            return self.next()
        except StreamClosedError:
            raise StopIteration from None

    def _read_line(self) -> bytes:
        if self._source is None:
            raise StreamClosedError("message parser has no source")

        try:
            line = self._source.readline(self._max_line_size + 1)
        except (OSError, ValueError) as exc:
            raise TransportError(f"read message line: {exc}") from exc

        if isinstance(line, str):
            line = line.encode("utf-8")
        if not line:
            raise StreamClosedError("end of stream")
        if len(line) > self._max_line_size and not line.endswith(b"\n"):
            raise MessageSizeError(
                f"Line exceeds MAX_LINE_SIZE ({self._max_line_size} bytes)"
            )
        return line
