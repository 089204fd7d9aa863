"""Duplex protocol engine over a Claude Code stream-json byte stream.

One :class:`StreamProtocol` owns the read side (through a
:class:`~claudecode_stream.parser.MessageParser`) and the write side of a
single CLI session and offers two APIs on top of them:

* chat: :meth:`~StreamProtocol.send_user_input` and
  :meth:`~StreamProtocol.next_message`;
* MCP over JSON-RPC 2.0: ``mcp_initialize``, ``mcp_initialized``,
  ``mcp_tools_list`` and ``mcp_tools_call``.

Architecture::

    ByteSource ── reader thread ── MessageParser ──> asyncio.Queue ──> next_message()
                                                                   └─> RPC correlation loop
    send_user_input() / RPC writes ── write lock ──> ByteSink

The source is a blocking stream with no way to interrupt a read, so physical
reads happen on a dedicated daemon thread that feeds a bounded queue.
``next_message`` only ever waits on the queue and can therefore be cancelled
(or time out) at any moment without disturbing the reader.

JSON-RPC responses have no chat ``type`` and reach the RPC loop as
:class:`~claudecode_stream.types.UnknownMessage` instances. While an RPC call
is in flight it is the one consuming the queue: chat messages that arrive in
the meantime are discarded, as are responses to other ids. Do not consume
chat messages concurrently with an RPC call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import CancelledError as FutureCancelledError
from typing import Protocol, TypedDict, TypeVar, runtime_checkable

import anyio
from pydantic import BaseModel, ValidationError

from claudecode_stream.exceptions import (
    JSONRPCError,
    RPCDecodeError,
    StreamClosedError,
    TransportError,
)
from claudecode_stream.jsonrpc import (
    JSONRPC_VERSION,
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    InitializeParams,
    InitializeResult,
    JSONRPCResponse,
    ToolsCallParams,
    ToolsCallResult,
    ToolsListResult,
    dump_params,
    encode_request,
)
from claudecode_stream.parser import MAX_LINE_SIZE, ByteSource, MessageParser
from claudecode_stream.types import BaseMessage, JsonValue, Message, UnknownMessage
from claudecode_stream.user_input import UserInput, encode_user_input

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

DEFAULT_QUEUE_SIZE: int = 128
"""Capacity of the queue between the reader thread and consumers."""

_DELIVERY_POLL_INTERVAL: float = 0.1
"""Seconds between shutdown checks while the reader waits on a full queue."""


@runtime_checkable
class ByteSink(Protocol):
    """Writable byte stream (e.g. a subprocess stdin pipe)."""

    def write(self, data: bytes, /) -> int | None: ...


class ProtocolSettings(TypedDict, total=False):
    """Tuning options for :class:`StreamProtocol`.

    Attributes:
        max_line_size: Longest accepted inbound line in bytes.
        queue_size: Number of decoded messages buffered ahead of consumers.
    """

    max_line_size: int
    queue_size: int


class _EndOfStream:
    """Queue marker re-posted after the terminal item so every waiter wakes up."""


_END_OF_STREAM = _EndOfStream()

type _QueueItem = Message | Exception | _EndOfStream


def _match_response(message: Message, request_id: int) -> JSONRPCResponse | None:
    """Return *message* as the JSON-RPC response to *request_id*, if it is one."""
    if not isinstance(message, UnknownMessage):
        return None
    try:
        response = JSONRPCResponse.model_validate_json(message.raw)
    except ValidationError:
        return None
    if response.jsonrpc != JSONRPC_VERSION or response.id != request_id:
        return None
    return response


class StreamProtocol:
    """Chat and MCP protocol engine for one CLI session.

    The engine exclusively owns *reader* and *writer* for its lifetime. The
    background reader starts on the first :meth:`next_message` call (it needs
    the running event loop) and lives until the stream ends or the engine is
    closed.

    Args:
        reader: Blocking byte source the CLI writes its output to.
        writer: Byte sink the CLI reads its input from.
        settings: Optional :class:`ProtocolSettings`.

    Raises:
        ValueError: If a setting is not a positive integer.
    """

    def __init__(
        self,
        reader: ByteSource,
        writer: ByteSink,
        settings: ProtocolSettings | None = None,
    ) -> None:
        settings = settings or {}
        max_line_size = settings.get("max_line_size", MAX_LINE_SIZE)
        queue_size = settings.get("queue_size", DEFAULT_QUEUE_SIZE)
        if queue_size <= 0:
            raise ValueError("queue_size must be a positive integer")

        self._reader = reader
        self._writer = writer
        self._parser = MessageParser(reader, max_line_size=max_line_size)
        self._queue_size = queue_size

        self._write_lock = threading.Lock()
        self._next_id = 1

        self._queue: asyncio.Queue[_QueueItem] | None = None
        self._reader_thread: threading.Thread | None = None
        self._reader_running = False
        self._source_lock = threading.Lock()
        self._source_closed = False
        self._closing = threading.Event()
        self._closed = False

    async def __aenter__(self) -> StreamProtocol:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Chat API ─────────────────────────────────────────────────────────

    async def send_user_input(self, user_input: UserInput) -> None:
        """Validate *user_input* and write it to the CLI.

        Args:
            user_input: The input record to send.

        Raises:
            InputValidationError: If the input is invalid. Nothing is written.
            TransportError: If the write fails or the engine is closed.
            asyncio.CancelledError: If the caller is cancelled before writing.
        """
        kind, payload = encode_user_input(user_input)
        data = payload.encode("utf-8")
        await self._checkpoint("user input")
        try:
            await asyncio.to_thread(self._write_locked, data)
        except (OSError, ValueError) as exc:
            raise TransportError(f"write user input: {exc}") from exc
        logger.debug("Sent %s input: %d bytes", kind, len(data))

    async def next_message(self, *, timeout: float | None = None) -> Message:
        """Return the next decoded message from the CLI.

        Cancelling the calling task interrupts the wait immediately; the
        background reader keeps running and no message is lost.

        Args:
            timeout: Optional deadline in seconds.

        Raises:
            StreamClosedError: If the stream has ended (or the engine is closed).
            TransportError: If reading failed.
            MessageParseError: If a line's envelope could not be decoded.
            TimeoutError: If *timeout* elapses first.
            asyncio.CancelledError: If the calling task is cancelled.
        """
        if timeout is None:
            return await self._receive()
        with anyio.fail_after(timeout):
            return await self._receive()

    # ── MCP API ──────────────────────────────────────────────────────────

    async def mcp_initialize(
        self, params: InitializeParams, *, timeout: float | None = None
    ) -> InitializeResult:
        """Send ``initialize`` and wait for its result."""
        return await self._request(
            METHOD_INITIALIZE, dump_params(params), InitializeResult, timeout
        )

    async def mcp_initialized(self, params: dict[str, JsonValue] | None = None) -> None:
        """Send the ``initialized`` notification; no response is awaited."""
        data = encode_request(METHOD_INITIALIZED, params if params is not None else {})
        await self._checkpoint(METHOD_INITIALIZED)
        try:
            await asyncio.to_thread(self._write_locked, data)
        except (OSError, ValueError) as exc:
            raise TransportError(f"write jsonrpc notification: {exc}") from exc
        logger.debug("Sent JSON-RPC notification: method=%s", METHOD_INITIALIZED)

    async def mcp_tools_list(self, *, timeout: float | None = None) -> ToolsListResult:
        """Send ``tools/list`` and wait for its result."""
        return await self._request(METHOD_TOOLS_LIST, {}, ToolsListResult, timeout)

    async def mcp_tools_call(
        self, params: ToolsCallParams, *, timeout: float | None = None
    ) -> ToolsCallResult:
        """Send ``tools/call`` and wait for its result."""
        return await self._request(
            METHOD_TOOLS_CALL, dump_params(params), ToolsCallResult, timeout
        )

    async def _request(
        self,
        method: str,
        params: JsonValue,
        result_type: type[R],
        timeout: float | None,
    ) -> R:
        if timeout is None:
            return await self._call(method, params, result_type)
        with anyio.fail_after(timeout):
            return await self._call(method, params, result_type)

    async def _call(self, method: str, params: JsonValue, result_type: type[R]) -> R:
        """Write a request, then pump messages until its response arrives.

        Raises:
            JSONRPCError: If the response carries an error object.
            RPCDecodeError: If the result does not fit *result_type*.
            StreamClosedError: If the stream ends before the response.
            TransportError: If writing or reading fails.
        """
        await self._checkpoint(method)
        try:
            request_id = await asyncio.to_thread(self._write_request_locked, method, params)
        except (OSError, ValueError) as exc:
            raise TransportError(f"write jsonrpc request: {exc}") from exc
        logger.debug("Sent JSON-RPC request: method=%s, id=%d", method, request_id)

        while True:
            message = await self.next_message()
            response = _match_response(message, request_id)
            if response is None:
                logger.debug(
                    "Discarding message while awaiting %s response (id=%d): type=%r",
                    method,
                    request_id,
                    message.type,
                )
                continue

            if response.error is not None:
                logger.debug(
                    "JSON-RPC error response: method=%s, id=%d, code=%d",
                    method,
                    request_id,
                    response.error.code,
                )
                raise JSONRPCError(
                    response.error.code,
                    response.error.message,
                    data=response.error.data,
                    method=method,
                )

            logger.debug("Received JSON-RPC response: method=%s, id=%d", method, request_id)
            result = response.result if response.result is not None else {}
            try:
                return result_type.model_validate(result)
            except ValidationError as exc:
                raise RPCDecodeError(
                    f"decode {method} result: {exc}", method=method
                ) from exc

    # ── Teardown ─────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the writer and the reader. Safe to call more than once.

        A read that is blocked in the reader thread cannot be interrupted, so
        in that case the thread closes the source as soon as the read returns.

        Raises:
            OSError: The first error raised while closing either stream.
        """
        if self._closed:
            return
        self._closed = True

        with self._source_lock:
            self._closing.set()
            defer_source_close = self._reader_running

        first_error: OSError | None = None
        try:
            await asyncio.to_thread(self._close_sink)
        except OSError as exc:
            first_error = exc

        if not defer_source_close:
            try:
                self._close_source()
            except OSError as exc:
                if first_error is None:
                    first_error = exc

        if self._queue is not None:
            try:
                self._queue.put_nowait(_END_OF_STREAM)
            except asyncio.QueueFull:
                pass  # waiters only block on an empty queue

        logger.debug("StreamProtocol closed")
        if first_error is not None:
            raise first_error

    # ── Internals: writing ───────────────────────────────────────────────

    async def _checkpoint(self, what: str) -> None:
        # Yield once so a pending cancellation fires before anything is written.
        await asyncio.sleep(0)
        if self._closed:
            raise TransportError(f"write {what}: protocol is closed")

    def _write_locked(self, data: bytes) -> None:
        with self._write_lock:
            self._write_unlocked(data)

    def _write_request_locked(self, method: str, params: JsonValue) -> int:
        with self._write_lock:
            request_id = self._next_id
            self._next_id += 1
            self._write_unlocked(encode_request(method, params, request_id))
            return request_id

    def _write_unlocked(self, data: bytes) -> None:
        self._writer.write(data)
        flush = getattr(self._writer, "flush", None)
        if flush is not None:
            flush()

    def _close_sink(self) -> None:
        with self._write_lock:
            close = getattr(self._writer, "close", None)
            if close is not None:
                close()

    # ── Internals: reading ───────────────────────────────────────────────

    def _ensure_reader(self) -> asyncio.Queue[_QueueItem]:
        if self._queue is None:
            loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue(maxsize=self._queue_size)
            self._reader_running = True
            self._reader_thread = threading.Thread(
                target=self._run_reader,
                args=(loop, self._queue),
                name="claudecode-stream-reader",
                daemon=True,
            )
            self._reader_thread.start()
        return self._queue

    async def _receive(self) -> Message:
        if self._closed:
            raise StreamClosedError("protocol is closed")
        queue = self._ensure_reader()
        item = await queue.get()
        if isinstance(item, BaseMessage):
            return item  # type: ignore[return-value]

        # Terminal item: leave a marker behind for any other waiter.
        queue.put_nowait(_END_OF_STREAM)
        if isinstance(item, Exception):
            raise item
        raise StreamClosedError("stream closed")

    def _run_reader(
        self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[_QueueItem]
    ) -> None:
        logger.debug("Reader thread started")
        try:
            while not self._closing.is_set():
                item: Message | Exception
                try:
                    item = self._parser.next()
                except Exception as exc:
                    item = exc
                if not self._deliver(loop, queue, item):
                    return
                if isinstance(item, Exception):
                    logger.debug("Reader thread stopping: %s", item)
                    return
        finally:
            with self._source_lock:
                self._reader_running = False
                close_source = self._closing.is_set()
            if close_source:
                try:
                    self._close_source()
                except OSError as exc:
                    logger.debug("Error closing reader: %s", exc)
            logger.debug("Reader thread stopped")

    def _deliver(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[_QueueItem],
        item: Message | Exception,
    ) -> bool:
        """Put *item* on the queue from the reader thread, blocking while it is full.

        Returns:
            False if the loop or the engine shut down before delivery.
        """
        try:
            future = asyncio.run_coroutine_threadsafe(queue.put(item), loop)
        except RuntimeError:
            return False  # event loop closed

        while True:
            try:
                future.result(timeout=_DELIVERY_POLL_INTERVAL)
                return True
            except TimeoutError:
                if loop.is_closed() or self._closing.is_set():
                    future.cancel()
                    return False
            except FutureCancelledError:
                return False

    def _close_source(self) -> None:
        with self._source_lock:
            if self._source_closed:
                return
            self._source_closed = True
        close = getattr(self._reader, "close", None)
        if close is not None:
            close()
