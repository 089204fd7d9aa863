"""Shared test fixtures and helpers for claudecode_stream tests."""

from __future__ import annotations

import io
import os
from collections.abc import Generator

import pytest

# Golden lines captured from the Claude Code CLI (stream-json output).
SYSTEM_INIT_LINE = (
    b'{"type":"system","subtype":"init","cwd":"/private/tmp/playing",'
    b'"session_id":"5620625c-b4c7-4185-9b2b-8de430dd2184",'
    b'"tools":["Task","Bash","Glob","Grep","Read","Edit","Write"],'
    b'"mcp_servers":[{"name":"ruby-tools","status":"connected"}],'
    b'"model":"claude-sonnet-4-5-20250929","permissionMode":"default",'
    b'"slash_commands":["compact","context","cost"],'
    b'"apiKeySource":"ANTHROPIC_API_KEY","claude_code_version":"2.1.3",'
    b'"output_style":"default","agents":["Bash","general-purpose"],"skills":[],'
    b'"plugins":[{"name":"gopls-lsp","path":"/Users/sam/.claude/plugins/gopls-lsp/1.0.0"}],'
    b'"uuid":"95625b7e-3117-483b-95c9-47e54bb9ec70"}'
)

ASSISTANT_TOOL_USE_LINE = (
    b'{"type":"assistant","message":{"model":"claude-sonnet-4-5-20250929",'
    b'"id":"msg_01Rf5Yc8FdberfJBxNjTNk3W","type":"message","role":"assistant",'
    b'"content":[{"type":"text","text":"I\'ll use the ruby-tools MCP server."},'
    b'{"type":"tool_use","id":"toolu_017K5vf","name":"mcp__ruby-tools__current_time","input":{}},'
    b'{"type":"tool_use","id":"toolu_018ABC","name":"mcp__ruby-tools__random_number",'
    b'"input":{"min":1,"max":100}}],"stop_reason":null,"stop_sequence":null,'
    b'"usage":{"input_tokens":2,"cache_creation_input_tokens":4722,'
    b'"cache_read_input_tokens":13367,"cache_creation":{"ephemeral_5m_input_tokens":4722,'
    b'"ephemeral_1h_input_tokens":0},"output_tokens":28,"service_tier":"standard"},'
    b'"context_management":null},"parent_tool_use_id":null,'
    b'"session_id":"5620625c-b4c7-4185-9b2b-8de430dd2184",'
    b'"uuid":"eda52225-597f-4a1f-8ca6-a6bcd94934ac"}'
)

USER_TOOL_RESULT_LINE = (
    b'{"type":"user","message":{"role":"user","content":[{"tool_use_id":"toolu_01Lsrzx",'
    b'"type":"tool_result","content":"/private/tmp/playing/quick_start.rb\\n'
    b'/private/tmp/playing/advanced_examples.rb"}]},"parent_tool_use_id":null,'
    b'"session_id":"c8775347-af93-45c7-b9bf-a6e009483fa5",'
    b'"uuid":"4ffd3635-d0fb-4057-85e2-0f0a4c302fec",'
    b'"tool_use_result":{"filenames":["/private/tmp/playing/quick_start.rb",'
    b'"/private/tmp/playing/advanced_examples.rb"],"durationMs":345,"numFiles":2,'
    b'"truncated":false}}'
)

RESULT_LINE = (
    b'{"type":"result","subtype":"success","is_error":false,"duration_ms":7040,'
    b'"duration_api_ms":12311,"num_turns":2,"result":"I found 2 Ruby files.",'
    b'"session_id":"c8775347-af93-45c7-b9bf-a6e009483fa5","total_cost_usd":0.0186724,'
    b'"usage":{"input_tokens":7,"cache_creation_input_tokens":440,'
    b'"cache_read_input_tokens":35858,"output_tokens":114,'
    b'"server_tool_use":{"web_search_requests":0,"web_fetch_requests":0},'
    b'"service_tier":"standard","cache_creation":{"ephemeral_1h_input_tokens":0,'
    b'"ephemeral_5m_input_tokens":440}},'
    b'"modelUsage":{"claude-sonnet-4-5-20250929":{"inputTokens":9,"outputTokens":143,'
    b'"cacheReadInputTokens":39900,"cacheCreationInputTokens":439,"webSearchRequests":0,'
    b'"costUSD":0.0157882,"contextWindow":200000,"maxOutputTokens":64000}},'
    b'"permission_denials":[],"uuid":"34cf1a3e-8b9f-481e-ba6f-c9e934b09424"}'
)

STREAM_TEXT_DELTA_LINE = (
    b'{"type":"stream_event","event":{"type":"content_block_delta","index":0,'
    b'"delta":{"type":"text_delta","text":"Dogs are loyal"}},'
    b'"session_id":"4a7c99c6-e08a-4e3c-b6ce-17c33ae8bb92","parent_tool_use_id":null,'
    b'"uuid":"2bc3e3c8-d9f2-48e8-bd72-b828bbbf3732"}'
)


def ndjson(*lines: bytes | str) -> bytes:
    """Join lines into a newline-delimited stream."""
    return b"".join(
        (line.encode("utf-8") if isinstance(line, str) else line) + b"\n"
        for line in lines
    )


def reader_for(*lines: bytes | str) -> io.BytesIO:
    """Create an in-memory byte source yielding *lines*."""
    return io.BytesIO(ndjson(*lines))


@pytest.fixture
def sink() -> io.BytesIO:
    """In-memory byte sink capturing everything written."""
    return io.BytesIO()


class Pipe:
    """An os.pipe() pair: a blocking source and a writer feeding it."""

    def __init__(self) -> None:
        read_fd, write_fd = os.pipe()
        self.source = os.fdopen(read_fd, "rb")
        self._write_fd = write_fd
        self._write_open = True

    def feed(self, *lines: bytes | str) -> None:
        os.write(self._write_fd, ndjson(*lines))

    def close_writer(self) -> None:
        if self._write_open:
            self._write_open = False
            os.close(self._write_fd)


@pytest.fixture
def pipe() -> Generator[Pipe, None, None]:
    """A source whose reads block until data is fed or the writer is closed.

    The write end is closed on teardown so a reader thread blocked on the
    source sees end of stream and exits.
    """
    p = Pipe()
    try:
        yield p
    finally:
        p.close_writer()
