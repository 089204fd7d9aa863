"""Basic usage example for claudecode-stream.

Prerequisites:
    - Claude Code CLI installed and available in PATH
    - Valid authentication configured for Claude Code CLI
"""

import asyncio
import subprocess
import sys

from claudecode_stream import (
    AssistantMessage,
    ResultMessage,
    StreamProtocol,
    SystemMessage,
    TextBlock,
    UnknownMessage,
)
from claudecode_stream.exceptions import (
    MessageParseError,
    StreamClosedError,
    TransportError,
)


async def main() -> None:
    """Print one turn of a Claude Code session as it streams in."""
    proc = subprocess.Popen(
        [
            "claude",
            "-p",
            "1+1は何ですか？",
            "--output-format",
            "stream-json",
            "--verbose",
        ],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
    )
    assert proc.stdin is not None and proc.stdout is not None

    async with StreamProtocol(proc.stdout, proc.stdin) as protocol:
        while True:
            try:
                message = await protocol.next_message(timeout=300)
            except StreamClosedError:
                break

            match message:
                case SystemMessage(subtype="init"):
                    print(f"=== Session {message.session_id} ({message.model}) ===")
                case AssistantMessage():
                    for block in message.message.content:
                        if isinstance(block, TextBlock):
                            print(block.text)
                case ResultMessage():
                    print()
                    print("=== Usage ===")
                    if message.usage is not None:
                        print(f"Input tokens: {message.usage.input_tokens}")
                        print(f"Output tokens: {message.usage.output_tokens}")
                    print(f"Cost: ${message.total_cost_usd or 0:.4f}")
                case UnknownMessage(parse_error=str() as error):
                    print(f"Skipped malformed record: {error}", file=sys.stderr)

    proc.wait()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except FileNotFoundError as e:
        print(f"CLI not found: {e}", file=sys.stderr)
        sys.exit(1)
    except TransportError as e:
        print(f"Stream failed: {e}", file=sys.stderr)
        sys.exit(1)
    except MessageParseError as e:
        print(f"Failed to parse CLI output: {e}", file=sys.stderr)
        sys.exit(1)
