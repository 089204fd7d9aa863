"""Outbound user input records and their wire encoding."""

from __future__ import annotations

import json
from typing import Literal

from pydantic import BaseModel, Field

from claudecode_stream.exceptions import InputValidationError
from claudecode_stream.types import JsonValue

UserInputType = Literal["prompt", "raw", "permission", "user"]
PermissionDecision = Literal["allow", "deny"]

USER_INPUT_TYPES: tuple[UserInputType, ...] = ("prompt", "raw", "permission", "user")
PERMISSION_DECISIONS: tuple[PermissionDecision, ...] = ("allow", "deny")


class PermissionInput(BaseModel):
    """A permission decision for a pending tool use."""

    decision: str
    tool_use_id: str = ""
    reason: str = ""


class UserInputContentBlock(BaseModel):
    """A ``tool_result`` block sent back to the CLI.

    ``type`` may be left empty; it is filled in as ``tool_result``.
    """

    type: str = ""
    tool_use_id: str = ""
    content: JsonValue = ""
    is_error: bool | None = None


class UserInputMessage(BaseModel):
    role: str = ""
    content: list[UserInputContentBlock] = Field(default_factory=list)


class UserInput(BaseModel):
    """A record to send to the CLI.

    Exactly one payload field is expected. ``type`` selects the kind
    explicitly; when it is ``None`` the kind is inferred from whichever payload
    field is populated. Nothing is validated at construction time; see
    :func:`encode_user_input`.

    Attributes:
        type: One of ``"prompt"``, ``"raw"``, ``"permission"``, ``"user"``.
        prompt: Plain text, sent byte for byte.
        raw: Pre-serialized text, sent byte for byte.
        permission: Permission decision, sent as JSON.
        message: Structured user message, sent as a stream-json ``user`` record.
        uuid: Optional record uuid for ``user`` inputs.
        session_id: Optional session id for ``user`` inputs.
        parent_tool_use_id: Optional parent tool use id for ``user`` inputs.
    """

    type: str | None = None
    prompt: str = ""
    raw: str = ""
    permission: PermissionInput | None = None
    message: UserInputMessage | None = None
    uuid: str = ""
    session_id: str = ""
    parent_tool_use_id: str | None = None


def _populated_kinds(user_input: UserInput) -> list[UserInputType]:
    kinds: list[UserInputType] = []
    if user_input.prompt:
        kinds.append("prompt")
    if user_input.raw:
        kinds.append("raw")
    if user_input.permission is not None:
        kinds.append("permission")
    if user_input.message is not None:
        kinds.append("user")
    return kinds


def resolve_input_type(user_input: UserInput) -> UserInputType:
    """Return the effective kind of *user_input*.

    Raises:
        InputValidationError: If the kind is unknown, ambiguous, or
            contradicted by other populated payload fields.
    """
    populated = _populated_kinds(user_input)

    if user_input.type is None or user_input.type == "":
        if len(populated) > 1:
            raise InputValidationError(
                f"ambiguous user input: multiple payload fields set ({', '.join(populated)})"
            )
        # An empty input is treated as a prompt so it fails as "prompt is empty".
        return populated[0] if populated else "prompt"

    if user_input.type not in USER_INPUT_TYPES:
        raise InputValidationError(f"unsupported user input type: {user_input.type}")

    conflicting = [kind for kind in populated if kind != user_input.type]
    if conflicting:
        raise InputValidationError(
            f"conflicting payload fields for {user_input.type} input: "
            f"{', '.join(conflicting)}"
        )
    return user_input.type  # type: ignore[return-value]


def _encode_permission(permission: PermissionInput | None) -> str:
    if permission is None:
        raise InputValidationError("permission input is missing")
    if permission.decision not in PERMISSION_DECISIONS:
        raise InputValidationError(
            f"unsupported permission decision: {permission.decision}"
        )
    return permission.model_dump_json(exclude_defaults=True)


def _encode_user_message(user_input: UserInput) -> str:
    message = user_input.message
    if message is None:
        raise InputValidationError("user message is missing")
    if not message.content:
        raise InputValidationError("user message has no content blocks")

    role = message.role or "user"
    if role != "user":
        raise InputValidationError(f"unsupported user message role: {role}")

    blocks: list[dict[str, JsonValue]] = []
    for index, block in enumerate(message.content):
        block_type = block.type or "tool_result"
        if block_type != "tool_result":
            raise InputValidationError(
                f"unsupported user message content type at index {index}: {block_type}"
            )
        if not block.tool_use_id:
            raise InputValidationError(
                f"user message content at index {index} is missing tool_use_id"
            )
        encoded: dict[str, JsonValue] = {
            "type": block_type,
            "tool_use_id": block.tool_use_id,
            "content": block.content,
        }
        if block.is_error is not None:
            encoded["is_error"] = block.is_error
        blocks.append(encoded)

    record: dict[str, JsonValue] = {
        "type": "user",
        "message": {"role": role, "content": blocks},
    }
    if user_input.uuid:
        record["uuid"] = user_input.uuid
    if user_input.session_id:
        record["session_id"] = user_input.session_id
    if user_input.parent_tool_use_id is not None:
        record["parent_tool_use_id"] = user_input.parent_tool_use_id
    return json.dumps(record, ensure_ascii=False)


def encode_user_input(user_input: UserInput) -> tuple[UserInputType, str]:
    """Validate *user_input* and return its kind and the exact text to write.

    Prompt and raw inputs are returned unchanged; permission and user inputs
    are serialized to JSON. No delimiter is appended.

    Raises:
        InputValidationError: If the input is empty, ambiguous or malformed.
    """
    kind = resolve_input_type(user_input)

    if kind == "prompt":
        if not user_input.prompt.strip():
            raise InputValidationError("prompt is empty")
        return kind, user_input.prompt
    if kind == "raw":
        if not user_input.raw:
            raise InputValidationError("raw input is empty")
        return kind, user_input.raw
    if kind == "permission":
        return kind, _encode_permission(user_input.permission)
    return kind, _encode_user_message(user_input)
