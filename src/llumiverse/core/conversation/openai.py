"""Conversation repair for OpenAI chat completion histories.

Tool calls live in the ``tool_calls`` of assistant messages; each result is a
separate ``tool`` message carrying its ``tool_call_id``.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from llumiverse.core.conversation.repair import (
    ToolCallRef,
    ToolResultRef,
    Turn,
    TurnRole,
    fix_orphaned_tool_use as _fix_orphaned_tool_use,
    interrupted_tool_message,
)

OpenAIMessage = Mapping[str, Any]

_ROLES = {
    "system": TurnRole.SYSTEM,
    "developer": TurnRole.SYSTEM,
    "assistant": TurnRole.ASSISTANT,
    "tool": TurnRole.TOOL,
}


def _text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = [
        str(part.get("text", ""))
        for part in content or []
        if isinstance(part, Mapping) and part.get("type") == "text"
    ]
    return "\n".join(parts)


def _placeholders(calls: list[ToolCallRef]) -> list[dict[str, Any]]:
    return [
        {
            "role": "tool",
            "tool_call_id": call.id,
            "content": interrupted_tool_message(call.name),
        }
        for call in calls
    ]


class OpenAIConversationAdapter:
    """Reads and patches chat completion message dictionaries."""

    def to_turn(self, message: OpenAIMessage) -> Turn:
        role = _ROLES.get(str(message.get("role")), TurnRole.USER)
        turn = Turn(role=role, text=_text(message.get("content")))
        if role is TurnRole.TOOL:
            turn.tool_results.append(ToolResultRef(tool_use_id=str(message.get("tool_call_id"))))
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            turn.tool_calls.append(
                ToolCallRef(id=str(call.get("id")), name=str(function.get("name", "")))
            )
        return turn

    def inject_results(
        self, message: OpenAIMessage, calls: list[ToolCallRef]
    ) -> list[OpenAIMessage]:
        return [*_placeholders(calls), message]

    def trailing_results(self, calls: list[ToolCallRef]) -> list[OpenAIMessage]:
        return list(_placeholders(calls))


def fix_orphaned_tool_use(
    messages: Sequence[OpenAIMessage] | None,
    *,
    logger: Any = None,
) -> list[OpenAIMessage]:
    """Answer every orphaned tool call with a placeholder ``tool`` message."""
    return _fix_orphaned_tool_use(messages, OpenAIConversationAdapter(), logger=logger)
