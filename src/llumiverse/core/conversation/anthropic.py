"""Conversation repair for Anthropic Messages style histories.

Tool calls are ``tool_use`` blocks in assistant messages; results are
``tool_result`` blocks in the following user message.
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

AnthropicMessage = Mapping[str, Any]


def _blocks(content: Any) -> list[Any]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content or [])


def _placeholders(calls: list[ToolCallRef]) -> list[dict[str, Any]]:
    return [
        {
            "type": "tool_result",
            "tool_use_id": call.id,
            "content": interrupted_tool_message(call.name),
        }
        for call in calls
    ]


class AnthropicConversationAdapter:
    """Reads and patches Anthropic ``MessageParam`` dictionaries."""

    def to_turn(self, message: AnthropicMessage) -> Turn:
        role = TurnRole.ASSISTANT if message.get("role") == "assistant" else TurnRole.USER
        content = message.get("content")
        if isinstance(content, str):
            return Turn(role=role, text=content)

        turn = Turn(role=role)
        texts: list[str] = []
        for block in content or []:
            if not isinstance(block, Mapping):
                continue
            kind = block.get("type")
            if kind == "tool_use":
                turn.tool_calls.append(
                    ToolCallRef(id=str(block.get("id")), name=str(block.get("name", "")))
                )
            elif kind == "tool_result":
                turn.tool_results.append(ToolResultRef(tool_use_id=str(block.get("tool_use_id"))))
            elif kind == "text":
                texts.append(str(block.get("text", "")))
        turn.text = "\n".join(texts)
        return turn

    def inject_results(
        self, message: AnthropicMessage, calls: list[ToolCallRef]
    ) -> list[AnthropicMessage]:
        if message.get("role") == "assistant":
            return [{"role": "user", "content": _placeholders(calls)}, message]
        return [{**message, "content": _placeholders(calls) + _blocks(message.get("content"))}]

    def trailing_results(self, calls: list[ToolCallRef]) -> list[AnthropicMessage]:
        return [{"role": "user", "content": _placeholders(calls)}]


def fix_orphaned_tool_use(
    messages: Sequence[AnthropicMessage] | None,
    *,
    logger: Any = None,
) -> list[AnthropicMessage]:
    """Answer every orphaned ``tool_use`` block with a placeholder ``tool_result``."""
    return _fix_orphaned_tool_use(messages, AnthropicConversationAdapter(), logger=logger)
