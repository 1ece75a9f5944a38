"""Conversation repair for Bedrock Converse style histories.

Content blocks are keyed by kind: ``{"text": ...}``, ``{"toolUse": {...}}``
and ``{"toolResult": {...}}``.
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

BedrockMessage = Mapping[str, Any]


def _blocks(content: Any) -> list[Any]:
    if isinstance(content, str):
        return [{"text": content}]
    return list(content or [])


def _placeholders(calls: list[ToolCallRef]) -> list[dict[str, Any]]:
    return [
        {
            "toolResult": {
                "toolUseId": call.id,
                "content": [{"text": interrupted_tool_message(call.name)}],
            }
        }
        for call in calls
    ]


class BedrockConversationAdapter:
    """Reads and patches Converse API ``Message`` dictionaries."""

    def to_turn(self, message: BedrockMessage) -> Turn:
        role = TurnRole.ASSISTANT if message.get("role") == "assistant" else TurnRole.USER
        content = message.get("content")
        if isinstance(content, str):
            return Turn(role=role, text=content)

        turn = Turn(role=role)
        texts: list[str] = []
        for block in content or []:
            if not isinstance(block, Mapping):
                continue
            if tool_use := block.get("toolUse"):
                turn.tool_calls.append(
                    ToolCallRef(
                        id=str(tool_use.get("toolUseId")),
                        name=str(tool_use.get("name", "")),
                    )
                )
            elif tool_result := block.get("toolResult"):
                turn.tool_results.append(
                    ToolResultRef(tool_use_id=str(tool_result.get("toolUseId")))
                )
            elif "text" in block:
                texts.append(str(block["text"]))
        turn.text = "\n".join(texts)
        return turn

    def inject_results(
        self, message: BedrockMessage, calls: list[ToolCallRef]
    ) -> list[BedrockMessage]:
        if message.get("role") == "assistant":
            return [{"role": "user", "content": _placeholders(calls)}, message]
        return [{**message, "content": _placeholders(calls) + _blocks(message.get("content"))}]

    def trailing_results(self, calls: list[ToolCallRef]) -> list[BedrockMessage]:
        return [{"role": "user", "content": _placeholders(calls)}]


def fix_orphaned_tool_use(
    messages: Sequence[BedrockMessage] | None,
    *,
    logger: Any = None,
) -> list[BedrockMessage]:
    """Answer every orphaned ``toolUse`` block with a placeholder ``toolResult``."""
    return _fix_orphaned_tool_use(messages, BedrockConversationAdapter(), logger=logger)
