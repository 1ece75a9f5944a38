"""Repair of conversations left with unanswered tool calls.

When an exchange is interrupted between a model's tool calls and the caller's
tool results, the stored conversation holds orphaned tool calls. Most backends
reject such a history on the next request. The repair injects one placeholder
result per orphaned call.

The algorithm is written once over an abstract turn view. Each backend
provides a ``ConversationAdapter`` that reads its native messages as turns
and builds native placeholder results.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar

MessageT = TypeVar("MessageT")


class TurnRole(str, Enum):
    """Role of a turn in the abstract view.

    TOOL is reserved for turns that only carry tool results as separate
    messages (e.g., OpenAI ``tool`` messages). Results embedded in a user
    turn make it a USER turn.
    """

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCallRef:
    id: str
    name: str


@dataclass(frozen=True)
class ToolResultRef:
    tool_use_id: str


@dataclass
class Turn:
    """Backend independent view of one conversation message."""

    role: TurnRole
    tool_calls: list[ToolCallRef] = field(default_factory=list)
    tool_results: list[ToolResultRef] = field(default_factory=list)
    text: str = ""


class ConversationAdapter(Protocol[MessageT]):
    """Translation between a backend's native messages and the turn view."""

    def to_turn(self, message: MessageT) -> Turn:
        """Read a native message as a turn."""
        ...

    def inject_results(
        self, message: MessageT, calls: list[ToolCallRef]
    ) -> list[MessageT]:
        """Return the messages replacing ``message`` with placeholders ahead of its content."""
        ...

    def trailing_results(self, calls: list[ToolCallRef]) -> list[MessageT]:
        """Return the messages answering ``calls`` at the end of the conversation."""
        ...


def interrupted_tool_message(tool_name: str) -> str:
    return f"Tool interrupted: `{tool_name}`, user stopped"


def fix_orphaned_tool_use(
    messages: Sequence[MessageT] | None,
    adapter: ConversationAdapter[MessageT],
    *,
    logger: Any = None,
) -> list[MessageT]:
    """Ensure every tool call in a conversation has a matching result.

    Placeholders are inserted in call order, before the content of the first
    non-tool turn following the calls, ahead of any real results it already
    holds. Calls still pending at the end are answered by a trailing turn.

    Running the repair on its own output is a no-op, and a consistent
    conversation comes back as an equal copy. The input is never mutated.

    Args:
        messages: Backend-native conversation, in order.
        adapter: Translation for the backend's message shape.
        logger: Structlog logger told how many placeholders were injected.

    Returns:
        A new list of messages.
    """
    if not messages:
        return []

    repaired: list[MessageT] = []
    pending: dict[str, ToolCallRef] = {}
    injected = 0

    for message in messages:
        turn = adapter.to_turn(message)

        if turn.role is TurnRole.TOOL:
            for result in turn.tool_results:
                pending.pop(result.tool_use_id, None)
            repaired.append(message)
            continue

        if pending:
            answered = {r.tool_use_id for r in turn.tool_results}
            missing = [call for call in pending.values() if call.id not in answered]
            if missing:
                repaired.extend(adapter.inject_results(message, missing))
                injected += len(missing)
            else:
                repaired.append(message)
            pending.clear()
        else:
            repaired.append(message)

        for call in turn.tool_calls:
            pending[call.id] = call

    if pending:
        missing = list(pending.values())
        repaired.extend(adapter.trailing_results(missing))
        injected += len(missing)

    if injected and logger is not None:
        logger.info(
            "conversation_orphaned_tool_use_fixed",
            injected_results=injected,
            message_count=len(messages),
        )

    return repaired
