"""Conversation repair and cleanup for backend-native histories."""

from llumiverse.core.conversation.anthropic import AnthropicConversationAdapter
from llumiverse.core.conversation.bedrock import BedrockConversationAdapter
from llumiverse.core.conversation.openai import OpenAIConversationAdapter
from llumiverse.core.conversation.repair import (
    ConversationAdapter,
    ToolCallRef,
    ToolResultRef,
    Turn,
    TurnRole,
    fix_orphaned_tool_use,
    interrupted_tool_message,
)
from llumiverse.core.conversation.strip import (
    strip_base64_images_from_conversation,
    strip_binary_from_conversation,
)

__all__ = [
    "AnthropicConversationAdapter",
    "BedrockConversationAdapter",
    "ConversationAdapter",
    "OpenAIConversationAdapter",
    "ToolCallRef",
    "ToolResultRef",
    "Turn",
    "TurnRole",
    "fix_orphaned_tool_use",
    "interrupted_tool_message",
    "strip_base64_images_from_conversation",
    "strip_binary_from_conversation",
]
