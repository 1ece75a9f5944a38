"""Default prompt formatting used when a driver does not provide its own."""

import json

from llumiverse.core.types import JSONSchema, PromptRole, PromptSegment


def get_json_safety_notice(schema: JSONSchema) -> str:
    return (
        "The answer must be a JSON object using the following JSON Schema:\n"
        + json.dumps(schema, indent=2)
    )


def format_text_prompt(
    segments: list[PromptSegment], schema: JSONSchema | None = None
) -> str:
    """Format segments as a single plain-text prompt.

    System instructions come first, then the conversation, then safety
    instructions and the result schema notice. Negative and mask segments
    only make sense for image models and are dropped.
    """
    system: list[str] = []
    conversation: list[str] = []
    safety: list[str] = []

    for segment in segments:
        if segment.role is PromptRole.SYSTEM:
            system.append(segment.content)
        elif segment.role is PromptRole.SAFETY:
            safety.append(f"IMPORTANT: {segment.content}")
        elif segment.role is PromptRole.ASSISTANT:
            conversation.append(f"ASSISTANT: {segment.content}")
        elif segment.role is PromptRole.TOOL:
            conversation.append(f"TOOL [{segment.tool_use_id}]: {segment.content}")
        elif segment.role is PromptRole.USER:
            conversation.append(f"USER: {segment.content}")

    if schema:
        safety.append(get_json_safety_notice(schema))

    return "\n\n".join(system + conversation + safety)
