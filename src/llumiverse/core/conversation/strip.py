"""Cleanup of conversation values before they are stored.

Binary payloads do not survive JSON serialization and large base64 images
bloat storage. Both are replaced by placeholders the model can act on.
"""

from collections.abc import Mapping
from typing import Any

BINARY_PLACEHOLDER = "[Binary data stripped - use tool to fetch again]"
IMAGE_PLACEHOLDER = "[Image data stripped - use tool to fetch again]"

# Gemini inline data below this size is kept
INLINE_DATA_MAX_LENGTH = 1000


def strip_binary_from_conversation(obj: Any) -> Any:
    """Return a copy of ``obj`` with every bytes-like value replaced."""
    if isinstance(obj, bytes | bytearray | memoryview):
        return BINARY_PLACEHOLDER
    if isinstance(obj, list | tuple):
        return [strip_binary_from_conversation(item) for item in obj]
    if isinstance(obj, Mapping):
        return {key: strip_binary_from_conversation(value) for key, value in obj.items()}
    return obj


def strip_base64_images_from_conversation(obj: Any) -> Any:
    """Return a copy of ``obj`` without base64 image payloads.

    Strips OpenAI style ``data:image/...;base64,`` URLs and large Gemini
    ``inlineData.data`` strings.
    """
    if isinstance(obj, str):
        if obj.startswith("data:image/") and ";base64," in obj:
            return IMAGE_PLACEHOLDER
        return obj
    if isinstance(obj, list | tuple):
        return [strip_base64_images_from_conversation(item) for item in obj]
    if isinstance(obj, Mapping):
        result: dict[Any, Any] = {}
        for key, value in obj.items():
            if key == "inlineData" and isinstance(value, Mapping):
                data = value.get("data")
                if isinstance(data, str) and len(data) > INLINE_DATA_MAX_LENGTH:
                    result[key] = {**value, "data": IMAGE_PLACEHOLDER}
                    continue
            result[key] = strip_base64_images_from_conversation(value)
        return result
    return obj
