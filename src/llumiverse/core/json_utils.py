"""Tolerant JSON parsing for model output."""

import json

from json_repair import repair_json

from llumiverse.core.types import JSONValue


def extract_json_from_text(text: str) -> str:
    """Return the span from the first ``{`` to the last ``}``."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start : end + 1]


def parse_json(text: str) -> JSONValue:
    """Parse JSON strictly, falling back to a relaxed repair pass.

    Raises:
        json.JSONDecodeError: The strict parse error, if repair also fails.
    """
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as err:
        # Repair turns any prose into a JSON string
        if not text.startswith(("{", "[")):
            raise
        try:
            return json.loads(repair_json(text))
        except (json.JSONDecodeError, ValueError):
            raise err from None


def extract_and_parse_json(text: str) -> JSONValue:
    return parse_json(extract_json_from_text(text))
