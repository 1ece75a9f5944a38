"""Validation of completion results against a JSON schema."""

import json
from collections.abc import Iterable, Sequence
from typing import Any

from jsonschema import FormatChecker, ValidationError
from jsonschema.validators import validator_for

from llumiverse.core.exceptions import ResultValidationError
from llumiverse.core.json_utils import extract_and_parse_json
from llumiverse.core.types import CompletionResult, JSONSchema, JSONValue, ResultType

_DATE_FORMATS = ("date", "date-time")


def _parse_completion_as_json(results: Sequence[CompletionResult]) -> JSONValue:
    last_error: ResultValidationError | None = None
    for part in results:
        if part.type is ResultType.TEXT:
            try:
                return extract_and_parse_json(str(part.value).strip())
            except json.JSONDecodeError as e:
                last_error = ResultValidationError("json_error", str(e))
    if last_error is None:
        last_error = ResultValidationError(
            "json_error", "No JSON compatible response found in completion result"
        )
    raise last_error


def _resolve(node: Any, path: Iterable[Any]) -> Any:
    for key in path:
        if isinstance(node, dict):
            node = node.get(key)
        elif isinstance(node, list) and isinstance(key, int) and key < len(node):
            node = node[key]
        else:
            return None
    return node


def _is_ignorable(error: ValidationError, schema: JSONSchema) -> bool:
    """Empty optional date fields are accepted."""
    if error.instance or not isinstance(error.schema, dict):
        return False
    if error.schema.get("format") not in _DATE_FORMATS:
        return False
    if not error.path:
        return False
    parent = _resolve(schema, list(error.schema_path)[:-3])
    required = parent.get("required", []) if isinstance(parent, dict) else []
    return error.path[-1] not in required


def validate_result(
    results: Sequence[CompletionResult], schema: JSONSchema
) -> list[CompletionResult]:
    """Validate a completion against a JSON schema.

    Uses the first JSON result when present, otherwise parses the first
    text result that contains JSON.

    Returns:
        A single JSON result holding the validated value.

    Raises:
        ResultValidationError: ``json_error`` when no JSON can be extracted,
            ``validation_error`` when the value does not match the schema.
    """
    json_results = [r for r in results if r.type is ResultType.JSON]
    if json_results:
        value = json_results[0].value
    else:
        value = _parse_completion_as_json(results)

    validator_cls = validator_for(schema)
    validator = validator_cls(schema, format_checker=FormatChecker())
    errors = [
        e for e in validator.iter_errors(value) if not _is_ignorable(e, schema)
    ]
    if errors:
        message = ",\n\n".join(
            f"/{'/'.join(str(p) for p in e.path)}: {e.message}" for e in errors
        )
        raise ResultValidationError("validation_error", message)

    return [CompletionResult.json(value)]
