"""Schema-inference comparison of structured payloads.

Instead of deep equality, a JSON schema is inferred from the baseline
value and the candidate is validated against it. Additive optional
content passes; structurally incompatible changes fail with the
validator's diagnostics.
"""

from __future__ import annotations

from typing import Any

from genson import SchemaBuilder
from jsonschema import Draft7Validator


def infer_schema(value: Any) -> dict[str, Any]:
    """Infer a JSON schema describing ``value``."""
    builder = SchemaBuilder()
    builder.add_object(value)
    return builder.to_schema()


def validate_against(schema: dict[str, Any], instance: Any) -> str | None:
    """Validate ``instance`` against ``schema``.

    Returns:
        None when valid, otherwise every diagnostic formatted as
        ``"<json path> <message>"`` and joined with ``"; "``.
    """
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: e.json_path)
    if not errors:
        return None
    return "; ".join(f"{error.json_path} {error.message}" for error in errors)


def compare_structure(old: Any, new: Any) -> tuple[str | None, str | None]:
    """Compare two payloads structurally in both directions.

    Returns:
        ``(forward, reverse)`` diagnostics. ``forward`` is set when the new
        value violates the schema inferred from the old one. ``reverse`` is
        only computed when ``forward`` passes and is set when the old value
        lacks structure the new one requires, i.e. the new one extends it.
    """
    forward = validate_against(infer_schema(old), new)
    if forward is not None:
        return forward, None
    return None, validate_against(infer_schema(new), old)
