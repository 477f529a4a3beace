"""Submission validation for formcraft.

SubmissionValidator checks a visitor's raw payload (field id -> value)
against a form's field schema and returns either the normalized payload or
a per-field error mapping. It runs on the server for every submission, even
when the embedding page already validated the same data.

Rules are checked per field, in field order:

1. required: a missing key, None, "" or an empty list fails with
   "This field is required" and skips the remaining rules for that field
2. pattern (text-like kinds, value present): regex search must succeed,
   otherwise "Invalid format"
3. minLength / maxLength (text-like kinds)
4. numeric coercion and min / max (number kind)

When several rules fail for one field, the message of the last failing rule
is kept. Optional fields that are missing or empty are skipped; missing ones
are also left out of the normalized data.

``find_missing_required`` is the coarse pre-check used at the HTTP boundary.
It only looks at required fields and treats any falsy value as missing.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from formcraft.errors import FieldError
from formcraft.fields import FieldDefinition, FieldInput, parse_fields
from formcraft.types import TEXT_LIKE_TYPES, FieldErrorCode, FieldType

Number = Union[int, float]

REQUIRED_MESSAGE = "This field is required"
INVALID_FORMAT_MESSAGE = "Invalid format"
INVALID_TEXT_MESSAGE = "Please enter a text value"
INVALID_NUMBER_MESSAGE = "Please enter a valid number"


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a payload against a field schema.

    Attributes:
        is_valid: Whether every field passed
        errors: Field id -> message, one entry per failing field
        field_errors: The same failures with machine-readable codes
        data: Normalized payload (numbers coerced, unknown keys dropped);
            empty when validation failed

    Examples:
        >>> result = validate([{"id": "name", "type": "text", "label": "Name",
        ...                     "validation": {"required": True}}], {})
        >>> result.is_valid, result.errors
        (False, {'name': 'This field is required'})
    """
    is_valid: bool
    errors: Dict[str, str] = field(default_factory=dict)
    field_errors: List[FieldError] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {"valid": self.is_valid}
        if not self.is_valid:
            result["errors"] = dict(self.errors)
        return result


def is_empty(value: Any) -> bool:
    """True for the values the required rule rejects."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def coerce_number(value: Any) -> Optional[Number]:
    """Coerce a submitted value to a finite number, or None when it is not one.

    Booleans, NaN and infinities are not numbers here.

    Examples:
        >>> coerce_number("42"), coerce_number(" 2.5 "), coerce_number(7)
        (42, 2.5, 7)
        >>> coerce_number("abc") is None, coerce_number("nan") is None, coerce_number(True) is None
        (True, True, True)
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def format_bound(bound: Number) -> str:
    """Render a rule bound the way it appears in messages ("5", not "5.0")."""
    if isinstance(bound, float) and bound.is_integer():
        return str(int(bound))
    return str(bound)


class SubmissionValidator:
    """Validates payloads against one form's field schema.

    The field schema is parsed once; ``validate`` is pure and may be called
    any number of times.

    Args:
        fields: Field definitions, as parsed objects or builder JSON

    Raises:
        SchemaError: If the field schema is structurally invalid

    Examples:
        >>> validator = SubmissionValidator([
        ...     {"id": "age", "type": "number", "label": "Age", "validation": {"min": 0, "max": 10}},
        ... ])
        >>> validator.validate({"age": 15}).errors
        {'age': 'Maximum value is 10'}
        >>> validator.validate({"age": "5"}).data
        {'age': 5}
    """

    def __init__(self, fields: Iterable[FieldInput]):
        self.fields: List[FieldDefinition] = parse_fields(fields)

    def validate(self, payload: Optional[Mapping[str, Any]]) -> ValidationResult:
        payload = payload or {}
        failures: List[FieldError] = []
        data: Dict[str, Any] = {}

        for definition in self.fields:
            present = definition.id in payload
            value = payload.get(definition.id)

            if is_empty(value):
                if definition.required:
                    failures.append(FieldError(definition.id, FieldErrorCode.REQUIRED, REQUIRED_MESSAGE))
                elif present:
                    data[definition.id] = value
                continue

            failure, normalized = self._check_value(definition, value)
            if failure is not None:
                failures.append(failure)
            else:
                data[definition.id] = normalized

        if failures:
            return ValidationResult(
                is_valid=False,
                errors={f.field_id: f.message for f in failures},
                field_errors=failures,
            )
        return ValidationResult(is_valid=True, data=data)

    def _check_value(self, definition: FieldDefinition, value: Any):
        """Apply the kind-specific rules to a non-empty value.

        Returns (FieldError or None, normalized value).
        """
        if definition.type in TEXT_LIKE_TYPES:
            return self._check_text(definition, value)
        if definition.type is FieldType.NUMBER:
            return self._check_number(definition, value)
        return None, value

    def _check_text(self, definition: FieldDefinition, value: Any):
        if not isinstance(value, str):
            return FieldError(definition.id, FieldErrorCode.INVALID_TYPE, INVALID_TEXT_MESSAGE), value

        rules = definition.rules
        failure: Optional[FieldError] = None

        if rules.pattern and re.search(rules.pattern, value) is None:
            failure = FieldError(definition.id, FieldErrorCode.INVALID_FORMAT, INVALID_FORMAT_MESSAGE)
        if rules.min_length is not None and len(value) < rules.min_length:
            failure = FieldError(
                definition.id,
                FieldErrorCode.TOO_SHORT,
                f"At least {format_bound(rules.min_length)} characters required",
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            failure = FieldError(
                definition.id,
                FieldErrorCode.TOO_LONG,
                f"Maximum {format_bound(rules.max_length)} characters allowed",
            )
        return failure, value

    def _check_number(self, definition: FieldDefinition, value: Any):
        number = coerce_number(value)
        if number is None:
            return FieldError(definition.id, FieldErrorCode.INVALID_TYPE, INVALID_NUMBER_MESSAGE), value

        rules = definition.rules
        failure: Optional[FieldError] = None

        if rules.min is not None and number < rules.min:
            failure = FieldError(
                definition.id,
                FieldErrorCode.BELOW_MINIMUM,
                f"Minimum value is {format_bound(rules.min)}",
            )
        if rules.max is not None and number > rules.max:
            failure = FieldError(
                definition.id,
                FieldErrorCode.ABOVE_MAXIMUM,
                f"Maximum value is {format_bound(rules.max)}",
            )
        return failure, number


def validate(fields: Iterable[FieldInput], payload: Optional[Mapping[str, Any]]) -> ValidationResult:
    """Validate payload against fields. See SubmissionValidator."""
    return SubmissionValidator(fields).validate(payload)


def find_missing_required(
    fields: Sequence[FieldDefinition], payload: Optional[Mapping[str, Any]]
) -> List[str]:
    """Ids of required fields whose submitted value is falsy, in field order.

    Examples:
        >>> from formcraft.fields import parse_fields
        >>> fields = parse_fields([
        ...     {"id": "name", "type": "text", "label": "Name", "validation": {"required": True}},
        ...     {"id": "note", "type": "text", "label": "Note"},
        ... ])
        >>> find_missing_required(fields, {"name": ""})
        ['name']
    """
    payload = payload or {}
    return [f.id for f in fields if f.required and not payload.get(f.id)]


__all__ = [
    "ValidationResult",
    "SubmissionValidator",
    "validate",
    "find_missing_required",
    "coerce_number",
    "format_bound",
    "is_empty",
    "REQUIRED_MESSAGE",
    "INVALID_FORMAT_MESSAGE",
    "INVALID_NUMBER_MESSAGE",
]
