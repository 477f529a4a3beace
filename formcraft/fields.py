"""Field schema model for formcraft.

A form's schema is an ordered list of field definitions. Field definitions
arrive as JSON objects from the builder and are parsed into a closed tagged
union keyed by FieldType:

- TextField: text, textarea, email, password, tel, url (TextRules)
- NumberField: number (NumberRules)
- ChoiceField: select, radio (options required, may be empty)
- CheckboxField: checkbox (options optional)
- PlainField: date, file (required flag only)

Each class carries only the validation rules that apply to its kinds. Rules
sent for a kind that cannot use them are dropped while parsing rather than
rejected, so schemas saved by older builders keep loading.

The JSON shape is checked with a Draft 7 JSON Schema before any class is
built; kind-specific checks (unknown type, missing options, bad pattern)
follow and raise SchemaError.
"""

import copy
import re
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Type, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from formcraft.errors import SchemaError
from formcraft.types import CHOICE_TYPES, TEXT_LIKE_TYPES, FieldType


_NULLABLE_STRING = {"type": ["string", "null"]}
_NULLABLE_NUMBER = {"type": ["number", "null"]}
_NULLABLE_LENGTH = {"type": ["integer", "null"], "minimum": 0}

FIELD_DEFINITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "type": {"type": "string"},
        "label": {"type": "string"},
        "placeholder": _NULLABLE_STRING,
        "description": _NULLABLE_STRING,
        "options": {
            "type": ["array", "null"],
            "items": {"type": "string"},
        },
        "validation": {"type": ["object", "null"]},
    },
    "required": ["id", "type", "label"],
}

# Rule keys each kind can use; only these are shape-checked, the rest are dropped
_REQUIRED_RULE: Dict[str, Any] = {"required": {"type": ["boolean", "null"]}}
_TEXT_RULES: Dict[str, Any] = dict(
    _REQUIRED_RULE,
    minLength=_NULLABLE_LENGTH,
    maxLength=_NULLABLE_LENGTH,
    pattern=_NULLABLE_STRING,
)
_NUMBER_RULES: Dict[str, Any] = dict(_REQUIRED_RULE, min=_NULLABLE_NUMBER, max=_NULLABLE_NUMBER)

_SHAPE_VALIDATOR = Draft7Validator(FIELD_DEFINITION_SCHEMA)
_TEXT_RULES_VALIDATOR = Draft7Validator({"type": "object", "properties": _TEXT_RULES})
_NUMBER_RULES_VALIDATOR = Draft7Validator({"type": "object", "properties": _NUMBER_RULES})
_PLAIN_RULES_VALIDATOR = Draft7Validator({"type": "object", "properties": _REQUIRED_RULE})


def _rules_validator(field_type: FieldType) -> Draft7Validator:
    if field_type in TEXT_LIKE_TYPES:
        return _TEXT_RULES_VALIDATOR
    if field_type is FieldType.NUMBER:
        return _NUMBER_RULES_VALIDATOR
    return _PLAIN_RULES_VALIDATOR


def applicable_rules(field_type: FieldType, raw: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Keep only the rule keys a field kind can use.

    Examples:
        >>> applicable_rules(FieldType.CHECKBOX, {"required": True, "min": "1"})
        {'required': True}
    """
    if raw is None:
        return None
    known = _rules_validator(field_type).schema["properties"]
    return {key: value for key, value in raw.items() if key in known}


@dataclass(frozen=True)
class Rules:
    """Validation rules shared by every field kind."""
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {"required": self.required}


@dataclass(frozen=True)
class TextRules(Rules):
    """Rules for text-like fields.

    Attributes:
        required: Whether a value must be supplied
        min_length: Minimum number of characters
        max_length: Maximum number of characters
        pattern: Regular expression the value must match (search semantics)
    """
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result = super().to_dict()
        if self.min_length is not None:
            result["minLength"] = self.min_length
        if self.max_length is not None:
            result["maxLength"] = self.max_length
        if self.pattern is not None:
            result["pattern"] = self.pattern
        return result


@dataclass(frozen=True)
class NumberRules(Rules):
    """Rules for number fields (inclusive bounds)."""
    min: Optional[float] = None
    max: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result = super().to_dict()
        if self.min is not None:
            result["min"] = self.min
        if self.max is not None:
            result["max"] = self.max
        return result


@dataclass(frozen=True)
class FieldDefinition:
    """Base class of the field union. Use parse_field() to build instances.

    Attributes:
        id: Identifier, unique within the enclosing field array
        type: Field kind
        label: Display label
        placeholder: Optional placeholder text
        description: Optional help text
        validation: Rule set, or None when the definition carried none
    """
    id: str
    type: FieldType
    label: str
    placeholder: Optional[str] = None
    description: Optional[str] = None
    validation: Optional[Rules] = None

    # Kinds this class may carry and the rule class it accepts
    kinds: ClassVar[FrozenSet[FieldType]] = frozenset()
    rules_class: ClassVar[Type[Rules]] = Rules

    def __post_init__(self):
        if not isinstance(self.type, FieldType):
            try:
                object.__setattr__(self, "type", FieldType(self.type))
            except ValueError:
                raise SchemaError(
                    f"Field '{self.id}' has unknown type '{self.type}'", field_id=self.id
                ) from None
        if not self.id:
            raise SchemaError("Field id must be a non-empty string")
        if self.type not in self.kinds:
            raise SchemaError(
                f"Field '{self.id}' of type '{self.type.value}' cannot be built as {type(self).__name__}",
                field_id=self.id,
            )
        if self.validation is not None and not isinstance(self.validation, self.rules_class):
            raise SchemaError(
                f"Field '{self.id}' expects {self.rules_class.__name__} validation",
                field_id=self.id,
            )

    @property
    def rules(self) -> Rules:
        """Effective rules; an empty rule set when none were given."""
        return self.validation if self.validation is not None else self.rules_class()

    @property
    def required(self) -> bool:
        return self.rules.required

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the builder's JSON shape."""
        result: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
        }
        if self.placeholder is not None:
            result["placeholder"] = self.placeholder
        if self.description is not None:
            result["description"] = self.description
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        return result


@dataclass(frozen=True)
class TextField(FieldDefinition):
    kinds = TEXT_LIKE_TYPES
    rules_class = TextRules


@dataclass(frozen=True)
class NumberField(FieldDefinition):
    kinds = frozenset({FieldType.NUMBER})
    rules_class = NumberRules


@dataclass(frozen=True)
class ChoiceField(FieldDefinition):
    """Select or radio field. ``options`` may be empty (renders no choices)."""
    options: Tuple[str, ...] = ()
    kinds = CHOICE_TYPES

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["options"] = list(self.options)
        return result


@dataclass(frozen=True)
class CheckboxField(FieldDefinition):
    options: Optional[Tuple[str, ...]] = None
    kinds = frozenset({FieldType.CHECKBOX})

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.options is not None:
            result["options"] = list(self.options)
        return result


@dataclass(frozen=True)
class PlainField(FieldDefinition):
    kinds = frozenset({FieldType.DATE, FieldType.FILE})


FIELD_CLASSES: Dict[FieldType, Type[FieldDefinition]] = {
    FieldType.TEXT: TextField,
    FieldType.TEXTAREA: TextField,
    FieldType.EMAIL: TextField,
    FieldType.PASSWORD: TextField,
    FieldType.TEL: TextField,
    FieldType.URL: TextField,
    FieldType.NUMBER: NumberField,
    FieldType.SELECT: ChoiceField,
    FieldType.RADIO: ChoiceField,
    FieldType.CHECKBOX: CheckboxField,
    FieldType.DATE: PlainField,
    FieldType.FILE: PlainField,
}

FieldInput = Union[FieldDefinition, Mapping[str, Any]]


def validate_field_definition(data: Mapping[str, Any]) -> None:
    """Check a single field definition for structural validity.

    Args:
        data: Field definition in the builder's JSON shape

    Raises:
        SchemaError: If the shape is wrong, the type is unknown, a select/radio
            field has no options list, the id is empty, or a text-like field
            carries a pattern that does not compile

    Examples:
        >>> validate_field_definition({"id": "name", "type": "text", "label": "Name"})
        >>> validate_field_definition({"id": "color", "type": "select", "label": "Color"})
        Traceback (most recent call last):
        ...
        formcraft.errors.SchemaError: Field 'color' of type 'select' requires an options list
    """
    if not isinstance(data, Mapping):
        raise SchemaError("Field definition must be an object")

    field_id = data.get("id") if isinstance(data.get("id"), str) else None
    error = best_match(_SHAPE_VALIDATOR.iter_errors(dict(data)))
    if error is not None:
        location = ".".join(str(p) for p in error.path) or "field"
        raise SchemaError(f"Invalid field definition at '{location}': {error.message}", field_id=field_id)

    if not data["id"]:
        raise SchemaError("Field id must be a non-empty string")

    try:
        field_type = FieldType(data["type"])
    except ValueError:
        raise SchemaError(
            f"Field '{field_id}' has unknown type '{data['type']}'", field_id=field_id
        ) from None

    if field_type in CHOICE_TYPES and data.get("options") is None:
        raise SchemaError(
            f"Field '{field_id}' of type '{field_type.value}' requires an options list",
            field_id=field_id,
        )

    rules = applicable_rules(field_type, data.get("validation")) or {}
    error = best_match(_rules_validator(field_type).iter_errors(rules))
    if error is not None:
        location = ".".join(["validation"] + [str(p) for p in error.path])
        raise SchemaError(f"Invalid field definition at '{location}': {error.message}", field_id=field_id)

    pattern = rules.get("pattern")
    if field_type in TEXT_LIKE_TYPES and pattern:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise SchemaError(
                f"Field '{field_id}' has an invalid pattern: {exc}", field_id=field_id
            ) from None


def _length(value: Optional[float]) -> Optional[int]:
    # Draft 7 "integer" admits 5.0
    return None if value is None else int(value)


def _build_rules(field_type: FieldType, raw: Optional[Mapping[str, Any]]) -> Optional[Rules]:
    raw = applicable_rules(field_type, raw)
    if raw is None:
        return None
    required = bool(raw.get("required") or False)
    if field_type in TEXT_LIKE_TYPES:
        return TextRules(
            required=required,
            min_length=_length(raw.get("minLength")),
            max_length=_length(raw.get("maxLength")),
            pattern=raw.get("pattern") or None,
        )
    if field_type is FieldType.NUMBER:
        return NumberRules(required=required, min=raw.get("min"), max=raw.get("max"))
    # other kinds keep only the required flag
    return Rules(required=required)


def parse_field(data: FieldInput) -> FieldDefinition:
    """Validate a field definition and build its union member.

    Already-built definitions are returned unchanged.

    Examples:
        >>> f = parse_field({"id": "age", "type": "number", "label": "Age",
        ...                  "validation": {"min": 0, "maxLength": 3}})
        >>> type(f).__name__, f.validation
        ('NumberField', NumberRules(required=False, min=0, max=None))
    """
    if isinstance(data, FieldDefinition):
        return data
    validate_field_definition(data)

    field_type = FieldType(data["type"])
    kwargs: Dict[str, Any] = {
        "id": data["id"],
        "type": field_type,
        "label": data["label"],
        "placeholder": data.get("placeholder"),
        "description": data.get("description"),
        "validation": _build_rules(field_type, data.get("validation")),
    }
    cls = FIELD_CLASSES[field_type]
    if cls is ChoiceField:
        kwargs["options"] = tuple(data["options"])
    elif cls is CheckboxField and data.get("options") is not None:
        kwargs["options"] = tuple(data["options"])
    return cls(**kwargs)


def parse_fields(items: Iterable[FieldInput]) -> List[FieldDefinition]:
    """Parse a form's field array, enforcing per-field validity and unique ids.

    Raises:
        SchemaError: On the first invalid field or duplicate id
    """
    if isinstance(items, (str, bytes, Mapping)):
        raise SchemaError("Fields must be an array of field definitions")
    fields: List[FieldDefinition] = []
    seen = set()
    for item in items:
        parsed = parse_field(item)
        if parsed.id in seen:
            raise SchemaError(f"Duplicate field id '{parsed.id}'", field_id=parsed.id)
        seen.add(parsed.id)
        fields.append(parsed)
    return fields


def validate_field_schema(items: Iterable[FieldInput]) -> None:
    """Form-level structural check. Raises SchemaError, returns nothing."""
    parse_fields(items)


def copy_fields(fields: Iterable[FieldDefinition]) -> List[FieldDefinition]:
    """Detached deep copy of a field array."""
    return [copy.deepcopy(f) for f in fields]


def fields_to_dicts(fields: Iterable[FieldDefinition]) -> List[Dict[str, Any]]:
    return [f.to_dict() for f in fields]


__all__ = [
    "FIELD_DEFINITION_SCHEMA",
    "FIELD_CLASSES",
    "Rules",
    "TextRules",
    "NumberRules",
    "FieldDefinition",
    "TextField",
    "NumberField",
    "ChoiceField",
    "CheckboxField",
    "PlainField",
    "applicable_rules",
    "validate_field_definition",
    "validate_field_schema",
    "parse_field",
    "parse_fields",
    "copy_fields",
    "fields_to_dicts",
]
