"""Core type definitions for formcraft.

This module defines the enumerations shared by every other module:
- FieldType: The closed set of field kinds a form can contain
- FormStatus: Lifecycle states of a form
- EventType: Event types emitted on the event stream
- FieldErrorCode: Machine-readable codes for per-field validation failures
- TransactionType: Credit ledger entry kinds

The groupings at the bottom (TEXT_LIKE_TYPES, CHOICE_TYPES) decide which
validation rules apply to which field kinds.
"""

from enum import Enum
from typing import FrozenSet


class FieldType(str, Enum):
    """Field kinds supported by the form builder.

    The set is closed: a field definition naming any other type is a schema error.
    """
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    NUMBER = "number"
    PASSWORD = "password"
    TEL = "tel"
    URL = "url"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DATE = "date"
    FILE = "file"


class FormStatus(str, Enum):
    """Form lifecycle states.

    Forms start as drafts. Only published forms accept public submissions
    and embed loads. There is no terminal state.
    """
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class EventType(str, Enum):
    """Event types for the event stream."""
    FORM_CREATED = "form.created"
    FORM_UPDATED = "form.updated"
    FORM_PUBLISHED = "form.published"
    FORM_ARCHIVED = "form.archived"
    FORM_UNPUBLISHED = "form.unpublished"
    FORM_DELETED = "form.deleted"
    SUBMISSION_RECEIVED = "submission.received"
    EMBED_LOADED = "embed.loaded"
    TEMPLATE_CREATED = "template.created"
    TEMPLATE_INSTANTIATED = "template.instantiated"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED = "required"
    INVALID_FORMAT = "invalid_format"
    INVALID_TYPE = "invalid_type"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"


class TransactionType(str, Enum):
    """Credit ledger entry kinds."""
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"


# Kinds that accept minLength / maxLength / pattern
TEXT_LIKE_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.TEXT,
    FieldType.TEXTAREA,
    FieldType.EMAIL,
    FieldType.PASSWORD,
    FieldType.TEL,
    FieldType.URL,
})

# Kinds that must declare an options list (possibly empty)
CHOICE_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.SELECT,
    FieldType.RADIO,
})


__all__ = [
    "FieldType",
    "FormStatus",
    "EventType",
    "FieldErrorCode",
    "TransactionType",
    "TEXT_LIKE_TYPES",
    "CHOICE_TYPES",
]
