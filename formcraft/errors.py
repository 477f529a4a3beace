"""Error types for formcraft.

Two kinds of failure exist in this package:

* Expected outcomes (a rejected embed load, an invalid submission) are returned
  as data. FieldError is the per-field record used for the latter.
* Unexpected or structural failures are raised. Everything raised by formcraft
  derives from FormcraftError so the HTTP layer can map it in one place.

Only PersistenceError is meant to travel all the way to the request boundary,
where it becomes a generic 500 response.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from formcraft.types import FieldErrorCode, FormStatus


class FormcraftError(Exception):
    """Base class for all formcraft exceptions."""


class SchemaError(FormcraftError):
    """Raised when a field definition or field array is structurally invalid.

    Attributes:
        field_id: Id of the offending field, when one can be named
    """

    def __init__(self, message: str, field_id: Optional[str] = None):
        self.field_id = field_id
        super().__init__(message)


class NotFoundError(FormcraftError):
    """Raised when a referenced record does not exist.

    Attributes:
        resource: Kind of record that was looked up (e.g. "form", "template")
        resource_id: The id that failed to resolve
    """

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} '{resource_id}' not found")


class PersistenceError(FormcraftError):
    """Raised when the record store fails (connectivity, constraint violation).

    Attributes:
        operation: Store operation that failed (e.g. "insert")
        table: Collection the operation targeted
    """

    def __init__(self, operation: str, table: str, message: str):
        self.operation = operation
        self.table = table
        super().__init__(f"{operation} on '{table}' failed: {message}")


class InvalidStateTransitionError(FormcraftError):
    """Raised when a form is asked to move into the state it is already in.

    Attributes:
        current_state: The form's state before the attempted transition
        target_state: The state that was requested
    """

    def __init__(self, current_state: FormStatus, target_state: FormStatus, message: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


class InsufficientCreditsError(FormcraftError):
    """Raised when a ledger debit exceeds the user's balance."""

    def __init__(self, user_id: str, balance: float, requested: float):
        self.user_id = user_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"User '{user_id}' has {balance} credits, {requested} requested"
        )


@dataclass(frozen=True)
class FieldError:
    """Per-field validation failure.

    Attributes:
        field_id: Id of the field that failed
        code: Machine-readable failure code
        message: Human-readable message shown next to the field

    Examples:
        >>> err = FieldError(field_id="email", code=FieldErrorCode.INVALID_FORMAT, message="Invalid format")
        >>> err.to_dict()
        {'fieldId': 'email', 'code': 'invalid_format', 'message': 'Invalid format'}
    """
    field_id: str
    code: FieldErrorCode
    message: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "fieldId": self.field_id,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(field_id=data["fieldId"], code=code, message=data["message"])


__all__ = [
    "FormcraftError",
    "SchemaError",
    "NotFoundError",
    "PersistenceError",
    "InvalidStateTransitionError",
    "InsufficientCreditsError",
    "FieldError",
]
