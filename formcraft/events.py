"""Event system for formcraft.

Lifecycle transitions, accepted submissions, embed loads and template
instantiations each emit a typed FormEvent. The EventEmitter dispatches them
to subscribers (webhooks, analytics, search indexing). Dispatch is
synchronous and isolated: a failing listener is logged and skipped, and
never affects the operation that emitted the event.
"""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from formcraft.logging import get_logger
from formcraft.models import parse_timestamp, utcnow
from formcraft.types import EventType

logger = get_logger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """An immutable record of something that happened to a form.

    Attributes:
        event_id: Unique identifier (e.g. "evt_3f2a...")
        type: Event type
        form_id: Form the event relates to
        ts: UTC timestamp
        actor_id: User who triggered the event; None for anonymous visitors
        payload: Event-specific data

    Examples:
        >>> event = FormEvent.create(EventType.FORM_PUBLISHED, form_id="form_1", actor_id="user_1")
        >>> event.type.value
        'form.published'
    """
    event_id: str
    type: EventType
    form_id: str
    ts: datetime
    actor_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.type, str) and not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType(self.type))

    @classmethod
    def create(
        cls,
        type: EventType,
        form_id: str,
        actor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        ts: Optional[datetime] = None,
    ) -> "FormEvent":
        """Build an event with a fresh id and timestamp."""
        return cls(
            event_id=f"evt_{uuid.uuid4().hex[:16]}",
            type=type,
            form_id=form_id,
            ts=ts or utcnow(),
            actor_id=actor_id,
            payload=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result: Dict[str, Any] = {
            "eventId": self.event_id,
            "type": self.type.value,
            "formId": self.form_id,
            "ts": self.ts.isoformat(),
        }
        if self.actor_id is not None:
            result["actorId"] = self.actor_id
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    def to_jsonl(self) -> str:
        """Single-line JSON, suitable for appending to an event log."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormEvent":
        return cls(
            event_id=data["eventId"],
            type=EventType(data["type"]),
            form_id=data["formId"],
            ts=parse_timestamp(data["ts"]),
            actor_id=data.get("actorId"),
            payload=data.get("payload"),
        )


EventListener = Callable[[FormEvent], None]


class EventEmitter:
    """Observer registry for FormEvents.

    Type-specific listeners run first, in registration order, then wildcard
    listeners. A listener that raises is logged and the remaining listeners
    still run.

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.FORM_PUBLISHED, seen.append)
        >>> emitter.emit(FormEvent.create(EventType.FORM_PUBLISHED, form_id="f1"))
        >>> len(seen)
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Register a listener for one event type.

        Args:
            event_type: Type of event to listen for
            listener: Callable receiving the FormEvent
        """
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Register a listener for every event type."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Unregister a listener for one event type.

        Args:
            event_type: Type the listener was registered for
            listener: The callable passed to on(); unknown listeners are ignored
        """
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        """Unregister a wildcard listener."""
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: FormEvent) -> None:
        """Dispatch an event to every matching listener."""
        for listener in list(self._listeners.get(event.type, [])) + list(self._any_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "event listener failed",
                    event_type=event.type.value,
                    event_id=event.event_id,
                    form_id=event.form_id,
                )

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count listeners for one type, or all listeners (wildcards included)."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventListener",
    "EventEmitter",
]
