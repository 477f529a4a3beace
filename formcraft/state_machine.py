"""Form lifecycle state machine.

A form moves between three states:

    draft ──publish──▶ published ──archive──▶ archived
      ▲                    │                      │
      └──────unpublish─────┘◀──────publish────────┘

Every move between two distinct states is allowed and user-initiated;
nothing expires on its own and no state is terminal. Entering ``published``
stamps ``published_at`` (re-publishing after archiving stamps it again),
entering ``archived`` stamps ``archived_at``, and every transition refreshes
``updated_at``.

The machine does not write to storage. ``transition_to`` returns a
FormTransition whose ``changes`` hold the status, the stamped timestamp and
``updated_at`` together, so the repository persists them in one update.

Usage:
    >>> from formcraft.models import Form
    >>> form = Form(id="form_1", name="Contact", created_by="user_1")
    >>> sm = FormStateMachine(form)
    >>> transition = sm.publish()
    >>> form.status
    <FormStatus.PUBLISHED: 'published'>
    >>> sorted(transition.changes)
    ['published_at', 'status', 'updated_at']
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from formcraft.errors import InvalidStateTransitionError
from formcraft.events import FormEvent
from formcraft.models import Form, utcnow
from formcraft.types import EventType, FormStatus


# Every state can reach every other state
VALID_TRANSITIONS: Dict[FormStatus, Set[FormStatus]] = {
    FormStatus.DRAFT: {FormStatus.PUBLISHED, FormStatus.ARCHIVED},
    FormStatus.PUBLISHED: {FormStatus.ARCHIVED, FormStatus.DRAFT},
    FormStatus.ARCHIVED: {FormStatus.DRAFT, FormStatus.PUBLISHED},
}

STATE_TO_EVENT_TYPE: Dict[FormStatus, EventType] = {
    FormStatus.DRAFT: EventType.FORM_UNPUBLISHED,
    FormStatus.PUBLISHED: EventType.FORM_PUBLISHED,
    FormStatus.ARCHIVED: EventType.FORM_ARCHIVED,
}

# Timestamp column stamped on entry into a state
STATE_TIMESTAMP: Dict[FormStatus, str] = {
    FormStatus.PUBLISHED: "published_at",
    FormStatus.ARCHIVED: "archived_at",
}


@dataclass(frozen=True)
class FormTransition:
    """Outcome of one lifecycle transition.

    Attributes:
        form_id: Form that moved
        from_state: State before the transition
        to_state: State after the transition
        at: Time of the transition
        changes: Store columns to write in a single update
        event: Event describing the transition
    """
    form_id: str
    from_state: FormStatus
    to_state: FormStatus
    at: datetime
    changes: Dict[str, Any]
    event: FormEvent


@dataclass
class FormStateMachine:
    """Applies lifecycle transitions to a Form in memory.

    Attributes:
        form: The form being driven; its status and timestamps are updated in place
        clock: Time source, injectable for tests

    Examples:
        >>> from formcraft.models import Form
        >>> sm = FormStateMachine(Form(id="f", name="F", created_by="u"))
        >>> sm.can_transition_to(FormStatus.PUBLISHED)
        True
        >>> sm.can_transition_to(FormStatus.DRAFT)
        False
    """

    form: Form
    clock: Callable[[], datetime] = utcnow
    _history: List[FormTransition] = field(default_factory=list, init=False, repr=False)

    @property
    def state(self) -> FormStatus:
        return self.form.status

    def can_transition_to(self, target_state: FormStatus) -> bool:
        return target_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, target_state: FormStatus, actor_id: Optional[str] = None) -> FormTransition:
        """Move the form into target_state.

        Args:
            target_state: State to enter
            actor_id: User performing the transition, recorded on the event

        Returns:
            The FormTransition describing the change

        Raises:
            InvalidStateTransitionError: If the form is already in target_state
        """
        if not self.can_transition_to(target_state):
            raise InvalidStateTransitionError(
                current_state=self.state,
                target_state=target_state,
                message=(
                    f"Invalid state transition: form '{self.form.id}' is already "
                    f"'{target_state.value}'"
                ),
            )

        now = self.clock()
        old_state = self.state
        changes: Dict[str, Any] = {"status": target_state.value, "updated_at": now.isoformat()}

        self.form.status = target_state
        self.form.updated_at = now
        stamp = STATE_TIMESTAMP.get(target_state)
        if stamp is not None:
            setattr(self.form, stamp, now)
            changes[stamp] = now.isoformat()

        event = FormEvent.create(
            STATE_TO_EVENT_TYPE[target_state],
            form_id=self.form.id,
            actor_id=actor_id,
            payload={"from_state": old_state.value, "to_state": target_state.value},
            ts=now,
        )
        transition = FormTransition(
            form_id=self.form.id,
            from_state=old_state,
            to_state=target_state,
            at=now,
            changes=changes,
            event=event,
        )
        self._history.append(transition)
        return transition

    def publish(self, actor_id: Optional[str] = None) -> FormTransition:
        return self.transition_to(FormStatus.PUBLISHED, actor_id)

    def archive(self, actor_id: Optional[str] = None) -> FormTransition:
        return self.transition_to(FormStatus.ARCHIVED, actor_id)

    def unpublish(self, actor_id: Optional[str] = None) -> FormTransition:
        """Return the form to draft."""
        return self.transition_to(FormStatus.DRAFT, actor_id)

    def get_history(self) -> List[FormTransition]:
        """Transitions applied through this machine, oldest first."""
        return list(self._history)

    def get_events(self) -> List[FormEvent]:
        return [t.event for t in self._history]


__all__ = [
    "FormStateMachine",
    "FormTransition",
    "VALID_TRANSITIONS",
    "STATE_TO_EVENT_TYPE",
]
