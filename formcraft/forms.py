"""Form repository for formcraft.

FormRepository owns every read and write of forms and their submissions:

- create / update / delete forms (field schemas are validated on the way in)
- lifecycle transitions, each persisted as one store update
- submission storage and listing

Reads of forms and submissions go through the injected QueryCache under the
``forms`` and ``submissions`` tags; every write invalidates its tag. Reads
that gate public access (``get_form(..., use_cache=False)``) bypass it.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from formcraft.cache import QueryCache
from formcraft.deferred import DeferredAction
from formcraft.errors import NotFoundError, SchemaError
from formcraft.events import EventEmitter, FormEvent
from formcraft.fields import FieldInput, parse_fields
from formcraft.logging import get_logger
from formcraft.models import Form, Submission, SubmissionMetadata, utcnow
from formcraft.state_machine import FormStateMachine
from formcraft.store import RecordStore, Tables, new_id
from formcraft.types import EventType, FormStatus

logger = get_logger(__name__)

FORMS_TAG = "forms"
SUBMISSIONS_TAG = "submissions"


class FormRepository:
    """Reads and writes forms and submissions.

    Args:
        store: Record store
        cache: Query cache for read paths; a disabled cache when omitted
        emitter: Event emitter; a private one when omitted
        clock: Time source for timestamps
    """

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[QueryCache] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.cache = cache if cache is not None else QueryCache(ttl_seconds=0)
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.clock = clock

    # -- reads ---------------------------------------------------------------

    def get_form(self, form_id: str, use_cache: bool = True) -> Optional[Form]:
        """Return the form, or None when it does not exist."""
        if use_cache:
            record = self.cache.get_or_load(
                ("form", form_id),
                lambda: self.store.get(Tables.FORMS, form_id),
                tags=[FORMS_TAG],
            )
        else:
            record = self.store.get(Tables.FORMS, form_id)
        return Form.from_record(record) if record is not None else None

    def require_form(self, form_id: str, use_cache: bool = True) -> Form:
        """Fetch a form.

        Raises:
            NotFoundError: If the form does not exist
        """
        form = self.get_form(form_id, use_cache=use_cache)
        if form is None:
            raise NotFoundError("form", form_id)
        return form

    def list_forms(self, owner_id: str, status: Optional[FormStatus] = None) -> List[Form]:
        """Forms owned by owner_id, most recently updated first."""
        filters: Dict[str, Any] = {"created_by": owner_id}
        if status is not None:
            filters["status"] = FormStatus(status).value
        records = self.cache.get_or_load(
            ("form-list", owner_id, filters.get("status")),
            lambda: self.store.find(Tables.FORMS, filters, order_by="updated_at", descending=True),
            tags=[FORMS_TAG],
        )
        return [Form.from_record(r) for r in records]

    def list_submissions(self, form_id: str) -> List[Submission]:
        """Submissions of a form, newest first."""
        records = self.cache.get_or_load(
            ("form-submissions", form_id),
            lambda: self.store.find(
                Tables.FORM_SUBMISSIONS, {"form_id": form_id}, order_by="submitted_at", descending=True
            ),
            tags=[SUBMISSIONS_TAG],
        )
        return [Submission.from_record(r) for r in records]

    # -- writes --------------------------------------------------------------

    def create_form(
        self,
        owner_id: str,
        name: str,
        fields: List[FieldInput],
        description: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> Form:
        """Create a draft form.

        Raises:
            SchemaError: If the name is empty or the field schema is invalid
        """
        if not name or not name.strip():
            raise SchemaError("Form name must not be empty")
        now = self.clock()
        form = Form(
            id=new_id(),
            name=name,
            created_by=owner_id,
            fields=parse_fields(fields or []),
            description=description,
            status=FormStatus.DRAFT,
            template_id=template_id,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(Tables.FORMS, form.to_record())
        self.cache.invalidate_tag(FORMS_TAG)
        self.emitter.emit(FormEvent.create(
            EventType.FORM_CREATED,
            form_id=form.id,
            actor_id=owner_id,
            payload={"templateId": template_id} if template_id else None,
            ts=now,
        ))
        logger.info("form created", form_id=form.id, owner_id=owner_id, template_id=template_id)
        return form

    def update_form(
        self,
        form_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        fields: Optional[List[FieldInput]] = None,
        actor_id: Optional[str] = None,
    ) -> Form:
        """Edit name, description and/or fields. Status is changed only by transitions."""
        changes: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise SchemaError("Form name must not be empty")
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if fields is not None:
            changes["fields"] = [f.to_dict() for f in parse_fields(fields)]
        changes["updated_at"] = self.clock().isoformat()

        record = self.store.update(Tables.FORMS, form_id, changes)
        if record is None:
            raise NotFoundError("form", form_id)
        self.cache.invalidate_tag(FORMS_TAG)
        self.emitter.emit(FormEvent.create(
            EventType.FORM_UPDATED,
            form_id=form_id,
            actor_id=actor_id,
            payload={"changed": sorted(k for k in changes if k != "updated_at")},
        ))
        return Form.from_record(record)

    def transition(self, form_id: str, target: FormStatus, actor_id: Optional[str] = None) -> Form:
        """Move a form to target, writing status and timestamps in one update.

        Raises:
            NotFoundError: If the form does not exist
            InvalidStateTransitionError: If the form is already in target
        """
        form = self.require_form(form_id, use_cache=False)
        transition = FormStateMachine(form, clock=self.clock).transition_to(FormStatus(target), actor_id)

        if self.store.update(Tables.FORMS, form_id, transition.changes) is None:
            raise NotFoundError("form", form_id)
        self.cache.invalidate_tag(FORMS_TAG)
        self.emitter.emit(transition.event)
        logger.info(
            "form status changed",
            form_id=form_id,
            from_state=transition.from_state.value,
            to_state=transition.to_state.value,
        )
        return form

    def publish(self, form_id: str, actor_id: Optional[str] = None) -> Form:
        return self.transition(form_id, FormStatus.PUBLISHED, actor_id)

    def archive(self, form_id: str, actor_id: Optional[str] = None) -> Form:
        return self.transition(form_id, FormStatus.ARCHIVED, actor_id)

    def unpublish(self, form_id: str, actor_id: Optional[str] = None) -> Form:
        return self.transition(form_id, FormStatus.DRAFT, actor_id)

    def delete_form(self, form_id: str, actor_id: Optional[str] = None) -> bool:
        """Delete a form together with its submissions and embed grants."""
        removed_submissions = self.store.delete_where(Tables.FORM_SUBMISSIONS, {"form_id": form_id})
        self.store.delete_where(Tables.FORM_EMBEDDINGS, {"form_id": form_id})
        deleted = self.store.delete(Tables.FORMS, form_id)
        self.cache.invalidate_tag(FORMS_TAG)
        self.cache.invalidate_tag(SUBMISSIONS_TAG)
        if deleted:
            self.emitter.emit(FormEvent.create(EventType.FORM_DELETED, form_id=form_id, actor_id=actor_id))
            logger.info("form deleted", form_id=form_id, submissions=removed_submissions)
        return deleted

    def schedule_delete(self, form_id: str, delay_seconds: float, actor_id: Optional[str] = None) -> DeferredAction:
        """Delete the form after delay_seconds unless the returned action is cancelled."""
        action = DeferredAction(lambda: self.delete_form(form_id, actor_id=actor_id), delay_seconds)
        action.start()
        return action

    def store_submission(
        self,
        form_id: str,
        data: Mapping[str, Any],
        metadata: SubmissionMetadata,
    ) -> Submission:
        """Persist an accepted submission. Callers validate before calling."""
        submission = Submission(
            id=new_id(),
            form_id=form_id,
            data=dict(data),
            metadata=metadata,
            submitted_at=metadata.timestamp,
        )
        self.store.insert(Tables.FORM_SUBMISSIONS, submission.to_record())
        self.cache.invalidate_tag(SUBMISSIONS_TAG)
        self.emitter.emit(FormEvent.create(
            EventType.SUBMISSION_RECEIVED,
            form_id=form_id,
            payload={"submissionId": submission.id, "embedKey": metadata.embed_key},
        ))
        return submission


__all__ = ["FormRepository", "FORMS_TAG", "SUBMISSIONS_TAG"]
