"""Tests for the form repository.

Tests cover:
- Creating, reading, listing, updating and deleting forms
- Lifecycle transitions persisted through the store
- Submission storage and listing
- Cache invalidation on writes
- Events emitted by each write
"""

from datetime import datetime, timedelta, timezone

import pytest

from formcraft.cache import QueryCache
from formcraft.errors import InvalidStateTransitionError, NotFoundError, SchemaError
from formcraft.events import EventEmitter
from formcraft.forms import FormRepository
from formcraft.models import SubmissionMetadata
from formcraft.store import InMemoryStore, Tables
from formcraft.types import EventType, FormStatus


FIELDS = [
    {"id": "name", "type": "text", "label": "Name", "validation": {"required": True}},
    {"id": "email", "type": "email", "label": "Email"},
]


class StepClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def events():
    return []


@pytest.fixture
def repo(store, events):
    emitter = EventEmitter()
    emitter.on_any(events.append)
    return FormRepository(store, cache=QueryCache(ttl_seconds=60), emitter=emitter, clock=StepClock())


class TestCreateForm:
    """Test form creation."""

    def test_create_draft(self, repo, store):
        """New forms are drafts owned by their creator."""
        form = repo.create_form("user_1", "Contact", FIELDS, description="Say hi")
        assert form.status == FormStatus.DRAFT
        assert form.created_by == "user_1"
        assert [f.id for f in form.fields] == ["name", "email"]
        assert store.get(Tables.FORMS, form.id)["status"] == "draft"

    def test_create_emits_event(self, repo, events):
        """Creation emits form.created."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        assert [e.type for e in events] == [EventType.FORM_CREATED]
        assert events[0].form_id == form.id

    def test_invalid_fields_rejected(self, repo, store):
        """An invalid schema is rejected before anything is stored."""
        with pytest.raises(SchemaError):
            repo.create_form("user_1", "Broken", [{"id": "c", "type": "select", "label": "C"}])
        assert store.find(Tables.FORMS) == []

    def test_empty_name_rejected(self, repo):
        """A blank name is a schema error."""
        with pytest.raises(SchemaError, match="name"):
            repo.create_form("user_1", "  ", FIELDS)


class TestReadForms:
    """Test reads and listing."""

    def test_get_round_trip(self, repo):
        """A stored form reads back equal to the created one."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        assert repo.get_form(form.id) == form

    def test_get_missing(self, repo):
        """Unknown ids read as None; require_form raises."""
        assert repo.get_form("nope") is None
        with pytest.raises(NotFoundError):
            repo.require_form("nope")

    def test_list_by_owner_newest_update_first(self, repo):
        """Listing filters by owner and orders by updated_at descending."""
        first = repo.create_form("user_1", "First", FIELDS)
        second = repo.create_form("user_1", "Second", FIELDS)
        repo.create_form("user_2", "Other", FIELDS)
        assert [f.name for f in repo.list_forms("user_1")] == ["Second", "First"]

        repo.update_form(first.id, name="First again")
        assert [f.id for f in repo.list_forms("user_1")] == [first.id, second.id]

    def test_list_by_status(self, repo):
        """Listing can filter by status."""
        draft = repo.create_form("user_1", "Draft", FIELDS)
        live = repo.create_form("user_1", "Live", FIELDS)
        repo.publish(live.id)
        assert [f.id for f in repo.list_forms("user_1", FormStatus.PUBLISHED)] == [live.id]
        assert [f.id for f in repo.list_forms("user_1", FormStatus.DRAFT)] == [draft.id]


class TestUpdateForm:
    """Test edits."""

    def test_update_fields_and_refresh_updated_at(self, repo):
        """Updating fields stores the new schema and refreshes updated_at."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        updated = repo.update_form(form.id, fields=[{"id": "phone", "type": "tel", "label": "Phone"}])
        assert [f.id for f in updated.fields] == ["phone"]
        assert updated.updated_at > form.updated_at
        assert updated.status == FormStatus.DRAFT

    def test_update_visible_through_cache(self, repo):
        """A cached read sees the update."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        repo.get_form(form.id)
        repo.update_form(form.id, name="Renamed")
        assert repo.get_form(form.id).name == "Renamed"

    def test_update_missing(self, repo):
        """Updating an unknown form raises NotFoundError."""
        with pytest.raises(NotFoundError):
            repo.update_form("nope", name="X")


class TestTransitions:
    """Test lifecycle transitions through the repository."""

    def test_publish_persists_status_and_stamp(self, repo, store, events):
        """Publishing writes status and published_at together."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        published = repo.publish(form.id, actor_id="user_1")
        row = store.get(Tables.FORMS, form.id)
        assert row["status"] == "published"
        assert row["published_at"] == published.published_at.isoformat()
        assert row["updated_at"] == row["published_at"]
        assert events[-1].type == EventType.FORM_PUBLISHED

    def test_cached_reader_sees_transition(self, repo):
        """A cached read after a transition returns the new status."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        assert repo.get_form(form.id).status == FormStatus.DRAFT
        repo.publish(form.id)
        assert repo.get_form(form.id).status == FormStatus.PUBLISHED

    def test_self_transition_rejected(self, repo):
        """Archiving an archived form raises."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        repo.archive(form.id)
        with pytest.raises(InvalidStateTransitionError):
            repo.archive(form.id)

    def test_transition_unknown_form(self, repo):
        """Transitions on unknown forms raise NotFoundError."""
        with pytest.raises(NotFoundError):
            repo.publish("nope")

    def test_archive_then_unpublish(self, repo):
        """An archived form can go back to draft."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        repo.publish(form.id)
        repo.archive(form.id)
        assert repo.unpublish(form.id).status == FormStatus.DRAFT


class TestSubmissions:
    """Test submission storage and listing."""

    def test_store_and_list_newest_first(self, repo, events):
        """Submissions are listed newest first."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        base = datetime(2024, 6, 1, tzinfo=timezone.utc)
        first = repo.store_submission(form.id, {"name": "A"}, SubmissionMetadata(timestamp=base))
        second = repo.store_submission(
            form.id, {"name": "B"}, SubmissionMetadata(timestamp=base + timedelta(minutes=5), ip_address="1.2.3.4")
        )
        listed = repo.list_submissions(form.id)
        assert [s.id for s in listed] == [second.id, first.id]
        assert listed[0].submitter_ip == "1.2.3.4"
        assert listed[0].submitted_at == base + timedelta(minutes=5)
        assert events[-1].type == EventType.SUBMISSION_RECEIVED

    def test_new_submission_visible_after_cached_list(self, repo):
        """Storing a submission invalidates the cached listing."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        assert repo.list_submissions(form.id) == []
        repo.store_submission(form.id, {"name": "A"}, SubmissionMetadata())
        assert len(repo.list_submissions(form.id)) == 1


class TestDeleteForm:
    """Test deletion and deferred deletion."""

    def test_delete_cascades(self, repo, store, events):
        """Deleting a form removes its submissions and embed grants."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        repo.store_submission(form.id, {"name": "A"}, SubmissionMetadata())
        store.insert(Tables.FORM_EMBEDDINGS, {"form_id": form.id, "site_id": "s", "embedding_key": "k"})

        assert repo.delete_form(form.id) is True
        assert repo.get_form(form.id) is None
        assert store.find(Tables.FORM_SUBMISSIONS) == []
        assert store.find(Tables.FORM_EMBEDDINGS) == []
        assert events[-1].type == EventType.FORM_DELETED

    def test_delete_missing(self, repo):
        """Deleting an unknown form returns False."""
        assert repo.delete_form("nope") is False

    def test_scheduled_delete_can_be_undone(self, repo):
        """Cancelling a scheduled delete keeps the form."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        pending = repo.schedule_delete(form.id, delay_seconds=60)
        assert pending.cancel() is True
        assert repo.get_form(form.id) is not None

    def test_scheduled_delete_runs(self, repo):
        """Running a scheduled delete removes the form."""
        form = repo.create_form("user_1", "Contact", FIELDS)
        pending = repo.schedule_delete(form.id, delay_seconds=60)
        assert pending.run_now() is True
        assert repo.get_form(form.id) is None
