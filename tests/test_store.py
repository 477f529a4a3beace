"""Tests for the in-memory record store."""

import pytest

from formcraft.errors import PersistenceError
from formcraft.store import InMemoryStore, Tables


@pytest.fixture
def store():
    return InMemoryStore()


class TestCrud:
    """Test basic record operations."""

    def test_insert_assigns_id(self, store):
        """Inserts without an id get one."""
        row = store.insert(Tables.FORMS, {"name": "Contact"})
        assert row["id"]
        assert store.get(Tables.FORMS, row["id"]) == row

    def test_records_are_copied(self, store):
        """Mutating a returned record does not change the store."""
        row = store.insert(Tables.FORMS, {"name": "Contact", "fields": [{"id": "a"}]})
        row["fields"].append({"id": "b"})
        fetched = store.get(Tables.FORMS, row["id"])
        fetched["name"] = "Changed"
        assert store.get(Tables.FORMS, row["id"]) == {"id": row["id"], "name": "Contact", "fields": [{"id": "a"}]}

    def test_update_merges_changes(self, store):
        """Updates merge into the row and return it."""
        row = store.insert(Tables.FORMS, {"name": "Contact", "status": "draft"})
        updated = store.update(Tables.FORMS, row["id"], {"status": "published"})
        assert updated == {"id": row["id"], "name": "Contact", "status": "published"}

    def test_update_missing_returns_none(self, store):
        """Updating an unknown row returns None."""
        assert store.update(Tables.FORMS, "nope", {"status": "draft"}) is None

    def test_delete(self, store):
        """delete reports whether a row was removed."""
        row = store.insert(Tables.FORMS, {"name": "Contact"})
        assert store.delete(Tables.FORMS, row["id"]) is True
        assert store.delete(Tables.FORMS, row["id"]) is False

    def test_delete_where(self, store):
        """delete_where removes matching rows and counts them."""
        store.insert(Tables.FORM_SUBMISSIONS, {"form_id": "a"})
        store.insert(Tables.FORM_SUBMISSIONS, {"form_id": "a"})
        store.insert(Tables.FORM_SUBMISSIONS, {"form_id": "b"})
        assert store.delete_where(Tables.FORM_SUBMISSIONS, {"form_id": "a"}) == 2
        assert [r["form_id"] for r in store.find(Tables.FORM_SUBMISSIONS)] == ["b"]


class TestFind:
    """Test filtered and ordered queries."""

    def test_filter_order_limit(self, store):
        """find filters by equality, orders and limits."""
        store.insert(Tables.FORMS, {"created_by": "u1", "updated_at": "2024-01-02"})
        store.insert(Tables.FORMS, {"created_by": "u1", "updated_at": "2024-01-03"})
        store.insert(Tables.FORMS, {"created_by": "u2", "updated_at": "2024-01-04"})
        rows = store.find(Tables.FORMS, {"created_by": "u1"}, order_by="updated_at", descending=True)
        assert [r["updated_at"] for r in rows] == ["2024-01-03", "2024-01-02"]
        assert len(store.find(Tables.FORMS, order_by="updated_at", limit=1)) == 1

    def test_none_sorts_first_ascending(self, store):
        """Rows missing the sort column come first in ascending order."""
        store.insert(Tables.FORMS, {"name": "b", "published_at": "2024-01-01"})
        store.insert(Tables.FORMS, {"name": "a", "published_at": None})
        assert [r["name"] for r in store.find(Tables.FORMS, order_by="published_at")] == ["a", "b"]

    def test_unknown_table(self, store):
        """Unknown tables raise PersistenceError."""
        with pytest.raises(PersistenceError):
            store.find("nope")


class TestConstraints:
    """Test unique columns and the grant join."""

    def test_duplicate_embedding_key(self, store):
        """Embedding keys are unique."""
        store.insert(Tables.FORM_EMBEDDINGS, {"form_id": "f", "site_id": "s", "embedding_key": "k"})
        with pytest.raises(PersistenceError, match="embedding_key"):
            store.insert(Tables.FORM_EMBEDDINGS, {"form_id": "g", "site_id": "s", "embedding_key": "k"})

    def test_duplicate_id(self, store):
        """Explicit ids must be unique."""
        store.insert(Tables.FORMS, {"id": "x"})
        with pytest.raises(PersistenceError):
            store.insert(Tables.FORMS, {"id": "x"})

    def test_find_embed_grant_joins_site_and_form(self, store):
        """The grant lookup attaches site domain/approval and form status."""
        form = store.insert(Tables.FORMS, {"name": "Contact", "status": "published"})
        site = store.insert(Tables.EMBEDDING_SITES, {"domain": "example.com", "is_approved": True})
        store.insert(Tables.FORM_EMBEDDINGS, {"form_id": form["id"], "site_id": site["id"], "embedding_key": "k"})
        grant = store.find_embed_grant("k")
        assert grant["site"] == {"domain": "example.com", "is_approved": True}
        assert grant["form"] == {"id": form["id"], "status": "published"}
        assert store.find_embed_grant("other") is None
