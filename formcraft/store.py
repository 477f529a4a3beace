"""Record store collaborator for formcraft.

The persistence engine is external. formcraft talks to it through the
RecordStore protocol: point lookups by id, equality-filtered list queries
with ordering, inserts, single-row updates and deletes. The only join is the
embed grant lookup, which returns a grant with its site and form attached.

InMemoryStore implements the protocol over dictionaries. It backs the test
suite and local development; production deployments supply an adapter for
their database with the same methods.

Store adapters report failures by raising PersistenceError.
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional

from typing_extensions import Protocol

from formcraft.errors import PersistenceError


class Tables:
    """Collection names used by formcraft."""
    FORMS = "forms"
    FORM_TEMPLATES = "form_templates"
    FORM_SUBMISSIONS = "form_submissions"
    EMBEDDING_SITES = "embedding_sites"
    FORM_EMBEDDINGS = "form_embeddings"
    EMBED_LOGS = "embed_logs"
    USER_CREDITS = "user_credits"
    CREDIT_TRANSACTIONS = "credit_transactions"
    PURCHASED_TEMPLATES = "purchased_templates"

    ALL = (
        FORMS,
        FORM_TEMPLATES,
        FORM_SUBMISSIONS,
        EMBEDDING_SITES,
        FORM_EMBEDDINGS,
        EMBED_LOGS,
        USER_CREDITS,
        CREDIT_TRANSACTIONS,
        PURCHASED_TEMPLATES,
    )


# Columns that must be unique within a table
UNIQUE_COLUMNS: Dict[str, tuple] = {
    Tables.FORM_EMBEDDINGS: ("embedding_key",),
    Tables.USER_CREDITS: ("user_id",),
}


class RecordStore(Protocol):
    """Interface the core expects from the persistence engine."""

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one record by id.

        Returns:
            A copy of the record, or None if absent
        """

    def find(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch records whose columns equal every filter value.

        Args:
            table: Table name
            filters: Column -> value equality filters; None matches all
            order_by: Column to sort by
            descending: Sort direction
            limit: Maximum number of rows returned

        Returns:
            Copies of the matching records
        """

    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert a record, assigning an id when it has none.

        Raises:
            PersistenceError: On a duplicate id or unique column value
        """

    def update(self, table: str, record_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply changes to one record in a single write.

        Returns:
            The updated record, or None if it does not exist
        """

    def delete(self, table: str, record_id: str) -> bool:
        """Delete one record. Returns whether it existed."""

    def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        """Delete matching records. Returns the number deleted."""

    def find_embed_grant(self, embedding_key: str) -> Optional[Dict[str, Any]]:
        """Grant row for a key joined with its form and site.

        Returns:
            The grant record with nested "form" and "site" records, or None
        """


def new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStore:
    """Dictionary-backed RecordStore.

    Every method copies records in and out, so callers never share mutable
    state with the store. Each call holds a lock, which makes single-row
    updates atomic.

    Examples:
        >>> store = InMemoryStore()
        >>> row = store.insert("forms", {"name": "Contact", "status": "draft"})
        >>> store.update("forms", row["id"], {"status": "published"})["status"]
        'published'
        >>> [r["name"] for r in store.find("forms", {"status": "published"})]
        ['Contact']
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in Tables.ALL}
        self._lock = threading.RLock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        try:
            return self._tables[table]
        except KeyError:
            raise PersistenceError("lookup", table, "unknown table") from None

    def _check_unique(self, table: str, record: Mapping[str, Any], exclude_id: Optional[str] = None) -> None:
        for column in UNIQUE_COLUMNS.get(table, ()):
            value = record.get(column)
            if value is None:
                continue
            for existing in self._tables[table].values():
                if existing["id"] != exclude_id and existing.get(column) == value:
                    raise PersistenceError(
                        "write", table, f"duplicate value for unique column '{column}'"
                    )

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._table(table).get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def find(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [
                row for row in self._table(table).values()
                if all(row.get(k) == v for k, v in (filters or {}).items())
            ]
            if order_by is not None:
                # None sorts first ascending, last descending
                rows.sort(
                    key=lambda r: (r.get(order_by) is not None, r.get(order_by) if r.get(order_by) is not None else ""),
                    reverse=descending,
                )
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            row = copy.deepcopy(dict(record))
            row.setdefault("id", new_id())
            if row["id"] in rows:
                raise PersistenceError("insert", table, f"duplicate id '{row['id']}'")
            self._check_unique(table, row)
            rows[row["id"]] = row
            return copy.deepcopy(row)

    def update(self, table: str, record_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._table(table)
            row = rows.get(record_id)
            if row is None:
                return None
            updated = {**row, **copy.deepcopy(dict(changes)), "id": record_id}
            self._check_unique(table, updated, exclude_id=record_id)
            rows[record_id] = updated
            return copy.deepcopy(updated)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        with self._lock:
            rows = self._table(table)
            doomed = [
                rid for rid, row in rows.items()
                if all(row.get(k) == v for k, v in filters.items())
            ]
            for rid in doomed:
                del rows[rid]
            return len(doomed)

    def find_embed_grant(self, embedding_key: str) -> Optional[Dict[str, Any]]:
        """Return the grant for a key joined with its site and form, or None.

        A grant whose site or form no longer exists is treated as missing.
        """
        with self._lock:
            for grant in self._tables[Tables.FORM_EMBEDDINGS].values():
                if grant.get("embedding_key") != embedding_key:
                    continue
                site = self._tables[Tables.EMBEDDING_SITES].get(grant["site_id"])
                form = self._tables[Tables.FORMS].get(grant["form_id"])
                if site is None or form is None:
                    return None
                joined = copy.deepcopy(grant)
                joined["site"] = {"domain": site["domain"], "is_approved": site.get("is_approved", False)}
                joined["form"] = {"id": form["id"], "status": form.get("status")}
                return joined
            return None


__all__ = [
    "Tables",
    "RecordStore",
    "InMemoryStore",
    "new_id",
]
