"""Record types for formcraft.

Each entity has two serialized shapes:

- a store record (snake_case keys, the row layout of the record store), read
  with ``from_record`` and written with ``to_record``
- an API dict (camelCase keys, what HTTP clients see), written with ``to_dict``

Timestamps are timezone-aware UTC datetimes in memory. Store records may hold
them as ISO 8601 strings; ``parse_timestamp`` accepts either.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as date_parser

from formcraft.fields import FieldDefinition, fields_to_dicts, parse_fields
from formcraft.types import FormStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO 8601 string (or pass through a datetime) as an aware UTC datetime.

    Examples:
        >>> parse_timestamp("2024-05-01T10:00:00Z")
        datetime.datetime(2024, 5, 1, 10, 0, tzinfo=tzutc())
        >>> parse_timestamp(None) is None
        True
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = date_parser.isoparse(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Form:
    """A named, ordered field schema plus lifecycle metadata.

    Attributes:
        id: Form identifier
        name: Display name
        created_by: Owning user id, immutable after creation
        fields: Ordered field definitions with unique ids
        description: Optional description
        status: Lifecycle state, draft on creation
        template_id: Template the form was instantiated from (provenance only)
        created_at: Creation time
        updated_at: Refreshed on every mutation
        published_at: Set on every entry into published
        archived_at: Set on every entry into archived
    """
    id: str
    name: str
    created_by: str
    fields: List[FieldDefinition] = field(default_factory=list)
    description: Optional[str] = None
    status: FormStatus = FormStatus.DRAFT
    template_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    published_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def accepts_submissions(self) -> bool:
        return self.status == FormStatus.PUBLISHED

    def to_record(self) -> Dict[str, Any]:
        """Serialize to a store record."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "fields": fields_to_dicts(self.fields),
            "status": self.status.value,
            "created_by": self.created_by,
            "template_id": self.template_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "published_at": _iso(self.published_at),
            "archived_at": _iso(self.archived_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Form":
        """Build a Form from a store record."""
        return cls(
            id=record["id"],
            name=record["name"],
            created_by=record["created_by"],
            fields=parse_fields(record.get("fields") or []),
            description=record.get("description"),
            status=FormStatus(record.get("status") or FormStatus.DRAFT.value),
            template_id=record.get("template_id"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(record.get("updated_at")) or utcnow(),
            published_at=parse_timestamp(record.get("published_at")),
            archived_at=parse_timestamp(record.get("archived_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API shape."""
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "fields": fields_to_dicts(self.fields),
            "status": self.status.value,
            "createdBy": self.created_by,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if self.description is not None:
            result["description"] = self.description
        if self.template_id is not None:
            result["templateId"] = self.template_id
        if self.published_at is not None:
            result["publishedAt"] = _iso(self.published_at)
        if self.archived_at is not None:
            result["archivedAt"] = _iso(self.archived_at)
        return result


@dataclass
class FormTemplate:
    """A reusable field schema, optionally sold for credits."""
    id: str
    name: str
    description: str = ""
    fields: List[FieldDefinition] = field(default_factory=list)
    created_by: Optional[str] = None
    is_premium: bool = False
    price: float = 0
    preview_image_url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.price < 0:
            raise ValueError(f"Template price must be >= 0, got {self.price}")

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "fields": fields_to_dicts(self.fields),
            "created_by": self.created_by,
            "is_premium": self.is_premium,
            "price": self.price,
            "preview_image_url": self.preview_image_url,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FormTemplate":
        return cls(
            id=record["id"],
            name=record["name"],
            description=record.get("description") or "",
            fields=parse_fields(record.get("fields") or []),
            created_by=record.get("created_by"),
            is_premium=bool(record.get("is_premium") or False),
            price=record.get("price") or 0,
            preview_image_url=record.get("preview_image_url"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(record.get("updated_at")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "fields": fields_to_dicts(self.fields),
            "createdBy": self.created_by,
            "isPremium": self.is_premium,
            "price": self.price,
            "previewImageUrl": self.preview_image_url,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class Site:
    """A third-party domain that forms may be embedded on."""
    id: str
    domain: str
    is_approved: bool = False
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "domain": self.domain,
            "is_approved": self.is_approved,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Site":
        return cls(
            id=record["id"],
            domain=record["domain"],
            is_approved=bool(record.get("is_approved")),
            created_by=record.get("created_by"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(record.get("updated_at")) or utcnow(),
        )


@dataclass
class EmbedGrant:
    """Links one form to one site through an opaque embedding key."""
    id: str
    form_id: str
    site_id: str
    embedding_key: str
    created_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "site_id": self.site_id,
            "embedding_key": self.embedding_key,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EmbedGrant":
        return cls(
            id=record["id"],
            form_id=record["form_id"],
            site_id=record["site_id"],
            embedding_key=record["embedding_key"],
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "formId": self.form_id,
            "siteId": self.site_id,
            "embeddingKey": self.embedding_key,
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class SubmissionMetadata:
    """Request context captured with a submission.

    Attributes:
        ip_address: First X-Forwarded-For entry, or "unknown"
        user_agent: User-Agent header, if any
        referer: Full Referer header, if any
        timestamp: Time the submission was accepted
        embed_key: Embed key the submission came through, if any
    """
    ip_address: str = "unknown"
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    embed_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userAgent": self.user_agent,
            "ipAddress": self.ip_address,
            "referer": self.referer,
            "timestamp": _iso(self.timestamp),
            "embedKey": self.embed_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionMetadata":
        return cls(
            ip_address=data.get("ipAddress") or "unknown",
            user_agent=data.get("userAgent"),
            referer=data.get("referer"),
            timestamp=parse_timestamp(data.get("timestamp")) or utcnow(),
            embed_key=data.get("embedKey"),
        )


@dataclass(frozen=True)
class Submission:
    """One accepted visitor response. Never mutated after creation."""
    id: str
    form_id: str
    data: Dict[str, Any]
    metadata: SubmissionMetadata = field(default_factory=SubmissionMetadata)
    submitted_at: datetime = field(default_factory=utcnow)

    @property
    def submitter_ip(self) -> str:
        return self.metadata.ip_address

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "form_id": self.form_id,
            "data": dict(self.data),
            "submitter_ip": self.submitter_ip,
            "metadata": self.metadata.to_dict(),
            "submitted_at": _iso(self.submitted_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Submission":
        return cls(
            id=record["id"],
            form_id=record["form_id"],
            data=dict(record.get("data") or {}),
            metadata=SubmissionMetadata.from_dict(record.get("metadata") or {}),
            submitted_at=parse_timestamp(record.get("submitted_at")) or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "formId": self.form_id,
            "submitterIp": self.submitter_ip,
            "data": dict(self.data),
            "metadata": self.metadata.to_dict(),
            "submittedAt": _iso(self.submitted_at),
        }


__all__ = [
    "utcnow",
    "parse_timestamp",
    "Form",
    "FormTemplate",
    "Site",
    "EmbedGrant",
    "SubmissionMetadata",
    "Submission",
]
