"""Form templates and template instantiation.

A template is a detached, reusable field schema. Instantiation copies field
schemas in either direction:

- ``instantiate_from_template``: template -> new draft form
- ``instantiate_from_form``: form -> new free template

Both take a deep copy. The new record keeps no reference to its source, so
later edits to one never show up in the other. A form records the
``template_id`` it came from for provenance only.
"""

from typing import Any, Callable, Dict, List, Optional

from formcraft.cache import QueryCache
from formcraft.errors import NotFoundError, SchemaError
from formcraft.events import EventEmitter, FormEvent
from formcraft.fields import FieldInput, copy_fields, parse_fields
from formcraft.forms import FormRepository
from formcraft.logging import get_logger
from formcraft.models import Form, FormTemplate, utcnow
from formcraft.store import RecordStore, Tables, new_id
from formcraft.types import EventType

logger = get_logger(__name__)

TEMPLATES_TAG = "templates"


class TemplateService:
    """Template CRUD plus instantiation.

    Args:
        store: Record store
        forms: Form repository used to create and read forms
        cache: Query cache for template reads
        emitter: Event emitter; defaults to the form repository's
        clock: Time source
    """

    def __init__(
        self,
        store: RecordStore,
        forms: FormRepository,
        cache: Optional[QueryCache] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.forms = forms
        self.cache = cache if cache is not None else QueryCache(ttl_seconds=0)
        self.emitter = emitter if emitter is not None else forms.emitter
        self.clock = clock

    def get_template(self, template_id: str) -> Optional[FormTemplate]:
        """Fetch a template, or None if it does not exist."""
        record = self.cache.get_or_load(
            ("template", template_id),
            lambda: self.store.get(Tables.FORM_TEMPLATES, template_id),
            tags=[TEMPLATES_TAG],
        )
        return FormTemplate.from_record(record) if record is not None else None

    def require_template(self, template_id: str) -> FormTemplate:
        """Fetch a template.

        Raises:
            NotFoundError: If the template does not exist
        """
        template = self.get_template(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    def list_templates(self, user_id: Optional[str] = None) -> List[FormTemplate]:
        """Templates newest first, optionally only those created by user_id."""
        filters = {"created_by": user_id} if user_id else None
        records = self.cache.get_or_load(
            ("template-list", user_id),
            lambda: self.store.find(Tables.FORM_TEMPLATES, filters, order_by="created_at", descending=True),
            tags=[TEMPLATES_TAG],
        )
        return [FormTemplate.from_record(r) for r in records]

    def list_premium_templates(self) -> List[FormTemplate]:
        """Premium templates, newest first."""
        records = self.cache.get_or_load(
            ("template-premium",),
            lambda: self.store.find(
                Tables.FORM_TEMPLATES, {"is_premium": True}, order_by="created_at", descending=True
            ),
            tags=[TEMPLATES_TAG],
        )
        return [FormTemplate.from_record(r) for r in records]

    def list_purchased_templates(self, user_id: str) -> List[FormTemplate]:
        """Templates user_id has bought, newest first.

        Purchases are written by the credit ledger, so this read is not cached.
        Purchases of since-deleted templates are skipped.
        """
        purchases = self.store.find(Tables.PURCHASED_TEMPLATES, {"user_id": user_id})
        template_ids = {p["template_id"] for p in purchases}
        if not template_ids:
            return []
        records = [
            r for r in self.store.find(Tables.FORM_TEMPLATES, order_by="created_at", descending=True)
            if r["id"] in template_ids
        ]
        return [FormTemplate.from_record(r) for r in records]

    def create_template(
        self,
        owner_id: Optional[str],
        name: str,
        fields: List[FieldInput],
        description: str = "",
        is_premium: bool = False,
        price: float = 0,
        preview_image_url: Optional[str] = None,
    ) -> FormTemplate:
        """Save a new template.

        Raises:
            SchemaError: If the name is empty, a field is invalid, or a
                premium template has no positive price
        """
        if not name or not name.strip():
            raise SchemaError("Template name must not be empty")
        if is_premium and not (price and price > 0):
            raise SchemaError("Premium templates require a positive price")
        now = self.clock()
        template = FormTemplate(
            id=new_id(),
            name=name,
            description=description or "",
            fields=parse_fields(fields or []),
            created_by=owner_id,
            is_premium=is_premium,
            price=price if is_premium else 0,
            preview_image_url=preview_image_url,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(Tables.FORM_TEMPLATES, template.to_record())
        self.cache.invalidate_tag(TEMPLATES_TAG)
        return template

    def update_template(
        self,
        template_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        fields: Optional[List[FieldInput]] = None,
    ) -> FormTemplate:
        """Apply the given changes; None leaves a value unchanged.

        Args:
            template_id: Template to edit
            name: New name
            description: New description
            fields: Replacement field array, validated like a new one

        Returns:
            The updated template

        Raises:
            NotFoundError: If the template does not exist
            SchemaError: If a field is invalid
        """
        changes: Dict[str, Any] = {"updated_at": self.clock().isoformat()}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if fields is not None:
            changes["fields"] = [f.to_dict() for f in parse_fields(fields)]
        record = self.store.update(Tables.FORM_TEMPLATES, template_id, changes)
        if record is None:
            raise NotFoundError("template", template_id)
        self.cache.invalidate_tag(TEMPLATES_TAG)
        return FormTemplate.from_record(record)

    def delete_template(self, template_id: str) -> bool:
        deleted = self.store.delete(Tables.FORM_TEMPLATES, template_id)
        self.cache.invalidate_tag(TEMPLATES_TAG)
        return deleted

    def instantiate_from_template(self, template_id: str, owner_id: str) -> Form:
        """Create a draft form owned by owner_id from a copy of the template's fields.

        Raises:
            NotFoundError: If the template does not exist
        """
        template = self.require_template(template_id)
        form = self.forms.create_form(
            owner_id,
            name=template.name,
            description=template.description,
            fields=copy_fields(template.fields),
            template_id=template.id,
        )
        self.emitter.emit(FormEvent.create(
            EventType.TEMPLATE_INSTANTIATED,
            form_id=form.id,
            actor_id=owner_id,
            payload={"templateId": template.id},
        ))
        return form

    def instantiate_from_form(
        self,
        form_id: str,
        owner_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> FormTemplate:
        """Save a copy of a form's fields as a new free template.

        The description falls back to the form's own description.

        Raises:
            NotFoundError: If the form does not exist
        """
        form = self.forms.require_form(form_id)
        template = self.create_template(
            owner_id,
            name=name,
            fields=copy_fields(form.fields),
            description=description or form.description or "",
            is_premium=False,
            price=0,
        )
        self.emitter.emit(FormEvent.create(
            EventType.TEMPLATE_CREATED,
            form_id=form.id,
            actor_id=owner_id,
            payload={"templateId": template.id},
        ))
        logger.info("template created from form", form_id=form_id, template_id=template.id)
        return template


__all__ = ["TemplateService", "TEMPLATES_TAG"]
