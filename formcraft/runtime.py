"""FormRuntime orchestrator for formcraft.

This module provides the FormRuntime class that wires the record store,
query cache, event emitter, repositories, embed authorizer and credit ledger
together, and implements the two public, unauthenticated flows:

- ``accept_submission``: the submission pipeline (embed authorization, form
  lookup, status gate, required pre-check, full validation, storage)
- ``load_embed``: the embed page load (authorization, form lookup)

Both return outcome values instead of raising, so the HTTP layer only maps
outcomes to status codes. Store failures still propagate.

Usage:
    >>> from formcraft.runtime import FormRuntime
    >>> runtime = FormRuntime()
    >>> form = runtime.forms.create_form("user_1", "Contact", [
    ...     {"id": "email", "type": "email", "label": "Email", "validation": {"required": True}},
    ... ])
    >>> runtime.accept_submission(form.id, {"email": "a@b.co"}).outcome.value
    'not_accepting'
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from formcraft.cache import QueryCache
from formcraft.credits import CreditLedger
from formcraft.embed import EmbedAuthorizer, EmbedGrantService, generate_embed_code, referer_domain_from_url
from formcraft.events import EventEmitter
from formcraft.forms import FormRepository
from formcraft.logging import get_logger
from formcraft.models import Form, SubmissionMetadata, utcnow
from formcraft.settings import Settings, get_settings
from formcraft.store import InMemoryStore, RecordStore
from formcraft.templates import TemplateService
from formcraft.validation import find_missing_required, validate

logger = get_logger(__name__)


class SubmissionOutcome(str, Enum):
    """How the submission pipeline ended."""
    ACCEPTED = "accepted"
    EMBED_REFUSED = "embed_refused"
    FORM_MISMATCH = "form_mismatch"
    FORM_NOT_FOUND = "form_not_found"
    NOT_ACCEPTING = "not_accepting"
    MISSING_FIELDS = "missing_fields"
    INVALID = "invalid"


@dataclass(frozen=True)
class SubmissionResult:
    """Result of ``FormRuntime.accept_submission``.

    Attributes:
        outcome: Where the pipeline stopped
        submission_id: Set when accepted
        reason: Embed refusal reason, when refused
        missing_fields: Required field ids that were empty
        errors: Field id -> message from full validation
    """
    outcome: SubmissionOutcome
    submission_id: Optional[str] = None
    reason: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.outcome == SubmissionOutcome.ACCEPTED


@dataclass(frozen=True)
class EmbedLoadResult:
    """Result of ``FormRuntime.load_embed``. ``form`` is None when refused or gone."""
    authorized: bool
    form: Optional[Form] = None
    reason: Optional[str] = None


def client_ip(forwarded_for: Optional[str]) -> str:
    """First address of an X-Forwarded-For header, or "unknown".

    Examples:
        >>> client_ip("203.0.113.7, 10.0.0.1")
        '203.0.113.7'
        >>> client_ip(None)
        'unknown'
    """
    if not forwarded_for:
        return "unknown"
    first = forwarded_for.split(",")[0].strip()
    return first or "unknown"


class FormRuntime:
    """Wires formcraft's services around one record store.

    Attributes:
        settings: Settings the runtime was built from
        store: Record store
        cache: Shared query cache
        emitter: Shared event emitter
        forms: Form repository
        templates: Template service
        grants: Site and embed grant service
        authorizer: Embed authorization gate
        credits: Credit ledger
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        settings: Optional[Settings] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Callable = utcnow,
    ):
        self.settings = settings or get_settings()
        self.store = store if store is not None else InMemoryStore()
        self.clock = clock
        self.cache = QueryCache(ttl_seconds=self.settings.cache_ttl_seconds)
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.forms = FormRepository(self.store, cache=self.cache, emitter=self.emitter, clock=clock)
        self.templates = TemplateService(self.store, self.forms, cache=self.cache, emitter=self.emitter, clock=clock)
        self.grants = EmbedGrantService(self.store, key_bytes=self.settings.embed_key_bytes, clock=clock)
        self.authorizer = EmbedAuthorizer(
            self.store,
            allow_missing_referer=self.settings.embed_allow_missing_referer,
            emitter=self.emitter,
        )
        self.credits = CreditLedger(self.store, clock=clock)

    def embed_code(self, embed_key: str, height: str = "600px", width: str = "100%") -> str:
        return generate_embed_code(embed_key, self.settings.embed_base_url, height=height, width=width)

    def accept_submission(
        self,
        form_id: str,
        data: Optional[Mapping[str, Any]],
        embed_key: Optional[str] = None,
        referer: Optional[str] = None,
        user_agent: Optional[str] = None,
        forwarded_for: Optional[str] = None,
    ) -> SubmissionResult:
        """Run a visitor submission through the pipeline.

        Steps stop at the first failure:

        1. if an embed key is given, it must authorize for the referer's
           domain and grant exactly form_id
        2. the form must exist (read uncached) and be published
        3. every required field must be truthy
        4. the payload must pass full validation

        Args:
            form_id: Target form
            data: Raw payload, field id -> value
            embed_key: Embed key the page was loaded with, if any
            referer: Full Referer header
            user_agent: User-Agent header
            forwarded_for: X-Forwarded-For header

        Returns:
            SubmissionResult describing where the pipeline stopped
        """
        data = data or {}

        if embed_key:
            auth = self.authorizer.authorize(embed_key, referer_domain_from_url(referer))
            if not auth.authorized:
                return SubmissionResult(SubmissionOutcome.EMBED_REFUSED, reason=auth.reason)
            if auth.form_id != form_id:
                logger.info("embed key used for another form", embed_key=embed_key, form_id=form_id)
                return SubmissionResult(SubmissionOutcome.FORM_MISMATCH, reason="Embed key does not match form")

        form = self.forms.get_form(form_id, use_cache=False)
        if form is None:
            return SubmissionResult(SubmissionOutcome.FORM_NOT_FOUND)
        if not form.accepts_submissions:
            return SubmissionResult(SubmissionOutcome.NOT_ACCEPTING)

        missing = find_missing_required(form.fields, data)
        if missing:
            return SubmissionResult(SubmissionOutcome.MISSING_FIELDS, missing_fields=missing)

        result = validate(form.fields, data)
        if not result.is_valid:
            return SubmissionResult(SubmissionOutcome.INVALID, errors=dict(result.errors))

        metadata = SubmissionMetadata(
            ip_address=client_ip(forwarded_for),
            user_agent=user_agent,
            referer=referer,
            timestamp=self.clock(),
            embed_key=embed_key or None,
        )
        submission = self.forms.store_submission(form.id, result.data, metadata)
        logger.info("submission accepted", form_id=form.id, submission_id=submission.id)
        return SubmissionResult(SubmissionOutcome.ACCEPTED, submission_id=submission.id)

    def load_embed(self, embed_key: str, referer_domain: Optional[str] = None) -> EmbedLoadResult:
        """Authorize an embed page load and fetch the form to render.

        Recording the load is left to the caller so it can run after the
        response.
        """
        auth = self.authorizer.authorize(embed_key, referer_domain)
        if not auth.authorized:
            return EmbedLoadResult(authorized=False, reason=auth.reason)
        form = self.forms.get_form(auth.form_id, use_cache=False)
        return EmbedLoadResult(authorized=True, form=form)


__all__ = [
    "FormRuntime",
    "SubmissionOutcome",
    "SubmissionResult",
    "EmbedLoadResult",
    "client_ip",
]
