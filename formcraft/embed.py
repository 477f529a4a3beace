"""Embed authorization for formcraft.

Every public, unauthenticated access to a form goes through
``EmbedAuthorizer.authorize``: the embed page load and, independently, every
submission POST that carries an embed key. A load is authorized only when

1. a grant exists for the embedding key,
2. the granted form is published,
3. the granted site is approved, and
4. when a referer domain is presented, it equals the site's domain or is a
   subdomain of it (both sides normalized first).

Refusals are returned as AuthorizationResult values carrying a
user-facing reason; ``authorize`` never raises.

``record_load`` appends to the embed audit log. It is best effort: failures
are logged and swallowed, and callers dispatch it after the authorization
decision so it can never change that decision.
"""

import html
import re
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from formcraft.errors import NotFoundError
from formcraft.events import EventEmitter, FormEvent
from formcraft.logging import get_logger
from formcraft.models import EmbedGrant, Site, utcnow
from formcraft.store import RecordStore, Tables, new_id
from formcraft.types import EventType, FormStatus

logger = get_logger(__name__)

INVALID_KEY = "Invalid embedding key"
FORM_NOT_PUBLISHED = "Form is not published"
SITE_NOT_APPROVED = "Site is not approved for embedding"
UNAUTHORIZED_DOMAIN = "Unauthorized domain"
MISSING_REFERER = "Referer is required for embedded forms"
VERIFICATION_FAILED = "Error verifying embedding key"

_SCHEME_RE = re.compile(r"^https?://")
_WWW_RE = re.compile(r"^www\.")


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of an embed authorization check.

    Attributes:
        authorized: Whether the load or submission may proceed
        form_id: The granted form, set only when authorized
        reason: User-facing refusal reason, set only when refused
    """
    authorized: bool
    form_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def allow(cls, form_id: str) -> "AuthorizationResult":
        return cls(authorized=True, form_id=form_id)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationResult":
        return cls(authorized=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        if self.authorized:
            return {"valid": True, "formId": self.form_id}
        return {"valid": False, "reason": self.reason}


def normalize_domain(value: str) -> str:
    """Normalize a domain or URL for comparison.

    Lowercases, then strips a leading http(s)://, a leading ``www.`` and a
    trailing slash.

    Examples:
        >>> normalize_domain("https://WWW.Example.com/")
        'example.com'
        >>> normalize_domain("app.example.com")
        'app.example.com'
    """
    normalized = value.strip().lower()
    normalized = _SCHEME_RE.sub("", normalized)
    normalized = _WWW_RE.sub("", normalized)
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def domain_matches(referer_domain: str, site_domain: str) -> bool:
    """True when referer_domain is site_domain or one of its subdomains.

    Examples:
        >>> domain_matches("app.example.com", "example.com")
        True
        >>> domain_matches("example.com.evil.com", "example.com")
        False
        >>> domain_matches("notexample.com", "example.com")
        False
    """
    referer = normalize_domain(referer_domain)
    allowed = normalize_domain(site_domain)
    if not allowed:
        return False
    return referer == allowed or referer.endswith("." + allowed)


def referer_domain_from_url(referer: Optional[str]) -> Optional[str]:
    """Hostname part of a Referer header value, or None if it is not a URL.

    Examples:
        >>> referer_domain_from_url("https://app.example.com/contact?x=1")
        'app.example.com'
        >>> referer_domain_from_url("not a url") is None
        True
    """
    if not referer:
        return None
    try:
        hostname = urlsplit(referer.strip()).hostname
    except ValueError:
        return None
    return hostname or None


def generate_embed_code(embed_key: str, base_url: str, height: str = "600px", width: str = "100%") -> str:
    """Render the iframe snippet a site owner pastes into their page."""
    embed_url = f"{base_url.rstrip('/')}/embed/{embed_key}"
    return (
        f'<iframe src="{html.escape(embed_url)}" width="{html.escape(width)}" '
        f'height="{html.escape(height)}" frameborder="0" allow="camera; microphone" '
        f'style="border: none;"></iframe>'
    )


class EmbedAuthorizer:
    """The access-control gate for embedded forms.

    Args:
        store: Record store holding grants, sites, forms and embed logs
        allow_missing_referer: Authorize requests that present no referer
            domain. When False such requests are refused.
        emitter: Optional event emitter notified of recorded loads
    """

    def __init__(
        self,
        store: RecordStore,
        allow_missing_referer: bool = True,
        emitter: Optional[EventEmitter] = None,
    ):
        self.store = store
        self.allow_missing_referer = allow_missing_referer
        self.emitter = emitter

    def authorize(self, embed_key: str, referer_domain: Optional[str] = None) -> AuthorizationResult:
        """Decide whether embed_key may show its form to referer_domain.

        Args:
            embed_key: Key presented by the visitor
            referer_domain: Hostname of the embedding page, if known

        Returns:
            AuthorizationResult; never raises
        """
        try:
            return self._authorize(embed_key, referer_domain)
        except Exception:
            logger.exception("embed authorization failed", embed_key=embed_key)
            return AuthorizationResult.deny(VERIFICATION_FAILED)

    def _authorize(self, embed_key: str, referer_domain: Optional[str]) -> AuthorizationResult:
        grant = self.store.find_embed_grant(embed_key) if embed_key else None
        if grant is None:
            return AuthorizationResult.deny(INVALID_KEY)

        if grant["form"].get("status") != FormStatus.PUBLISHED.value:
            return AuthorizationResult.deny(FORM_NOT_PUBLISHED)

        if not grant["site"].get("is_approved"):
            return AuthorizationResult.deny(SITE_NOT_APPROVED)

        if referer_domain:
            if not domain_matches(referer_domain, grant["site"]["domain"]):
                logger.info(
                    "embed refused for domain",
                    embed_key=embed_key,
                    referer_domain=referer_domain,
                    site_domain=grant["site"]["domain"],
                )
                return AuthorizationResult.deny(UNAUTHORIZED_DOMAIN)
        elif not self.allow_missing_referer:
            return AuthorizationResult.deny(MISSING_REFERER)

        return AuthorizationResult.allow(grant["form"]["id"])

    def record_load(
        self,
        embed_key: str,
        referer: Optional[str] = None,
        user_agent: Optional[str] = None,
        form_id: Optional[str] = None,
    ) -> None:
        """Append an embed load to the audit log. Never raises."""
        try:
            self.store.insert(Tables.EMBED_LOGS, {
                "embedding_key": embed_key,
                "referer": referer or None,
                "user_agent": user_agent or None,
                "event_type": "load",
                "created_at": utcnow().isoformat(),
            })
            if self.emitter is not None and form_id is not None:
                self.emitter.emit(FormEvent.create(
                    EventType.EMBED_LOADED,
                    form_id=form_id,
                    payload={"embedKey": embed_key, "referer": referer},
                ))
        except Exception:
            logger.exception("failed to record embed load", embed_key=embed_key)


class EmbedGrantService:
    """Manages embedding sites and the grants that bind forms to them.

    Args:
        store: Record store
        key_bytes: Entropy of generated embedding keys
        clock: Time source
    """

    def __init__(self, store: RecordStore, key_bytes: int = 24, clock: Callable = utcnow):
        self.store = store
        self.key_bytes = key_bytes
        self.clock = clock

    def register_site(self, domain: str, owner_id: Optional[str] = None, approved: bool = False) -> Site:
        """Register a site. The stored domain is normalized."""
        normalized = normalize_domain(domain)
        if not normalized:
            raise ValueError("Site domain must not be empty")
        now = self.clock()
        site = Site(
            id=new_id(),
            domain=normalized,
            is_approved=approved,
            created_by=owner_id,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(Tables.EMBEDDING_SITES, site.to_record())
        return site

    def set_site_approval(self, site_id: str, approved: bool) -> Site:
        """Approve or withdraw approval of a site.

        Args:
            site_id: Site to change
            approved: New approval flag

        Returns:
            The updated site

        Raises:
            NotFoundError: If the site does not exist
        """
        row = self.store.update(Tables.EMBEDDING_SITES, site_id, {
            "is_approved": approved,
            "updated_at": self.clock().isoformat(),
        })
        if row is None:
            raise NotFoundError("site", site_id)
        return Site.from_record(row)

    def create_grant(self, form_id: str, site_id: str) -> EmbedGrant:
        """Bind a form to a site under a freshly generated embedding key."""
        if self.store.get(Tables.FORMS, form_id) is None:
            raise NotFoundError("form", form_id)
        if self.store.get(Tables.EMBEDDING_SITES, site_id) is None:
            raise NotFoundError("site", site_id)
        grant = EmbedGrant(
            id=new_id(),
            form_id=form_id,
            site_id=site_id,
            embedding_key=secrets.token_urlsafe(self.key_bytes),
            created_at=self.clock(),
        )
        self.store.insert(Tables.FORM_EMBEDDINGS, grant.to_record())
        return grant

    def revoke_grant(self, grant_id: str) -> bool:
        """Delete a grant. Its key stops authorizing immediately."""
        return self.store.delete(Tables.FORM_EMBEDDINGS, grant_id)

    def list_grants(self, form_id: str) -> List[EmbedGrant]:
        """Grants for a form, oldest first."""
        rows = self.store.find(Tables.FORM_EMBEDDINGS, {"form_id": form_id}, order_by="created_at")
        return [EmbedGrant.from_record(r) for r in rows]


__all__ = [
    "AuthorizationResult",
    "EmbedAuthorizer",
    "EmbedGrantService",
    "normalize_domain",
    "domain_matches",
    "referer_domain_from_url",
    "generate_embed_code",
    "INVALID_KEY",
    "FORM_NOT_PUBLISHED",
    "SITE_NOT_APPROVED",
    "UNAUTHORIZED_DOMAIN",
    "MISSING_REFERER",
    "VERIFICATION_FAILED",
]
