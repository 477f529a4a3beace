"""Integration tests for complete formcraft workflows.

Tests cover:
- Build, publish, embed and submit a form end to end
- Archive and re-publish around live traffic
- Template round trips across users
- Events emitted along the way
"""

import pytest

from formcraft.runtime import FormRuntime, SubmissionOutcome, client_ip
from formcraft.store import InMemoryStore, Tables
from formcraft.types import EventType, FormStatus


SIGNUP_FIELDS = [
    {"id": "name", "type": "text", "label": "Name", "validation": {"required": True}},
    {
        "id": "email",
        "type": "email",
        "label": "Email",
        "validation": {"required": True, "pattern": r"^[^@\s]+@[^@\s]+\.[^@\s]+$"},
    },
    {"id": "plan", "type": "radio", "label": "Plan", "options": ["free", "pro"]},
]


class TestEmbedAndSubmitFlow:
    """Test the public flow through the HTTP surface."""

    def test_full_lifecycle(self, client, runtime, auth):
        """Create, publish, embed, submit, archive, re-publish."""
        created = client.post(
            "/api/forms/create",
            json={"form": {"name": "Signup", "fields": SIGNUP_FIELDS}},
            headers=auth,
        ).json()["form"]
        form_id = created["id"]

        site = runtime.grants.register_site("https://www.example.com", owner_id="user_1", approved=True)
        key = runtime.grants.create_grant(form_id, site.id).embedding_key
        referer = {"Referer": "https://app.example.com/signup"}
        payload = {"formId": form_id, "embedKey": key, "data": {"name": "Ada", "email": "ada@example.com"}}

        # drafts are not embeddable
        assert client.get(f"/embed/{key}", headers=referer).status_code == 403

        runtime.forms.publish(form_id, actor_id="user_1")
        embed = client.get(f"/embed/{key}", headers=referer)
        assert embed.status_code == 200
        assert embed.json()["form"]["status"] == "published"

        first = client.post("/api/forms/submit", json=payload, headers=referer)
        assert first.status_code == 200

        runtime.forms.archive(form_id, actor_id="user_1")
        refused = client.post("/api/forms/submit", json=payload, headers=referer)
        assert refused.status_code == 403
        assert refused.json() == {"error": "Form is not published"}

        without_key = {"formId": form_id, "data": payload["data"]}
        refused = client.post("/api/forms/submit", json=without_key)
        assert refused.status_code == 403
        assert refused.json() == {"error": "Form is not accepting submissions"}

        republished = runtime.forms.publish(form_id)
        assert republished.published_at > runtime.forms.get_form(form_id).created_at
        assert client.post("/api/forms/submit", json=payload, headers=referer).status_code == 200

        assert len(runtime.forms.list_submissions(form_id)) == 2
        assert len(runtime.store.find(Tables.EMBED_LOGS)) == 1

    def test_name_email_scenario(self, client, runtime):
        """A bad email is reported and the valid name is not."""
        form = runtime.forms.create_form("user_1", "Signup", SIGNUP_FIELDS)
        runtime.forms.publish(form.id)
        response = client.post("/api/forms/submit", json={"formId": form.id, "data": {"name": "A", "email": "bad"}})
        assert response.status_code == 400
        errors = response.json()["errors"]
        assert errors["email"] == "Invalid format"
        assert "name" not in errors


class TestRuntimePipeline:
    """Test FormRuntime without HTTP."""

    @pytest.fixture
    def live_form(self, runtime):
        form = runtime.forms.create_form("user_1", "Signup", SIGNUP_FIELDS)
        runtime.forms.publish(form.id)
        return form

    def test_outcomes(self, runtime, live_form):
        """Each pipeline stage has its own outcome."""
        assert runtime.accept_submission("nope", {}).outcome == SubmissionOutcome.FORM_NOT_FOUND
        missing = runtime.accept_submission(live_form.id, {"name": "A"})
        assert missing.outcome == SubmissionOutcome.MISSING_FIELDS
        assert missing.missing_fields == ["email"]
        invalid = runtime.accept_submission(live_form.id, {"name": "A", "email": "x"})
        assert invalid.outcome == SubmissionOutcome.INVALID
        accepted = runtime.accept_submission(live_form.id, {"name": "A", "email": "a@b.co", "plan": "pro"})
        assert accepted.accepted is True
        assert accepted.submission_id

    def test_refused_embed_stores_nothing(self, runtime, live_form):
        """A refused embed key never reaches storage."""
        result = runtime.accept_submission(live_form.id, {"name": "A", "email": "a@b.co"}, embed_key="nope")
        assert result.outcome == SubmissionOutcome.EMBED_REFUSED
        assert result.reason == "Invalid embedding key"
        assert runtime.store.find(Tables.FORM_SUBMISSIONS) == []

    def test_events_along_the_way(self, runtime, live_form):
        """Submissions and transitions reach event listeners."""
        seen = []
        runtime.emitter.on_any(seen.append)
        runtime.accept_submission(live_form.id, {"name": "A", "email": "a@b.co"})
        runtime.forms.archive(live_form.id)
        assert [e.type for e in seen] == [EventType.SUBMISSION_RECEIVED, EventType.FORM_ARCHIVED]

    def test_strict_referer_setting(self, settings):
        """With missing referers disallowed, keyless-referer embeds are refused."""
        strict = settings.model_copy(update={"embed_allow_missing_referer": False})
        runtime = FormRuntime(store=InMemoryStore(), settings=strict)
        form = runtime.forms.create_form("user_1", "Signup", SIGNUP_FIELDS)
        runtime.forms.publish(form.id)
        site = runtime.grants.register_site("example.com", approved=True)
        key = runtime.grants.create_grant(form.id, site.id).embedding_key
        assert runtime.load_embed(key, None).authorized is False
        assert runtime.load_embed(key, "example.com").form.id == form.id

    def test_embed_code_uses_base_url(self, runtime):
        """Embed code points at the configured base URL."""
        code = runtime.embed_code("k1")
        assert f'{runtime.settings.embed_base_url.rstrip("/")}/embed/k1' in code

    def test_client_ip(self):
        """Only the first forwarded address is kept."""
        assert client_ip(" 198.51.100.2 , 10.0.0.1") == "198.51.100.2"
        assert client_ip("") == "unknown"


class TestTemplateFlow:
    """Test templates moving between users."""

    def test_save_and_reuse(self, runtime):
        """A template saved by one user becomes an independent form for another."""
        source = runtime.forms.create_form("alice", "Signup", SIGNUP_FIELDS, description="Original")
        template = runtime.templates.instantiate_from_form(source.id, "alice", "Signup template")
        copy = runtime.templates.instantiate_from_template(template.id, "bob")

        assert copy.created_by == "bob"
        assert copy.status == FormStatus.DRAFT
        assert copy.fields == source.fields

        runtime.forms.update_form(source.id, fields=SIGNUP_FIELDS[:1])
        assert len(runtime.forms.get_form(copy.id).fields) == 3
        assert len(runtime.templates.get_template(template.id).fields) == 3
