"""HTTP surface for formcraft.

Routes:

- ``POST /api/forms/create``: create a form, or instantiate one from a template
- ``POST /api/forms/submit``: public submission endpoint
- ``POST /api/templates/create``: save a form as a template
- ``GET /api/templates``: list templates, optionally by creator
- ``GET /embed/{key}``: public embed page data

Authentication happens upstream. The gateway forwards the signed-in user's id
in the ``X-Authenticated-User`` header; ``get_current_user_id`` reads it and
can be overridden through ``app.dependency_overrides``.

Every error body is ``{"error": message}``.
"""

from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from formcraft.embed import referer_domain_from_url
from formcraft.errors import NotFoundError, SchemaError
from formcraft.logging import configure_logging, get_logger
from formcraft.runtime import FormRuntime, SubmissionOutcome
from formcraft.settings import Settings, get_settings

logger = get_logger(__name__)

USER_HEADER = "X-Authenticated-User"

NOT_ACCEPTING_MESSAGE = "Form is not accepting submissions"


class FormPayload(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    fields: List[Dict[str, Any]] = Field(default_factory=list)


class CreateFormRequest(BaseModel):
    form: Optional[FormPayload] = None
    templateId: Optional[str] = None


class SubmitFormRequest(BaseModel):
    formId: str
    embedKey: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class CreateTemplateRequest(BaseModel):
    formId: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _unauthorized() -> JSONResponse:
    return _error("Unauthorized", 401)


def get_runtime(request: Request) -> FormRuntime:
    return request.app.state.runtime


def get_current_user_id(
    authenticated_user: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> Optional[str]:
    """Id of the signed-in user, or None for anonymous requests."""
    if authenticated_user and authenticated_user.strip():
        return authenticated_user.strip()
    return None


def _referer_domain(value: Optional[str]) -> Optional[str]:
    """Domain of a referer given either as a full URL or a bare domain."""
    if not value:
        return None
    return referer_domain_from_url(value) or value


def create_app(runtime: Optional[FormRuntime] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application around a runtime.

    Explicit settings replace any logging configured earlier from the
    environment.
    """
    explicit = settings is not None
    settings = settings or (runtime.settings if runtime is not None else get_settings())
    configure_logging(settings=settings, force=explicit)

    app = FastAPI(title=settings.project_name)
    app.state.runtime = runtime if runtime is not None else FormRuntime(settings=settings)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("rejected malformed request", path=request.url.path, errors=len(exc.errors()))
        return _error("Invalid request body", 400)

    @app.post("/api/forms/create")
    def create_form(
        body: CreateFormRequest,
        user_id: Optional[str] = Depends(get_current_user_id),
        runtime: FormRuntime = Depends(get_runtime),
    ):
        if user_id is None:
            return _unauthorized()
        try:
            if body.templateId:
                form = runtime.templates.instantiate_from_template(body.templateId, user_id)
            else:
                payload = body.form or FormPayload()
                form = runtime.forms.create_form(
                    user_id,
                    name=payload.name or "",
                    fields=payload.fields,
                    description=payload.description,
                )
        except SchemaError as exc:
            return _error(str(exc), 400)
        except NotFoundError as exc:
            return _error(str(exc), 404)
        except Exception:
            logger.exception("error creating form", user_id=user_id)
            return _error("Failed to create form", 500)
        return {"success": True, "form": form.to_dict()}

    @app.post("/api/forms/submit")
    def submit_form(
        body: SubmitFormRequest,
        request: Request,
        runtime: FormRuntime = Depends(get_runtime),
    ):
        headers = request.headers
        try:
            result = runtime.accept_submission(
                body.formId,
                body.data,
                embed_key=body.embedKey,
                referer=headers.get("referer"),
                user_agent=headers.get("user-agent"),
                forwarded_for=headers.get("x-forwarded-for"),
            )
        except Exception:
            logger.exception("error submitting form", form_id=body.formId)
            return _error("Failed to submit form", 500)

        if result.outcome in (SubmissionOutcome.EMBED_REFUSED, SubmissionOutcome.FORM_MISMATCH):
            return _error(result.reason or "Unauthorized", 403)
        if result.outcome == SubmissionOutcome.FORM_NOT_FOUND:
            return _error("Form not found", 404)
        if result.outcome == SubmissionOutcome.NOT_ACCEPTING:
            return _error(NOT_ACCEPTING_MESSAGE, 403)
        if result.outcome == SubmissionOutcome.MISSING_FIELDS:
            return _error("Missing required fields", 400, fields=result.missing_fields)
        if result.outcome == SubmissionOutcome.INVALID:
            return _error("Invalid submission", 400, errors=result.errors)
        return {"success": True, "submissionId": result.submission_id}

    @app.post("/api/templates/create")
    def create_template(
        body: CreateTemplateRequest,
        user_id: Optional[str] = Depends(get_current_user_id),
        runtime: FormRuntime = Depends(get_runtime),
    ):
        if not body.formId or not body.name:
            return _error("Form ID and name are required", 400)
        if user_id is None:
            return _unauthorized()
        try:
            template = runtime.templates.instantiate_from_form(
                body.formId, user_id, body.name, description=body.description
            )
        except NotFoundError as exc:
            return _error(str(exc), 404)
        except SchemaError as exc:
            return _error(str(exc), 400)
        except Exception:
            logger.exception("error creating template", form_id=body.formId)
            return _error("Failed to create template", 500)
        return {"success": True, "template": template.to_dict()}

    @app.get("/api/templates")
    def list_templates(
        userId: Optional[str] = None,
        user_id: Optional[str] = Depends(get_current_user_id),
        runtime: FormRuntime = Depends(get_runtime),
    ):
        if user_id is None:
            return _unauthorized()
        try:
            templates = runtime.templates.list_templates(userId or None)
        except Exception:
            logger.exception("error fetching templates", user_id=userId)
            return _error("Failed to fetch templates", 500)
        return {"success": True, "templates": [t.to_dict() for t in templates]}

    @app.get("/embed/{key}")
    def load_embed(
        key: str,
        request: Request,
        background_tasks: BackgroundTasks,
        referer: Optional[str] = None,
        runtime: FormRuntime = Depends(get_runtime),
    ):
        referer_value = request.headers.get("referer") or referer
        try:
            result = runtime.load_embed(key, _referer_domain(referer_value))
        except Exception:
            logger.exception("error loading embed", embed_key=key)
            return _error("Failed to load form", 500)

        if not result.authorized:
            return _error(result.reason or "Unauthorized", 403)
        if result.form is None:
            return _error("Form not found", 404)

        background_tasks.add_task(
            runtime.authorizer.record_load,
            key,
            referer_value,
            request.headers.get("user-agent"),
            result.form.id,
        )
        return {"success": True, "form": result.form.to_dict()}

    return app


__all__ = ["create_app", "get_current_user_id", "get_runtime", "USER_HEADER"]
