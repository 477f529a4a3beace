"""formcraft: form builder core with embed authorization and submission validation.

formcraft provides:
- A closed set of field kinds with per-kind validation rules
- Form lifecycle (draft, published, archived) with timestamped transitions
- Embed authorization for forms shown on third-party sites
- Server-side validation of visitor submissions
- Templates that copy field schemas between forms
- An HTTP surface built on FastAPI

Basic usage:
    >>> from formcraft.runtime import FormRuntime
    >>> runtime = FormRuntime()
    >>> form = runtime.forms.create_form("user_1", "Contact", [
    ...     {"id": "name", "type": "text", "label": "Name", "validation": {"required": True}},
    ... ])
    >>> print(form.status.value)
    draft
"""

__version__ = "0.1.0"
__author__ = "formcraft Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from formcraft.runtime import FormRuntime

__all__ = [
    "__version__",
    "VERSION",
    "FormRuntime",
]
