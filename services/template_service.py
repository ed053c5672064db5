"""
Notification message templates.

Purpose:
- Build the fixed set of substitution fields for a reminder
- Render user templates in a sandboxed Jinja2 environment
- Validate templates before they are stored (length, syntax, field whitelist)

Templates use plain Jinja2 syntax, e.g.
    {{ subscription_name }} renews on {{ billing_date }}: {{ amount }} {{ currency }}
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

import jinja2
from jinja2 import meta
from jinja2.sandbox import SandboxedEnvironment

from core.exceptions import TemplateRenderError, ValidationError
from models.subscription import Subscription

logger = logging.getLogger(__name__)

MAX_TEMPLATE_LENGTH = 2000
MAX_RENDERED_LENGTH = 4000
TEMPLATE_FORMATS = ("plaintext", "markdown", "html")

TEMPLATE_FIELDS = frozenset({
    "subscription_name",
    "billing_date",
    "amount",
    "currency",
    "days_until",
    "category",
    "payment_method",
    "url",
    "remark",
    "user_email",
})

DEFAULT_TEMPLATE = (
    "{{ subscription_name }} "
    "{% if days_until == 0 %}is due today{% else %}is due in {{ days_until }} day(s){% endif %} "
    "({{ billing_date }}): {{ amount }} {{ currency }}"
)


def build_template_data(
    sub: Subscription,
    billing_date: date,
    days_until: int,
    user_email: str = "",
    payment_method: str = "",
) -> Dict[str, Any]:
    return {
        "subscription_name": sub.name,
        "billing_date": billing_date.isoformat(),
        "amount": sub.amount,
        "currency": sub.currency,
        "days_until": days_until,
        "category": sub.category,
        "payment_method": payment_method,
        "url": sub.url,
        "remark": sub.notes,
        "user_email": user_email,
    }


class TemplateRenderer:
    """Default renderer. Anything with render(template_text, fields) -> str can replace it."""

    def __init__(self):
        self.env = SandboxedEnvironment(undefined=jinja2.StrictUndefined, autoescape=False)

    def render(self, template_text: str, fields: Dict[str, Any]) -> str:
        try:
            output = self.env.from_string(template_text).render(**fields)
        except jinja2.TemplateError as err:
            raise TemplateRenderError(f"failed to render template: {err}") from err
        except Exception as err:
            # runtime errors inside expressions, e.g. {{ amount / 0 }}
            raise TemplateRenderError(f"failed to render template: {err.__class__.__name__}: {err}") from err
        if len(output) > MAX_RENDERED_LENGTH:
            raise TemplateRenderError(
                f"rendered template exceeds maximum length of {MAX_RENDERED_LENGTH} characters"
            )
        return output

    def validate_template(self, template_text: str) -> None:
        if not template_text:
            raise ValidationError("template cannot be empty")
        if len(template_text) > MAX_TEMPLATE_LENGTH:
            raise ValidationError(
                f"template length {len(template_text)} exceeds maximum {MAX_TEMPLATE_LENGTH}"
            )
        try:
            parsed = self.env.parse(template_text)
        except jinja2.TemplateSyntaxError as err:
            raise ValidationError(f"template parse error: {err}") from err
        unknown = meta.find_undeclared_variables(parsed) - TEMPLATE_FIELDS
        if unknown:
            raise ValidationError(f"unknown template fields: {', '.join(sorted(unknown))}")

    @staticmethod
    def validate_format(fmt: str) -> None:
        if fmt not in TEMPLATE_FORMATS:
            raise ValidationError(f"invalid format {fmt!r}: must be 'plaintext', 'markdown', or 'html'")


async def resolve_template_text(store, user_id: int, channel_type: str) -> str:
    """Channel-specific template, then the user's default, then the built-in one."""
    template = await store.find_template(user_id, channel_type)
    if template is None:
        return DEFAULT_TEMPLATE
    return template.template


async def render_notification_message(
    store,
    renderer,
    user_id: int,
    channel_type: str,
    fields: Dict[str, Any],
) -> str:
    try:
        template_text = await resolve_template_text(store, user_id, channel_type)
    except Exception as err:
        raise TemplateRenderError(f"failed to load template: {err}") from err
    return renderer.render(template_text, fields)
