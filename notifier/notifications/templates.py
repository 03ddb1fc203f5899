"""Template rendering for notification emails using Jinja2.

Each notification kind has three templates in the email_templates package
directory: ``<kind>_subject.j2``, ``<kind>_body.html.j2`` and
``<kind>_body.txt.j2``.
"""

from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from ..logging import get_logger
from .models import NotificationTemplateError

logger = get_logger(__name__, component="notification")

JOB_ALERT = "job_alert"
RELATED_JOBS = "related_jobs"


class TemplateRenderer:
    """Renders subject, HTML body and plain-text body for a notification kind.

    Only the HTML templates are autoescaped. Undefined template variables
    raise instead of rendering as empty strings.
    """

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("notifier.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, kind: str, context: Dict) -> Dict[str, str]:
        """Render all templates of ``kind`` with ``context``.

        Returns:
            Dictionary with ``subject`` (single line), ``html_body`` and ``text_body``

        Raises:
            NotificationTemplateError: If a template is missing or rendering fails
        """
        try:
            subject = self.env.get_template(f"{kind}_subject.j2").render(context)
            html_body = self.env.get_template(f"{kind}_body.html.j2").render(context)
            text_body = self.env.get_template(f"{kind}_body.txt.j2").render(context)
        except TemplateError as e:
            logger.error(
                f"Template rendering failed for {kind}: {e}",
                exc_info=True,
                extra={"event": "template.render_failed", "template_kind": kind},
            )
            raise NotificationTemplateError(f"Template rendering failed: {e}") from e

        return {
            "subject": " ".join(subject.split()),
            "html_body": html_body,
            "text_body": text_body,
        }
