# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from jinja2 import Environment, select_autoescape

from mxops.core.models import CloudActionModel, TemplateTypeEnum
from mxops.core.notifications.mandrill import MandrillSender
from mxops.dao import Dao

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from mxops.core.settings import Settings

logger = logging.getLogger(__name__)

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

# Subjects are plain text, HTML bodies escape their variables.
_TEXT_ENVIRONMENT = Environment(autoescape=False)
_HTML_ENVIRONMENT = Environment(autoescape=select_autoescape(default_for_string=True))


def render_template(
    template: str, variables: dict[str, str], html: bool = False
) -> str:
    """Render a Jinja2 template, unknown variables render as empty strings."""
    environment = _HTML_ENVIRONMENT if html else _TEXT_ENVIRONMENT
    return environment.from_string(template).render(**variables)


def format_duration(start: Optional[datetime], end: Optional[datetime]) -> str:
    if not start or not end:
        return "N/A"
    minutes = int((end - start).total_seconds() // 60)
    if minutes < 1:
        return "less than 1 minute"
    return f"{minutes} minutes"


def _format_datetime(value: Optional[datetime]) -> str:
    return value.strftime(DATETIME_FORMAT) if value else "N/A"


def build_variables(action: CloudActionModel, success: bool) -> dict[str, str]:
    action_type = action.action_type.value.capitalize()
    environment_name = action.environment_name
    if success:
        summary = f"{action_type} of {environment_name} completed successfully."
    else:
        summary = (
            f"{action_type} of {environment_name} failed after "
            f"{action.attempt_count} attempt(s): {action.error_message}"
        )
    return {
        "action_type": action_type,
        "environment_name": environment_name,
        "started_at": _format_datetime(action.started_at),
        "completed_at": _format_datetime(action.completed_at),
        "failed_at": "" if success else _format_datetime(action.completed_at),
        "duration": format_duration(action.started_at, action.completed_at),
        "attempt_count": str(action.attempt_count),
        "error_message": action.error_message or "",
        "summary": summary,
    }


class Notifier:
    """Email the owner's recipients when an action reaches a terminal state.

    Sending is best effort, errors are logged and never raised.
    """

    def __init__(self, engine: Engine, sender: Optional[MandrillSender] = None):
        self.engine = engine
        self.sender = sender

    @classmethod
    def from_settings(cls, engine: Engine, settings: Settings) -> Notifier:
        sender = None
        if settings.MANDRILL_API_KEY:
            sender = MandrillSender(
                api_key=settings.MANDRILL_API_KEY,
                url=settings.MANDRILL_URL,
                from_email=settings.MAIL_FROM_EMAIL,
                from_name=settings.MAIL_FROM_NAME,
                timeout=settings.HTTP_TIMEOUT,
            )
        return cls(engine, sender)

    def notify(self, action: CloudActionModel, success: bool) -> None:
        try:
            self._notify(action, success)
        except Exception:
            logger.exception(f"Failed to send the notification of action {action.id}")

    def _notify(self, action: CloudActionModel, success: bool) -> None:
        if self.sender is None:
            logger.debug("No mail sender configured, skipping notification")
            return
        template_type = (
            TemplateTypeEnum.SUCCESS if success else TemplateTypeEnum.FAILURE
        )
        with Dao(self.engine) as dao:
            template = dao.get_email_template(action.user_id, template_type)
            recipients = [
                (recipient.email_address, recipient.display_name)
                for recipient in dao.get_notification_recipients(action.user_id)
            ]
            if template is not None:
                subject_template = template.subject_template
                html_template = template.html_template
        if template is None:
            logger.info(f"No {template_type} template for user {action.user_id}")
            return
        if not recipients:
            logger.info(f"No notification recipient for user {action.user_id}")
            return
        variables = build_variables(action, success)
        self.sender.send(
            render_template(subject_template, variables),
            render_template(html_template, variables, html=True),
            recipients,
        )
