# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import click

from mxops.cli.params import database_dsn_option, required_user_id_option
from mxops.core.models import TemplateTypeEnum

if TYPE_CHECKING:
    from sqlalchemy import Engine

TEMPLATE_CHOICES = {
    "success": TemplateTypeEnum.SUCCESS,
    "failure": TemplateTypeEnum.FAILURE,
}


@click.group()
def notifications():
    """Configure the emails sent when an action ends."""
    pass


@notifications.command("set-template")
@click.argument("kind", type=click.Choice(list(TEMPLATE_CHOICES)))
@required_user_id_option
@click.option("--subject", required=True, help="Subject, may contain {{variables}}.")
@click.option(
    "--html-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="HTML body, may contain {{variables}}.",
)
@database_dsn_option
def set_template(
    kind: str, user_id: str, subject: str, html_file: Path, db_engine: Engine
):
    """Set the success or failure email template."""
    from mxops.core.models import EmailTemplateModel
    from mxops.dao import Dao

    template_type = TEMPLATE_CHOICES[kind]
    with Dao(db_engine, commit_on_exit=True) as dao:
        template = dao.get_email_template(user_id, template_type)
        if template is None:
            template = EmailTemplateModel(user_id=user_id, template_type=template_type)
            dao.session.add(template)
        template.subject_template = subject
        template.html_template = html_file.read_text()
    click.echo(f"Template {template_type} saved.")


@notifications.command("add-recipient")
@click.argument("email_address")
@required_user_id_option
@click.option("--name", help="Recipient name.")
@database_dsn_option
def add_recipient(
    email_address: str, user_id: str, name: Optional[str], db_engine: Engine
):
    """Add a recipient of the cloud action emails."""
    from mxops.core.models import NotificationEmailAddressModel
    from mxops.dao import Dao

    with Dao(db_engine, commit_on_exit=True) as dao:
        dao.session.add(
            NotificationEmailAddressModel(
                user_id=user_id,
                email_address=email_address,
                display_name=name,
                is_active=True,
                cloud_action_notifications_enabled=True,
            )
        )
    click.echo(f"Recipient {email_address} added.")
