# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import click

from mxops.cli.params import database_dsn_option, required_user_id_option
from mxops.cli.utils import parse_json_object
from mxops.core.models import ActionTypeEnum

if TYPE_CHECKING:
    from sqlalchemy import Engine

DATETIME_FORMATS = ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"]


@click.command()
@click.argument(
    "action_type", type=click.Choice([t.value for t in ActionTypeEnum])
)
@click.option("--app-id", required=True, help="Platform project id of the app.")
@click.option(
    "-e", "--environment", "environment_name", required=True, help="Environment name."
)
@click.option(
    "--credential-id",
    envvar="MXOPS_CREDENTIAL_ID",
    required=True,
    help="Credential used to call the platform.",
)
@required_user_id_option
@click.option("--branch", help="Branch to build the package from (deploy).")
@click.option("--revision", help="Revision to build the package from (deploy).")
@click.option("--version", "package_version", help="Package version (deploy).")
@click.option("--description", help="Package description (deploy, transport).")
@click.option(
    "--source-environment", help="Environment to take the package from (transport)."
)
@click.option("--package-id", help="Package to transport (transport).")
@click.option("--comment", help="Transport comment.")
@click.option(
    "--payload",
    callback=parse_json_object,
    help="Extra payload as a JSON object, merged under the other options.",
)
@click.option(
    "--scheduled-for",
    type=click.DateTime(DATETIME_FORMATS),
    help="Earliest time (UTC) the action may run. Defaults to now.",
)
@click.option(
    "--retry-until",
    type=click.DateTime(DATETIME_FORMATS),
    help="Deadline (UTC) of the polling steps. Defaults to a per type window.",
)
@database_dsn_option
def submit(
    action_type: str,
    app_id: str,
    environment_name: str,
    credential_id: str,
    user_id: str,
    branch: Optional[str],
    revision: Optional[str],
    package_version: Optional[str],
    description: Optional[str],
    source_environment: Optional[str],
    package_id: Optional[str],
    comment: Optional[str],
    payload: Optional[dict[str, Any]],
    scheduled_for: Optional[datetime],
    retry_until: Optional[datetime],
    db_engine: Engine,
):
    """Schedule a cloud action."""

    from mxops.dao import Dao

    action_payload = dict(payload or {})
    for key, value in (
        ("branchName", branch),
        ("revisionId", revision),
        ("version", package_version),
        ("description", description),
        ("sourceEnvironment", source_environment),
        ("packageId", package_id),
        ("comment", comment),
    ):
        if value is not None:
            action_payload[key] = value

    if (
        action_type == ActionTypeEnum.TRANSPORT
        and not action_payload.get("sourceEnvironment")
        and not action_payload.get("packageId")
    ):
        raise click.UsageError(
            "A transport requires --source-environment or --package-id."
        )

    with Dao(db_engine, commit_on_exit=True) as dao:
        action = dao.create_action(
            user_id=user_id,
            credential_id=credential_id,
            app_id=app_id,
            environment_name=environment_name,
            action_type=ActionTypeEnum(action_type),
            payload=action_payload,
            scheduled_for=scheduled_for,
            retry_until=retry_until,
        )
    click.echo(f"Action {action.id} scheduled.")
