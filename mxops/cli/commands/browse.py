# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import click

from mxops.cli.params import database_dsn_option, status_option, user_id_option
from mxops.cli.utils import print_action, print_actions

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from mxops.core.models import ActionStatusEnum


@click.command()
@click.argument("action_id", required=False)
@user_id_option
@status_option
@click.option(
    "--limit",
    envvar="MXOPS_LIMIT",
    type=int,
    default=15,
    help="Limit number of actions returned.",
)
@click.option(
    "--offset",
    envvar="MXOPS_OFFSET",
    type=int,
    default=0,
    help="At which offset the database query should start.",
)
@database_dsn_option
def browse(
    user_id: Optional[str],
    status: Optional[ActionStatusEnum],
    limit: int,
    offset: int,
    db_engine: Engine,
    action_id: Optional[str] = None,
):
    """Browse cloud actions, or print one action with its logs."""
    from mxops.dao import Dao

    with Dao(db_engine) as dao:
        if action_id:
            action = dao.get_action(action_id)
            if action is None:
                raise click.ClickException(f"Action {action_id} does not exist.")
            print_action(action, dao.get_logs(action_id))
            return
        actions = dao.get_actions(
            user_id=user_id, status=status, limit=limit, offset=offset
        )
        if actions:
            print_actions(actions)
        else:
            click.echo("No actions found.")
            click.echo("Schedule an action using the `mxops submit` command.")
