# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from mxops.core.models import ActionStatusEnum

if TYPE_CHECKING:
    from click.decorators import FC


def database_dsn_option(func: FC) -> FC:
    """Add the `--database-dsn` option to a Click command.

    Return a SQLAlchemy Engine instance, available as "db_engine" in the command context.
    """

    def _get_engine_callback(_ctx: click.Context, _param: click.Parameter, value):
        """Click callback that returns a SQLAlchemy Engine instance."""
        from mxops.core.db import get_engine

        return get_engine(value)

    return click.option(
        "db_engine",
        "--database-dsn",
        envvar="MXOPS_DATABASE_DSN",
        required=True,
        type=str,
        callback=_get_engine_callback,
        help=(
            "Database Data Source Name, in sqlalchemy driver form "
            "example: sqlite:////data/mxops.db or postgresql://user@host/mxops. "
            "You might need to install the relevant driver to your installation (such "
            "as psycopg2 for postgresql)."
        ),
    )(func)


def user_id_option(func: FC) -> FC:
    """Add the `--user-id` option to a Click command."""
    return click.option(
        "--user-id",
        envvar="MXOPS_USER_ID",
        type=str,
        help="Only consider the records of this user.",
    )(func)


def required_user_id_option(func: FC) -> FC:
    """Add a mandatory `--user-id` option to a Click command."""
    return click.option(
        "--user-id",
        envvar="MXOPS_USER_ID",
        required=True,
        type=str,
        help="Owner of the created records.",
    )(func)


def status_option(func: FC) -> FC:
    """Add the `--status` option to a Click command."""
    return click.option(
        "--status",
        type=click.Choice([status.value for status in ActionStatusEnum]),
        callback=lambda _ctx, _param, value: ActionStatusEnum(value) if value else None,
        help="Only consider the actions in this status.",
    )(func)
