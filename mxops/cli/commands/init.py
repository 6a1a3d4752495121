# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from mxops.cli.params import database_dsn_option

if TYPE_CHECKING:
    from sqlalchemy import Engine


@click.command()
@database_dsn_option
def init(db_engine: Engine):
    """Initialize the database."""

    from mxops.core.models import init_database

    init_database(db_engine)
    click.echo("Database initialized.")
