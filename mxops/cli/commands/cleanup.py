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
def cleanup(db_engine: Engine):
    """Fail abandoned actions and delete old actions and logs."""

    from mxops.cli.utils import print_cleanup_report
    from mxops.dao import Dao

    with Dao(db_engine, commit_on_exit=True) as dao:
        report = dao.cleanup()
    print_cleanup_report(report)
