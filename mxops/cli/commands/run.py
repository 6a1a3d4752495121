# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Optional

import click

from mxops.cli.params import database_dsn_option, user_id_option

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--action-id",
    "action_ids",
    multiple=True,
    help="Only process this action. Can be used multiple times.",
)
@user_id_option
@click.option("--worker-id", envvar="MXOPS_WORKER_ID", help="Name of this worker.")
@click.option(
    "--watch",
    is_flag=True,
    help="Keep processing due actions until interrupted.",
)
@click.option(
    "--interval",
    envvar="MXOPS_INTERVAL",
    type=click.IntRange(min=1),
    default=60,
    show_default=True,
    help="Seconds between two runs in watch mode.",
)
@database_dsn_option
def run(
    action_ids: tuple[str, ...],
    user_id: Optional[str],
    worker_id: Optional[str],
    watch: bool,
    interval: int,
    db_engine: Engine,
):
    """Process the due cloud actions, one step each."""

    from mxops.cli.utils import print_run_report
    from mxops.core.actions import Orchestrator
    from mxops.core.notifications import Notifier
    from mxops.core.platform import PlatformClient
    from mxops.core.settings import get_settings

    settings = get_settings()
    orchestrator = Orchestrator(
        db_engine,
        worker_id=worker_id,
        client_factory=lambda credential: PlatformClient(
            credential,
            base_url=settings.PLATFORM_URL,
            timeout=settings.HTTP_TIMEOUT,
        ),
        notifier=Notifier.from_settings(db_engine, settings),
        batch_size=settings.BATCH_SIZE,
        run_budget=settings.RUN_BUDGET_SECONDS,
        poll_budget=settings.POLL_BUDGET_SECONDS,
    )
    logger.debug(f"Running as worker {orchestrator.worker_id}")

    while True:
        report = orchestrator.run(action_ids=action_ids or None, user_id=user_id)
        print_run_report(report)
        if not watch:
            return
        try:
            time.sleep(interval)
        except KeyboardInterrupt:
            click.echo("Stopped.")
            return
