# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Optional

import click
from tabulate import tabulate

if TYPE_CHECKING:
    from mxops.core.actions import RunReport
    from mxops.core.models import CloudActionLogModel, CloudActionModel
    from mxops.dao import CleanupReport

ACTION_LIST_COLUMNS = [
    "id",
    "user_id",
    "action_type",
    "app_id",
    "environment_name",
    "status",
    "current_step",
    "attempt_count",
    "scheduled_for",
    "completed_at",
]


def parse_json_object(
    _ctx: click.Context, param: click.Parameter, value: Optional[str]
) -> Optional[dict[str, Any]]:
    """Click callback that parses a JSON object."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param=param) from e
    if not isinstance(parsed, dict):
        raise click.BadParameter("Expected a JSON object.", param=param)
    return parsed


def print_action(
    action: CloudActionModel, logs: Optional[Iterable[CloudActionLogModel]] = None
) -> None:
    click.secho("Action details", bold=True)
    click.echo(tabulate(action.to_dict().items(), tablefmt="plain"))
    if logs is not None:
        click.secho("\nLogs", bold=True)
        print_logs(logs)


def print_actions(actions: Iterable[CloudActionModel]) -> None:
    """Print a list of actions in a human readable format."""
    click.echo(
        tabulate(
            [
                {column: a.to_dict()[column] for column in ACTION_LIST_COLUMNS}
                for a in actions
            ],
            headers="keys",
        )
    )


def print_logs(logs: Iterable[CloudActionLogModel]) -> None:
    # Messages are printed in full, platform error bodies can be long.
    rows = [
        {
            **log.to_dict(filter_out=["id", "action_id", "user_id"]),
            "message": log.message,
        }
        for log in logs
    ]
    click.echo(tabulate(rows, headers="keys"))


def print_run_report(report: RunReport) -> None:
    click.echo(
        f"Processed {report.processed} action(s): {report.succeeded} succeeded, "
        f"{report.failed} failed, {report.requeued} requeued, "
        f"{report.advanced} advanced, {report.skipped} skipped."
    )


def print_cleanup_report(report: CleanupReport) -> None:
    click.echo(
        f"{report.abandoned_actions} abandoned action(s) failed, "
        f"{report.deleted_actions} action(s) and {report.deleted_logs} log(s) "
        "deleted."
    )
