# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

import logging
from pathlib import Path

import click

from mxops.cli.commands.browse import browse
from mxops.cli.commands.cleanup import cleanup
from mxops.cli.commands.credentials import credentials
from mxops.cli.commands.init import init
from mxops.cli.commands.notifications import notifications
from mxops.cli.commands.run import run
from mxops.cli.commands.submit import submit
from mxops.cli.logger import DEFAULT_LOG_LEVEL, get_early_logger

# Set up early logging before any other operations
logger = get_early_logger(__name__)

# Add `-h` shortcut to print the help for the whole cli.
# Click only uses `--help` by default.
CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _load_env_callback(
    _ctx: click.Context, _param: click.Parameter, value: Path
) -> None:
    """Click callback to load the environment file."""
    from dotenv import load_dotenv

    if not value.exists():
        logger.debug(f"Environment file {value} does not exist, skipping.")
        return

    load_dotenv(value)
    logger.info(f"Loaded environment from {value}")


def _setup_logging_callback(
    _ctx: click.Context, _param: click.Parameter, value: str
) -> None:
    """Click callback to set up logging."""
    from mxops.cli.logger import setup_logging

    setup_logging(value)
    logger.debug(f"Logging level set to {value}")


@click.group("mxops", context_settings=CONTEXT_SETTINGS)
@click.option(
    "--env",
    default=".env",
    envvar="MXOPS_ENV",
    type=click.Path(dir_okay=False, path_type=Path),
    callback=_load_env_callback,
    help="Path to environment configuration file.",
    expose_value=False,
    is_eager=True,
)
@click.option(
    "--log-level",
    default=logging.getLevelName(DEFAULT_LOG_LEVEL),
    envvar="MXOPS_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    callback=_setup_logging_callback,
    help="Set the level of log output.",
    show_default=True,
    expose_value=False,
    is_eager=True,
)
def cli():
    """Orchestrate start, stop, restart, deploy and transport actions on Mendix
    cloud environments."""
    pass


cli.add_command(browse)
cli.add_command(cleanup)
cli.add_command(credentials)
cli.add_command(init)
cli.add_command(notifications)
cli.add_command(run)
cli.add_command(submit)


if __name__ == "__main__":
    cli()
