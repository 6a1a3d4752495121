# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from collections.abc import Generator
from typing import Union

import pytest
from click.testing import CliRunner, Result

from mxops.cli.__main__ import cli


@pytest.fixture
def runner() -> Generator[CliRunner, None, None]:
    """Fixture to provide a Click test runner."""
    runner = CliRunner(env={"MXOPS_MANDRILL_API_KEY": None})
    # Run tests in an isolated filesystem to avoid side effects (e.g. local .env file)
    with runner.isolated_filesystem():
        yield runner


@pytest.fixture
def mxops(runner, db_dsn):
    """Fixture to provide a function that invokes the MX Ops CLI on the test database."""

    def invoke(args: Union[str, list[str]]) -> Result:
        if isinstance(args, str):
            args = args.split()
        return runner.invoke(cli, args, env={"MXOPS_DATABASE_DSN": db_dsn})

    result = invoke("init")
    assert result.exit_code == 0, result.output
    return invoke
