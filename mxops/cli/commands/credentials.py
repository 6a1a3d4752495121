# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import click

from mxops.cli.params import database_dsn_option, required_user_id_option

if TYPE_CHECKING:
    from sqlalchemy import Engine


@click.group()
def credentials():
    """Register the platform credentials, apps and environments."""
    pass


@credentials.command("add")
@click.argument("credential_id")
@required_user_id_option
@click.option("--username", required=True, help="Platform username.")
@click.option("--api-key", envvar="MXOPS_API_KEY", help="Platform API key.")
@click.option("--pat", envvar="MXOPS_PAT", help="Personal access token.")
@click.option("--name", help="Display name.")
@database_dsn_option
def add_credential(
    credential_id: str,
    user_id: str,
    username: str,
    api_key: Optional[str],
    pat: Optional[str],
    name: Optional[str],
    db_engine: Engine,
):
    """Add or replace a credential."""
    from mxops.core.models import MendixCredentialModel
    from mxops.dao import Dao

    if not api_key and not pat:
        raise click.UsageError("Either --api-key or --pat is required.")
    with Dao(db_engine, commit_on_exit=True) as dao:
        dao.session.merge(
            MendixCredentialModel(
                id=credential_id,
                user_id=user_id,
                username=username,
                api_key=api_key,
                pat=pat,
                name=name,
            )
        )
    click.echo(f"Credential {credential_id} saved.")


@credentials.command("add-app")
@click.argument("project_id")
@required_user_id_option
@click.option("--app-id", "app_slug", required=True, help="App id of the deploy API.")
@click.option("--credential-id", help="Credential the app belongs to.")
@click.option("--name", help="App name.")
@database_dsn_option
def add_app(
    project_id: str,
    user_id: str,
    app_slug: str,
    credential_id: Optional[str],
    name: Optional[str],
    db_engine: Engine,
):
    """Add or replace an app."""
    from mxops.core.models import MendixAppModel
    from mxops.dao import Dao

    with Dao(db_engine, commit_on_exit=True) as dao:
        dao.session.merge(
            MendixAppModel(
                project_id=project_id,
                user_id=user_id,
                app_id=app_slug,
                credential_id=credential_id,
                app_name=name,
            )
        )
    click.echo(f"App {project_id} saved.")


@credentials.command("add-environment")
@click.argument("environment_id")
@required_user_id_option
@click.option("--app-id", "app_slug", required=True, help="App id of the deploy API.")
@click.option("--name", "environment_name", required=True, help="Environment name.")
@click.option("--url", help="Environment URL.")
@database_dsn_option
def add_environment(
    environment_id: str,
    user_id: str,
    app_slug: str,
    environment_name: str,
    url: Optional[str],
    db_engine: Engine,
):
    """Add or replace an environment."""
    from mxops.core.models import MendixEnvironmentModel
    from mxops.dao import Dao

    with Dao(db_engine, commit_on_exit=True) as dao:
        environment = dao.get_environment(user_id, app_slug, environment_name)
        if environment is None:
            environment = MendixEnvironmentModel(
                user_id=user_id,
                app_id=app_slug,
                environment_name=environment_name,
            )
            dao.session.add(environment)
        environment.environment_id = environment_id
        environment.url = url
    click.echo(f"Environment {environment_name} of {app_slug} saved.")
