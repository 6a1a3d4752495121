# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Optional

from mxops.core.exceptions import LookupFailedError, StepError
from mxops.core.platform.client import normalize_environment_name

if TYPE_CHECKING:
    from mxops.core.models import CloudActionModel, MendixCredentialModel
    from mxops.dao import Dao


class ActionTarget(NamedTuple):
    """Platform coordinates of the environment an action works on."""

    credential: MendixCredentialModel
    project_id: str
    app_slug: str
    environment_name: str
    environment_id: Optional[str]


def resolve_target(dao: Dao, action: CloudActionModel) -> ActionTarget:
    """Load the credential, app and environment records of an action.

    Raises:
        LookupFailedError: If the credential or the app is missing.
        StepError: If the app has no slug, which can not be fixed by a retry.
    """
    credential = dao.get_credential(action.credential_id, action.user_id)
    if credential is None:
        raise LookupFailedError(f"Credential {action.credential_id} not found")
    app = dao.get_app(action.app_id, action.user_id)
    if app is None:
        raise LookupFailedError(f"App {action.app_id} not found")
    if not app.app_id:
        raise StepError(
            f"FATAL: APP_NOT_FOUND: app {action.app_id} has no deploy API identifier",
            fatal=True,
        )
    environment = dao.get_environment(
        action.user_id, app.app_id, action.environment_name
    )
    return ActionTarget(
        credential=credential,
        project_id=action.app_id,
        app_slug=app.app_id,
        environment_name=normalize_environment_name(action.environment_name),
        environment_id=environment.environment_id if environment else None,
    )
