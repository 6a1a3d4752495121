# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from collections.abc import Generator
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from mxops.core.db import get_engine, get_session
from mxops.core.models import (
    ActionStatusEnum,
    ActionTypeEnum,
    CloudActionModel,
    MendixAppModel,
    MendixCredentialModel,
    MendixEnvironmentModel,
    init_database,
)
from mxops.core.models.base_model import BaseModel

USER_ID = "user-1"
CREDENTIAL_ID = "cred-1"
PROJECT_ID = "project-1"
APP_SLUG = "my-app"
ENVIRONMENT_ID = "env-uuid-1"


@pytest.fixture()
def db_engine(db_dsn: str) -> Generator[Engine, None, None]:
    """Fixture to create a database engine.

    This fixture initializes the database schema and returns an engine that can be used
    in tests. It also ensures that the database is cleared after the test completes.
    """
    engine = get_engine(db_dsn)
    init_database(engine)
    try:
        yield engine
    finally:
        BaseModel.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Fixture to create a database session.

    This fixture initializes returns a session that can be used in tests. It also
    ensures that the session is closed after the test completes.
    """
    session = get_session(db_engine)
    try:
        yield session
    finally:
        session.close()


class FakeClock:
    """Controllable clock, its `sleep` moves the time forward."""

    def __init__(self, now: datetime = datetime(2024, 5, 1, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)


class FakePlatformClient:
    """In memory stand-in of the platform client.

    Status attributes are queues: each read pops the first value, the last value
    is returned forever. `errors` maps a method name to an exception raised by
    the next call of that method.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.errors: dict[str, Exception] = {}
        self.environment_statuses = ["Running"]
        self.package_statuses = ["Succeeded"]
        self.active_packages: dict[str, list[Optional[str]]] = {}
        self.backup_states = ["completed"]
        self.packages: list[dict[str, Any]] = []
        self.backups: list[dict[str, Any]] = []
        self.environment_id: Optional[str] = ENVIRONMENT_ID
        self.next_package_id = "pkg-1"
        self.next_backup_id = "snap-1"

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors.pop(name)

    @staticmethod
    def _next(queue: list):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def start(self, app_id, environment_name):
        self._call("start", app_id, environment_name)
        return {}

    def stop(self, app_id, environment_name):
        self._call("stop", app_id, environment_name)
        return {}

    def environment_status(self, app_id, environment_name):
        self._call("environment_status", app_id, environment_name)
        return {
            "Status": self._next(self.environment_statuses),
            "EnvironmentId": self.environment_id,
        }

    def get_environment_package(self, app_id, environment_name):
        self._call("get_environment_package", app_id, environment_name)
        queue = self.active_packages.get(environment_name, [None])
        return {"PackageId": self._next(queue)}

    def create_package(self, app_id, *, branch, revision, version, description):
        self._call("create_package", app_id, branch, revision, version, description)
        self.packages.append(
            {"PackageId": self.next_package_id, "Description": description}
        )
        return {"PackageId": self.next_package_id}

    def get_package(self, app_id, package_id):
        self._call("get_package", app_id, package_id)
        return {"PackageId": package_id, "Status": self._next(self.package_statuses)}

    def list_packages(self, app_id):
        self._call("list_packages", app_id)
        return list(self.packages)

    def transport(self, app_id, environment_name, package_id):
        self._call("transport", app_id, environment_name, package_id)
        return {}

    def create_backup(self, project_id, environment_id, comment):
        self._call("create_backup", project_id, environment_id, comment)
        self.backups.append({"snapshot_id": self.next_backup_id, "comment": comment})
        return {"snapshot_id": self.next_backup_id}

    def get_backup(self, project_id, environment_id, backup_id):
        self._call("get_backup", project_id, environment_id, backup_id)
        return {"snapshot_id": backup_id, "state": self._next(self.backup_states)}

    def list_backups(self, project_id, environment_id):
        self._call("list_backups", project_id, environment_id)
        return list(self.backups)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_client() -> FakePlatformClient:
    return FakePlatformClient()


@pytest.fixture()
def collaborators(db_session: Session) -> None:
    """Credential, app and Test environment records of the test user."""
    db_session.add_all(
        [
            MendixCredentialModel(
                id=CREDENTIAL_ID,
                user_id=USER_ID,
                username="deployer@example.com",
                api_key="api-key",
            ),
            MendixAppModel(
                project_id=PROJECT_ID,
                user_id=USER_ID,
                credential_id=CREDENTIAL_ID,
                app_id=APP_SLUG,
                app_name="My App",
            ),
            MendixEnvironmentModel(
                user_id=USER_ID,
                app_id=APP_SLUG,
                environment_id=ENVIRONMENT_ID,
                environment_name="Test",
            ),
        ]
    )
    db_session.commit()


@pytest.fixture()
def make_action(
    db_session: Session, clock: FakeClock
) -> Callable[..., CloudActionModel]:
    """Factory inserting a cloud action of the test user."""

    def factory(
        action_type: ActionTypeEnum = ActionTypeEnum.START,
        **values: Any,
    ) -> CloudActionModel:
        values.setdefault("status", ActionStatusEnum.SCHEDULED)
        values.setdefault("environment_name", "test")
        values.setdefault("attempt_count", 0)
        values.setdefault("created_at", clock())
        values.setdefault("credential_id", CREDENTIAL_ID)
        values.setdefault("app_id", PROJECT_ID)
        action = CloudActionModel(
            user_id=USER_ID,
            action_type=action_type,
            **values,
        )
        db_session.add(action)
        db_session.commit()
        return action

    return factory
