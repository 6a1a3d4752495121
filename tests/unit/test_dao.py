# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from datetime import timedelta

import pytest
from sqlalchemy.engine import Engine

from mxops.core.exceptions import ActionStateError
from mxops.core.models import (
    ActionStatusEnum,
    ActionTypeEnum,
    CloudActionLogModel,
    LogLevelEnum,
)
from mxops.dao import Dao

WORKER = "worker-1"


def test_create_action(db_engine: Engine, clock):
    with Dao(db_engine, commit_on_exit=True) as dao:
        action = dao.create_action(
            user_id="user-1",
            credential_id="cred-1",
            app_id="project-1",
            environment_name="Acceptance",
            action_type=ActionTypeEnum.DEPLOY,
            payload={"branchName": "release"},
            now=clock(),
        )
        action_id = action.id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        assert action.status == ActionStatusEnum.SCHEDULED
        assert action.attempt_count == 0
        assert action.current_step is None
        assert action.payload == {"branchName": "release"}
        assert action.created_at == clock()


def test_fetch_due_skips_future_and_exhausted_actions(
    db_engine: Engine, make_action, clock
):
    due = make_action(scheduled_for=clock() - timedelta(seconds=1))
    unscheduled = make_action()
    make_action(scheduled_for=clock() + timedelta(minutes=5))
    make_action(attempt_count=3)
    make_action(status=ActionStatusEnum.SUCCEEDED)

    with Dao(db_engine) as dao:
        ids = {action.id for action in dao.fetch_due(now=clock())}

    assert ids == {due.id, unscheduled.id}


@pytest.mark.parametrize(
    "heartbeat_age,expected",
    [(46, True), (10, False), (None, True)],
)
def test_fetch_due_stale_heartbeat(
    db_engine: Engine, make_action, clock, heartbeat_age, expected
):
    heartbeat = (
        clock() - timedelta(seconds=heartbeat_age) if heartbeat_age is not None else None
    )
    action = make_action(status=ActionStatusEnum.RUNNING, last_heartbeat=heartbeat)

    with Dao(db_engine) as dao:
        ids = [a.id for a in dao.fetch_due(now=clock())]

    assert (action.id in ids) is expected


def test_fetch_due_filters(db_engine: Engine, make_action, clock):
    first = make_action()
    second = make_action(created_at=clock() - timedelta(minutes=1))
    make_action()

    with Dao(db_engine) as dao:
        assert [a.id for a in dao.fetch_due(action_ids=[first.id], now=clock())] == [
            first.id
        ]
        assert dao.fetch_due(user_id="somebody-else", now=clock()) == []
        assert [a.id for a in dao.fetch_due(limit=1, now=clock())] == [second.id]


def test_mark_running_claims_once(db_engine: Engine, make_action, clock):
    action_id = make_action().id

    with Dao(db_engine) as late_dao:
        late_action = late_dao.get_action(action_id)
        with Dao(db_engine, commit_on_exit=True) as dao:
            action = dao.get_action(action_id)
            assert dao.mark_running(action, WORKER, now=clock())
        assert not late_dao.mark_running(late_action, "worker-2", now=clock())

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        assert action.status == ActionStatusEnum.RUNNING
        assert action.worker_id == WORKER
        assert action.started_at == clock()
        assert action.last_heartbeat == clock()


def test_mark_running_keeps_start_time_on_resume(
    db_engine: Engine, make_action, clock
):
    started_at = clock() - timedelta(minutes=10)
    action_id = make_action(
        status=ActionStatusEnum.RUNNING,
        started_at=started_at,
        last_heartbeat=clock() - timedelta(minutes=5),
    ).id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        assert dao.mark_running(action, WORKER, now=clock())
        assert action.started_at == started_at


@pytest.mark.parametrize(
    "status", [ActionStatusEnum.SUCCEEDED, ActionStatusEnum.FAILED]
)
def test_terminal_actions_are_immutable(db_engine: Engine, make_action, clock, status):
    action_id = make_action(status=status).id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        with pytest.raises(ActionStateError):
            dao.mark_running(action, WORKER, now=clock())
        with pytest.raises(ActionStateError):
            dao.advance(action, "poll_started", {}, now=clock())
        with pytest.raises(ActionStateError):
            dao.fail_or_retry(action, "boom", now=clock())
        assert action.status == status


def test_advance_keeps_carried_ids(db_engine: Engine, make_action, clock):
    action_id = make_action(
        ActionTypeEnum.DEPLOY,
        status=ActionStatusEnum.RUNNING,
        package_id="pkg-1",
    ).id

    with Dao(db_engine, commit_on_exit=True) as dao:
        action = dao.get_action(action_id)
        dao.advance(action, "transport", {"foo": "bar"}, now=clock())

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        assert action.current_step == "transport"
        assert action.step_data == {"foo": "bar"}
        assert action.package_id == "pkg-1"
        assert action.last_heartbeat == clock()


def test_fail_or_retry_backoff_and_exhaustion(db_engine: Engine, make_action, clock):
    action_id = make_action(status=ActionStatusEnum.RUNNING).id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        for attempt in (1, 2):
            assert not dao.fail_or_retry(action, f"error {attempt}", now=clock())
            assert action.status == ActionStatusEnum.SCHEDULED
            assert action.attempt_count == attempt
            assert action.scheduled_for == clock() + timedelta(seconds=60 * attempt)
            action.status = ActionStatusEnum.RUNNING

        assert dao.fail_or_retry(action, "error 3", now=clock())
        assert action.status == ActionStatusEnum.FAILED
        assert action.attempt_count == 3
        assert action.error_message == "error 3"
        assert action.completed_at == clock()


def test_fail_or_retry_fatal(db_engine: Engine, make_action, clock):
    action_id = make_action(status=ActionStatusEnum.RUNNING).id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        assert dao.fail_or_retry(action, "FATAL: gone", is_fatal=True, now=clock())
        assert action.status == ActionStatusEnum.FAILED
        assert action.attempt_count == 1


def test_succeed(db_engine: Engine, make_action, clock):
    action_id = make_action(
        status=ActionStatusEnum.RUNNING, current_step="poll_started"
    ).id

    with Dao(db_engine) as dao:
        action = dao.get_action(action_id)
        dao.succeed(action, package_id="pkg-2", now=clock())
        assert action.status == ActionStatusEnum.SUCCEEDED
        assert action.current_step is None
        assert action.package_id == "pkg-2"
        assert action.completed_at == clock()


def test_append_and_get_logs(db_engine: Engine, make_action, clock):
    action_id = make_action().id

    with Dao(db_engine, commit_on_exit=True) as dao:
        action = dao.get_action(action_id)
        dao.append_log(action, LogLevelEnum.INFO, "first", now=clock())
        dao.append_log(action, LogLevelEnum.WARNING, "second", now=clock())

    with Dao(db_engine) as dao:
        logs = dao.get_logs(action_id)
        assert [(log.level, log.message) for log in logs] == [
            (LogLevelEnum.INFO, "first"),
            (LogLevelEnum.WARNING, "second"),
        ]
        assert all(log.user_id == "user-1" for log in logs)


def test_environment_lock(db_engine: Engine, make_action, clock):
    first_id = make_action(environment_name="test").id
    second_id = make_action(environment_name="TEST").id
    other_id = make_action(environment_name="Production").id

    with Dao(db_engine, commit_on_exit=True) as dao:
        first = dao.get_action(first_id)
        assert dao.acquire_environment_lock(first, now=clock())
        assert dao.acquire_environment_lock(first, now=clock())
        assert not dao.acquire_environment_lock(dao.get_action(second_id), now=clock())
        assert dao.acquire_environment_lock(dao.get_action(other_id), now=clock())

        first.status = ActionStatusEnum.FAILED
        assert dao.acquire_environment_lock(dao.get_action(second_id), now=clock())


def test_release_environment_lock(db_engine: Engine, make_action, clock):
    first_id = make_action().id
    second_id = make_action().id

    with Dao(db_engine, commit_on_exit=True) as dao:
        first = dao.get_action(first_id)
        second = dao.get_action(second_id)
        assert dao.acquire_environment_lock(first, now=clock())
        dao.release_environment_lock(second)
        assert not dao.acquire_environment_lock(second, now=clock())
        dao.release_environment_lock(first)
        assert dao.acquire_environment_lock(second, now=clock())


def test_cleanup(db_engine: Engine, db_session, make_action, clock):
    now = clock()
    old_done = make_action(
        status=ActionStatusEnum.SUCCEEDED, completed_at=now - timedelta(days=8)
    ).id
    recent_done = make_action(
        status=ActionStatusEnum.FAILED, completed_at=now - timedelta(days=6)
    ).id
    orphan = make_action(
        status=ActionStatusEnum.RUNNING, created_at=now - timedelta(hours=2)
    ).id
    young_orphan = make_action(
        status=ActionStatusEnum.RUNNING, created_at=now - timedelta(minutes=30)
    ).id
    db_session.add_all(
        [
            CloudActionLogModel(
                action_id=recent_done,
                user_id="user-1",
                level=LogLevelEnum.INFO,
                message="old",
                created_at=now - timedelta(days=31),
            ),
            CloudActionLogModel(
                action_id=recent_done,
                user_id="user-1",
                level=LogLevelEnum.INFO,
                message="recent",
                created_at=now - timedelta(days=1),
            ),
        ]
    )
    db_session.commit()

    with Dao(db_engine, commit_on_exit=True) as dao:
        report = dao.cleanup(now=now)

    assert report == (1, 1, 1)
    with Dao(db_engine) as dao:
        assert dao.get_action(old_done) is None
        assert dao.get_action(recent_done) is not None
        assert dao.get_action(orphan).status == ActionStatusEnum.FAILED
        assert dao.get_action(young_orphan).status == ActionStatusEnum.RUNNING
        assert [log.message for log in dao.get_logs(recent_done)] == ["recent"]
