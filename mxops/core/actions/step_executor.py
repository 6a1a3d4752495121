# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

from mxops.core.actions.step_result import StepResult
from mxops.core.actions.steps import StepEnum, next_step, parse_step
from mxops.core.constants import (
    DEFAULT_BRANCH,
    DEFAULT_PACKAGE_DESCRIPTION,
    DEFAULT_POLL_BUDGET_SECONDS,
    DEFAULT_RETRY_WINDOW_MINUTES,
    DEFAULT_REVISION,
    ENVIRONMENT_POLL_INTERVAL,
    ENVIRONMENT_POLL_MAX_ATTEMPTS,
    REMOTE_JOB_POLL_INTERVAL,
    REMOTE_JOB_POLL_MAX_ATTEMPTS,
)
from mxops.core.exceptions import PlatformError, StepCrashedError, StepError
from mxops.core.models.enums import LogLevelEnum
from mxops.core.platform import ActionTarget, PlatformClient, resolve_target
from mxops.core.utils import utcnow

if TYPE_CHECKING:
    from mxops.core.models import CloudActionModel, MendixCredentialModel
    from mxops.dao import Dao

logger = logging.getLogger(__name__)

PACKAGE_READY_STATUSES = ("Succeeded", "Available")
PACKAGE_FAILED_STATUS = "Failed"
BACKUP_COMPLETED_STATE = "completed"
BACKUP_FAILED_STATE = "failed"

POLL_ATTEMPTS_KEY = "poll_attempts"
IDEMPOTENCY_KEY = "idempotency_key"
ENVIRONMENT_ID_KEY = "environment_id"

LOGGING_LEVELS = {
    LogLevelEnum.INFO: logging.INFO,
    LogLevelEnum.WARNING: logging.WARNING,
    LogLevelEnum.ERROR: logging.ERROR,
}


@dataclass
class _StepRun:
    """State of a single step execution."""

    action: CloudActionModel
    step: StepEnum
    target: ActionTarget
    client: PlatformClient
    data: dict[str, Any]
    logs: list[tuple[LogLevelEnum, str]] = field(default_factory=list)

    def log(self, level: LogLevelEnum, message: str) -> None:
        logger.log(LOGGING_LEVELS[level], f"[{self.action.id}] {message}")
        self.logs.append((level, message))


def idempotency_key(action: CloudActionModel) -> str:
    """Marker embedded in the remote objects created on behalf of an action."""
    return f"mxops:{action.id}"


class StepExecutor:
    """Execute one step of a cloud action.

    Args:
        dao: Opened Dao, used to read the collaborator records and to
          checkpoint step data before non-idempotent calls.
        client_factory: Build a platform client from a credential.
        clock: Current naive UTC time.
        sleep: Wait between two polls.
        poll_budget: Seconds a polling step may spend before yielding.
    """

    def __init__(
        self,
        dao: Dao,
        client_factory: Optional[
            Callable[[MendixCredentialModel], PlatformClient]
        ] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        poll_budget: int = DEFAULT_POLL_BUDGET_SECONDS,
    ):
        self.dao = dao
        self.client_factory = client_factory or PlatformClient
        self.clock = clock
        self.sleep = sleep
        self.poll_budget = poll_budget

    def execute(
        self, action: CloudActionModel, step: Optional[str] = None
    ) -> StepResult:
        """Execute a step of an action, the current step of the action by default.

        Platform and step errors are returned as failed results, any other
        exception is raised as a `StepCrashedError` carrying the logs
        collected so far.
        """
        logs: list[tuple[LogLevelEnum, str]] = []
        try:
            current = parse_step(action.action_type, step or action.current_step)
            target = resolve_target(self.dao, action)
            run = _StepRun(
                action=action,
                step=current,
                target=target,
                client=self.client_factory(target.credential),
                data=dict(action.step_data or {}),
                logs=logs,
            )
            logger.debug(f"Executing step {current} of action {action.id}")
            result = getattr(self, f"_{current.value}")(run)
        except PlatformError as e:
            result = StepResult.failure(str(e), fatal=e.fatal)
        except StepError as e:
            result = StepResult.failure(str(e), fatal=e.fatal)
        except Exception as e:
            raise StepCrashedError(str(e), logs) from e
        result.logs = logs + result.logs
        return result

    # Helpers

    def _advance(self, run: _StepRun, **values: Any) -> StepResult:
        """Move to the next step of the workflow, complete after the last one."""
        following = next_step(run.action.action_type, run.step)
        if following is None:
            return StepResult(completed=True, **values)
        return StepResult(next_step=following, **values)

    def _repeat(self, run: _StepRun) -> StepResult:
        return StepResult(next_step=run.step, step_data=dict(run.data))

    def _deadline(self, action: CloudActionModel) -> datetime:
        if action.retry_until:
            return action.retry_until
        start = action.started_at or self.clock()
        return start + timedelta(
            minutes=DEFAULT_RETRY_WINDOW_MINUTES[action.action_type.value]
        )

    def _poll(
        self,
        run: _StepRun,
        check: Callable[[], tuple[bool, Any]],
        *,
        subject: str,
        target_status: str,
        interval: int,
        max_attempts: int,
    ) -> Optional[StepResult]:
        """Poll until `check` reports the target state.

        Returns:
            None when the target state is reached, a result repeating the
            step when the poll budget of this invocation is spent.

        Raises:
            StepError: When the deadline of the action or the attempt ceiling
              is reached.
        """
        deadline = self._deadline(run.action)
        started = self.clock()
        attempts = int(run.data.get(POLL_ATTEMPTS_KEY, 0))
        while True:
            if attempts >= max_attempts:
                reason = f"{max_attempts} attempts"
            elif self.clock() >= deadline:
                reason = "retry window elapsed"
            else:
                reason = None
            if reason:
                raise StepError(
                    f"{subject} failed to reach status {target_status} "
                    f"within timeout ({reason})"
                )
            attempts += 1
            done, current = check()
            run.log(
                LogLevelEnum.INFO,
                f"Polling {subject.lower()}. Current: {current}, "
                f"Target: {target_status}",
            )
            if done:
                run.data.pop(POLL_ATTEMPTS_KEY, None)
                return None
            run.data[POLL_ATTEMPTS_KEY] = attempts
            elapsed = (self.clock() - started).total_seconds()
            if elapsed + interval > self.poll_budget:
                return self._repeat(run)
            # Keep the claim alive while waiting.
            self.dao.heartbeat(run.action, run.data, now=self.clock())
            self.dao.commit()
            self.sleep(interval)

    def _poll_environment(self, run: _StepRun, target_status: str) -> StepResult:
        def check():
            status = run.client.environment_status(
                run.target.app_slug, run.target.environment_name
            ).get("Status")
            return (status or "").lower() == target_status, status

        pending = self._poll(
            run,
            check,
            subject="Environment",
            target_status=target_status,
            interval=ENVIRONMENT_POLL_INTERVAL,
            max_attempts=ENVIRONMENT_POLL_MAX_ATTEMPTS,
        )
        if pending:
            return pending
        run.log(
            LogLevelEnum.INFO,
            f"Environment {run.target.environment_name} is {target_status}",
        )
        return self._advance(run)

    def _checkpoint(self, run: _StepRun) -> str:
        """Record the idempotency key before a create call.

        Returns the key, reusing the one recorded by a previous attempt.
        """
        key = run.data.get(IDEMPOTENCY_KEY)
        if key is None:
            key = idempotency_key(run.action)
            run.data[IDEMPOTENCY_KEY] = key
            self.dao.heartbeat(run.action, run.data, now=self.clock())
            self.dao.commit()
        return key

    def _require_package(self, run: _StepRun) -> str:
        if not run.action.package_id:
            raise StepError(f"FATAL: no package recorded before step {run.step}")
        return run.action.package_id

    def _backup_environment_id(self, run: _StepRun) -> Optional[str]:
        environment_id = run.data.get(ENVIRONMENT_ID_KEY) or run.target.environment_id
        if environment_id:
            return environment_id
        return run.client.environment_status(
            run.target.app_slug, run.target.environment_name
        ).get("EnvironmentId")

    # Environment steps

    def _call_start(self, run: _StepRun) -> StepResult:
        run.client.start(run.target.app_slug, run.target.environment_name)
        run.log(
            LogLevelEnum.INFO, f"Start requested for {run.target.environment_name}"
        )
        return self._advance(run)

    def _call_stop(self, run: _StepRun) -> StepResult:
        run.client.stop(run.target.app_slug, run.target.environment_name)
        run.log(LogLevelEnum.INFO, f"Stop requested for {run.target.environment_name}")
        return self._advance(run)

    _start_env = _call_start
    _stop_env = _call_stop

    def _poll_started(self, run: _StepRun) -> StepResult:
        return self._poll_environment(run, "running")

    def _poll_stopped(self, run: _StepRun) -> StepResult:
        return self._poll_environment(run, "stopped")

    # Package steps

    def _create_package(self, run: _StepRun) -> StepResult:
        retried = IDEMPOTENCY_KEY in run.data
        key = self._checkpoint(run)
        if retried:
            for package in run.client.list_packages(run.target.app_slug):
                if key in (package.get("Description") or ""):
                    package_id = package.get("PackageId")
                    run.log(
                        LogLevelEnum.INFO,
                        f"Reusing package {package_id} created by a previous attempt",
                    )
                    return self._advance(run, package_id=package_id)

        payload = run.action.payload or {}
        now = self.clock().replace(tzinfo=timezone.utc)
        version = payload.get("version") or f"1.0.{int(now.timestamp() * 1000)}"
        description = payload.get("description") or DEFAULT_PACKAGE_DESCRIPTION
        branch = payload.get("branchName") or DEFAULT_BRANCH
        revision = payload.get("revisionId") or DEFAULT_REVISION
        package_id = run.client.create_package(
            run.target.app_slug,
            branch=branch,
            revision=revision,
            version=version,
            description=f"{description} [{key}]",
        ).get("PackageId")
        if not package_id:
            raise StepError("Package creation returned no PackageId")
        run.log(
            LogLevelEnum.INFO,
            f"Package {package_id} build started from {branch}@{revision}",
        )
        return self._advance(run, package_id=package_id)

    def _poll_package(self, run: _StepRun) -> StepResult:
        package_id = self._require_package(run)

        def check():
            status = run.client.get_package(run.target.app_slug, package_id).get(
                "Status"
            )
            if status == PACKAGE_FAILED_STATUS:
                raise StepError(f"Package {package_id} build failed")
            return status in PACKAGE_READY_STATUSES, status

        pending = self._poll(
            run,
            check,
            subject="Package",
            target_status=PACKAGE_READY_STATUSES[0],
            interval=REMOTE_JOB_POLL_INTERVAL,
            max_attempts=REMOTE_JOB_POLL_MAX_ATTEMPTS,
        )
        if pending:
            return pending
        run.log(LogLevelEnum.INFO, f"Package {package_id} is built")
        return self._advance(run)

    def _retrieve_source_package(self, run: _StepRun) -> StepResult:
        payload = run.action.payload or {}
        package_id = payload.get("packageId")
        source = payload.get("sourceEnvironment")
        if not package_id:
            if not source:
                raise StepError(
                    "FATAL: transport requires a sourceEnvironment or a packageId"
                )
            package_id = run.client.get_environment_package(
                run.target.app_slug, source
            ).get("PackageId")
            if not package_id:
                raise StepError(f"No package deployed on environment {source}")
            run.log(
                LogLevelEnum.INFO, f"Package {package_id} is deployed on {source}"
            )
        return self._advance(run, package_id=package_id)

    def _transport(self, run: _StepRun) -> StepResult:
        package_id = self._require_package(run)
        run.client.transport(
            run.target.app_slug, run.target.environment_name, package_id
        )
        comment = (run.action.payload or {}).get("comment")
        run.log(
            LogLevelEnum.INFO,
            f"Package {package_id} transported to {run.target.environment_name}"
            + (f": {comment}" if comment else ""),
        )
        return self._advance(run)

    def _poll_transport(self, run: _StepRun) -> StepResult:
        package_id = self._require_package(run)

        def check():
            active = run.client.get_environment_package(
                run.target.app_slug, run.target.environment_name
            ).get("PackageId")
            return active == package_id, active

        pending = self._poll(
            run,
            check,
            subject="Transport",
            target_status=package_id,
            interval=REMOTE_JOB_POLL_INTERVAL,
            max_attempts=REMOTE_JOB_POLL_MAX_ATTEMPTS,
        )
        if pending:
            return pending
        run.log(
            LogLevelEnum.INFO,
            f"Package {package_id} is active on {run.target.environment_name}",
        )
        return self._advance(run)

    # Backup steps, their failures never fail the deployment

    def _create_backup(self, run: _StepRun) -> StepResult:
        try:
            environment_id = self._backup_environment_id(run)
            if not environment_id:
                run.log(
                    LogLevelEnum.WARNING,
                    "Environment id is unknown, continuing deployment without backup",
                )
                return self._advance(run)
            retried = IDEMPOTENCY_KEY in run.data
            key = self._checkpoint(run)
            step_data = {ENVIRONMENT_ID_KEY: environment_id}
            if retried:
                for backup in run.client.list_backups(
                    run.target.project_id, environment_id
                ):
                    if key in (backup.get("comment") or ""):
                        backup_id = backup.get("snapshot_id")
                        run.log(
                            LogLevelEnum.INFO,
                            f"Reusing backup {backup_id} created by a previous attempt",
                        )
                        return self._advance(
                            run, backup_id=backup_id, step_data=step_data
                        )
            backup_id = run.client.create_backup(
                run.target.project_id,
                environment_id,
                comment=f"Pre-deployment backup [{key}]",
            ).get("snapshot_id")
        except PlatformError as e:
            run.log(
                LogLevelEnum.WARNING,
                f"Backup creation failed, continuing deployment: {e}",
            )
            return self._advance(run)
        if not backup_id:
            run.log(
                LogLevelEnum.WARNING,
                "Backup creation returned no snapshot id, continuing deployment",
            )
            return self._advance(run)
        run.log(LogLevelEnum.INFO, f"Backup {backup_id} started")
        return self._advance(run, backup_id=backup_id, step_data=step_data)

    def _poll_backup(self, run: _StepRun) -> StepResult:
        backup_id = run.action.backup_id
        if not backup_id:
            run.log(LogLevelEnum.INFO, "No backup to wait for")
            return self._advance(run)

        def check():
            state = run.client.get_backup(
                run.target.project_id, environment_id, backup_id
            ).get("state")
            if state == BACKUP_FAILED_STATE:
                raise StepError(f"Backup {backup_id} failed")
            return state == BACKUP_COMPLETED_STATE, state

        try:
            environment_id = self._backup_environment_id(run)
            if not environment_id:
                raise StepError("environment id is unknown")
            pending = self._poll(
                run,
                check,
                subject="Backup",
                target_status=BACKUP_COMPLETED_STATE,
                interval=REMOTE_JOB_POLL_INTERVAL,
                max_attempts=REMOTE_JOB_POLL_MAX_ATTEMPTS,
            )
        except (PlatformError, StepError) as e:
            run.log(
                LogLevelEnum.WARNING,
                f"Backup {backup_id} did not complete, continuing deployment: {e}",
            )
            return self._advance(run)
        if pending:
            return pending
        run.log(LogLevelEnum.INFO, f"Backup {backup_id} completed")
        return self._advance(run)
