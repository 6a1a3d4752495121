# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import socket
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import IntegrityError

from mxops.core.actions.step_executor import StepExecutor
from mxops.core.actions.steps import initial_step
from mxops.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_POLL_BUDGET_SECONDS,
    DEFAULT_RUN_BUDGET_SECONDS,
    MAX_ATTEMPTS,
)
from mxops.core.exceptions import StepCrashedError, is_fatal_error
from mxops.core.models import ActionStatusEnum, CloudActionModel, LogLevelEnum
from mxops.core.utils import BaseEnum, utcnow
from mxops.dao import Dao

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from mxops.core.models import MendixCredentialModel
    from mxops.core.notifications import Notifier
    from mxops.core.platform import PlatformClient

logger = logging.getLogger(__name__)


class OutcomeEnum(BaseEnum):
    """What happened to an action during a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REQUEUED = "requeued"
    ADVANCED = "advanced"
    SKIPPED = "skipped"


@dataclass
class RunReport:
    succeeded: int = 0
    failed: int = 0
    requeued: int = 0
    advanced: int = 0
    skipped: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.requeued + self.advanced

    def record(self, outcome: OutcomeEnum) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


class Orchestrator:
    """Process the due cloud actions, one step per action and per run.

    Each action is handled in its own transaction. An unexpected exception
    while processing an action is recorded as a failure of that action,
    retryable unless its message is fatal, and the batch goes on.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        worker_id: Optional[str] = None,
        client_factory: Optional[
            Callable[[MendixCredentialModel], PlatformClient]
        ] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        batch_size: int = DEFAULT_BATCH_SIZE,
        run_budget: int = DEFAULT_RUN_BUDGET_SECONDS,
        poll_budget: int = DEFAULT_POLL_BUDGET_SECONDS,
    ):
        self.engine = engine
        self.worker_id = worker_id or default_worker_id()
        self.client_factory = client_factory
        self.notifier = notifier
        self.clock = clock
        self.sleep = sleep
        self.batch_size = batch_size
        self.run_budget = run_budget
        self.poll_budget = poll_budget

    def run(
        self,
        action_ids: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
    ) -> RunReport:
        """Process a batch of due actions.

        Args:
            action_ids: Only process these actions.
            user_id: Only process the actions of this user.

        Returns:
            Counters of the outcomes.
        """
        report = RunReport()
        started = self.clock()
        with Dao(self.engine) as dao:
            due_ids = [
                action.id
                for action in dao.fetch_due(
                    action_ids=action_ids,
                    user_id=user_id,
                    limit=self.batch_size,
                    now=started,
                )
            ]
        logger.info(f"{len(due_ids)} action(s) due")
        for index, action_id in enumerate(due_ids):
            if (self.clock() - started).total_seconds() > self.run_budget:
                logger.info(
                    f"Run budget of {self.run_budget}s exhausted, "
                    f"{len(due_ids) - index} action(s) left for the next run"
                )
                break
            report.record(self._process(action_id))
        return report

    def _process(self, action_id: str) -> OutcomeEnum:
        with Dao(self.engine) as dao:
            try:
                action = self._claim(dao, action_id)
            except IntegrityError:
                # Another worker took the environment lock concurrently.
                logger.info(f"Skipping action {action_id}: lost the environment lock")
                dao.rollback()
                return OutcomeEnum.SKIPPED
            if action is None:
                return OutcomeEnum.SKIPPED
            step = action.current_step or initial_step(action.action_type).value
            try:
                outcome = self._execute_step(dao, action, step)
            except Exception as e:
                logger.exception(f"Unexpected error in action {action.id}")
                dao.rollback()
                if isinstance(e, StepCrashedError):
                    for level, message in e.logs:
                        self._log(dao, action, level, message)
                error = f"Unexpected error: {e}"
                outcome = self._fail(dao, action, step, error, is_fatal_error(str(e)))
            dao.commit()
        if self.notifier and outcome in (OutcomeEnum.SUCCEEDED, OutcomeEnum.FAILED):
            self.notifier.notify(action, success=outcome == OutcomeEnum.SUCCEEDED)
        return outcome

    def _claim(self, dao: Dao, action_id: str) -> Optional[CloudActionModel]:
        """Lock the environment and claim the action.

        Returns:
            The claimed action, None when it can not be processed now.
        """
        action = dao.get_action(action_id)
        now = self.clock()
        if action is None or action.status.is_terminal:
            return None
        resumed = action.status == ActionStatusEnum.RUNNING
        if not dao.acquire_environment_lock(action, now=now):
            logger.info(
                f"Skipping action {action.id}: {action.app_id}/"
                f"{action.environment_name} is busy"
            )
            dao.rollback()
            return None
        if not dao.mark_running(action, self.worker_id, now=now):
            dao.rollback()
            return None

        if resumed and action.current_step:
            message = f"Resuming stale action from step: {action.current_step}"
        elif resumed:
            message = "Resuming action without heartbeat"
        elif action.current_step is None and action.attempt_count == 0:
            message = (
                f"Starting {action.action_type} action on {action.environment_name}"
            )
        else:
            step = action.current_step or initial_step(action.action_type).value
            message = (
                f"Retrying step {step} "
                f"(attempt {action.attempt_count + 1}/{MAX_ATTEMPTS})"
            )
        self._log(dao, action, LogLevelEnum.INFO, message)
        dao.commit()
        return action

    def _execute_step(
        self, dao: Dao, action: CloudActionModel, step: str
    ) -> OutcomeEnum:
        executor = StepExecutor(
            dao,
            client_factory=self.client_factory,
            clock=self.clock,
            sleep=self.sleep,
            poll_budget=self.poll_budget,
        )
        result = executor.execute(action)
        for level, message in result.logs:
            self._log(dao, action, level, message)

        if result.failed:
            fatal = result.fatal or is_fatal_error(result.error)
            return self._fail(dao, action, step, result.error, fatal)
        if result.completed:
            dao.succeed(
                action,
                package_id=result.package_id,
                backup_id=result.backup_id,
                now=self.clock(),
            )
            self._log(
                dao,
                action,
                LogLevelEnum.INFO,
                f"{action.action_type.value.capitalize()} action completed "
                "successfully",
            )
            dao.release_environment_lock(action)
            return OutcomeEnum.SUCCEEDED
        dao.advance(
            action,
            result.next_step.value,
            result.step_data,
            package_id=result.package_id,
            backup_id=result.backup_id,
            now=self.clock(),
        )
        if result.next_step != step:
            self._log(
                dao,
                action,
                LogLevelEnum.INFO,
                f"Step {step} completed, next step: {result.next_step}",
            )
        return OutcomeEnum.ADVANCED

    def _fail(
        self,
        dao: Dao,
        action: CloudActionModel,
        step: str,
        error: str,
        fatal: bool,
    ) -> OutcomeEnum:
        terminal = dao.fail_or_retry(action, error, is_fatal=fatal, now=self.clock())
        if terminal:
            self._log(
                dao,
                action,
                LogLevelEnum.ERROR,
                f"Action failed at step {step}: {error}",
            )
            dao.release_environment_lock(action)
            return OutcomeEnum.FAILED
        self._log(
            dao,
            action,
            LogLevelEnum.WARNING,
            f"Step {step} failed (attempt {action.attempt_count}/{MAX_ATTEMPTS}), "
            f"retrying after {action.scheduled_for}: {error}",
        )
        return OutcomeEnum.REQUEUED

    def _log(
        self,
        dao: Dao,
        action: CloudActionModel,
        level: LogLevelEnum,
        message: str,
    ) -> None:
        dao.append_log(action, level, message, now=self.clock())
