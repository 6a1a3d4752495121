# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, NamedTuple, Optional

from sqlalchemy import Engine, and_, delete, desc, func, or_, select, update
from sqlalchemy.orm import sessionmaker

from mxops.core.constants import (
    ACTION_RETENTION_DAYS,
    DEFAULT_BATCH_SIZE,
    LOG_RETENTION_DAYS,
    MAX_ATTEMPTS,
    ORPHAN_ACTION_HOURS,
    RETRY_BACKOFF_SECONDS,
    STALE_HEARTBEAT_SECONDS,
)
from mxops.core.exceptions import ActionStateError
from mxops.core.models import (
    ActionStatusEnum,
    ActionTypeEnum,
    CloudActionLogModel,
    CloudActionModel,
    EmailTemplateModel,
    EnvironmentLockModel,
    LogLevelEnum,
    MendixAppModel,
    MendixCredentialModel,
    MendixEnvironmentModel,
    NotificationEmailAddressModel,
    TemplateTypeEnum,
)
from mxops.core.platform.client import normalize_environment_name
from mxops.core.utils import utcnow

logger = logging.getLogger(__name__)


class CleanupReport(NamedTuple):
    abandoned_actions: int
    deleted_actions: int
    deleted_logs: int


def _create_due_filter(now: datetime):
    """Create the filter matching actions that a worker may pick up.

    Scheduled actions are due once `scheduled_for` is reached, running actions
    once their heartbeat is stale (or was never written).
    """
    stale_before = now - timedelta(seconds=STALE_HEARTBEAT_SECONDS)
    return and_(
        or_(
            and_(
                CloudActionModel.status == ActionStatusEnum.SCHEDULED,
                or_(
                    CloudActionModel.scheduled_for.is_(None),
                    CloudActionModel.scheduled_for <= now,
                ),
            ),
            and_(
                CloudActionModel.status == ActionStatusEnum.RUNNING,
                or_(
                    CloudActionModel.last_heartbeat.is_(None),
                    CloudActionModel.last_heartbeat < stale_before,
                ),
            ),
        ),
        CloudActionModel.attempt_count < MAX_ATTEMPTS,
    )


class Dao:
    def __init__(self, engine: Engine, commit_on_exit: bool = False):
        self.session_maker = sessionmaker(bind=engine, expire_on_commit=False)
        self.commit_on_exit = commit_on_exit
        self._session = None

    def __enter__(self):
        self._session = self.session_maker()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type:
            self._session.rollback()
        elif self.commit_on_exit:
            self._session.commit()
        self._session.close()

    def _check_session(self):
        if self._session is None:
            raise Exception("Session not initialized")

    @property
    def session(self):
        self._check_session()
        return self._session

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # Action submission and lookup

    def create_action(
        self,
        *,
        user_id: str,
        credential_id: str,
        app_id: str,
        environment_name: str,
        action_type: ActionTypeEnum,
        payload: Optional[dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
        retry_until: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> CloudActionModel:
        """Insert a scheduled action.

        Args:
            user_id: Owner of the action.
            credential_id: Credential used to call the platform.
            app_id: Platform project id of the app.
            environment_name: Target environment name.
            action_type: Type of the action.
            payload: Type specific parameters (deploy and transport).
            scheduled_for: Earliest time the action may run, now if not set.
            retry_until: Deadline of the polling steps, derived from the start
              time of the action if not set.
        """
        now = now or utcnow()
        action = CloudActionModel(
            user_id=user_id,
            credential_id=credential_id,
            app_id=app_id,
            environment_name=environment_name,
            action_type=ActionTypeEnum(action_type),
            status=ActionStatusEnum.SCHEDULED,
            payload=payload or None,
            scheduled_for=scheduled_for,
            retry_until=retry_until,
            attempt_count=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(action)
        self.session.flush()
        logger.info(
            f"Scheduled {action.action_type.value} action {action.id} on "
            f"{app_id}/{environment_name}"
        )
        return action

    def get_action(self, id: str) -> Optional[CloudActionModel]:
        """Get an action by ID.

        Args:
            id: Action ID.
        """
        self._check_session()
        return self.session.get(CloudActionModel, id)

    def get_actions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[ActionStatusEnum] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[CloudActionModel]:
        """Get the most recent actions first.

        Use limit and offset to paginate the results.
        """
        self._check_session()
        stmt = select(CloudActionModel).order_by(desc(CloudActionModel.created_at))
        if user_id:
            stmt = stmt.where(CloudActionModel.user_id == user_id)
        if status:
            stmt = stmt.where(CloudActionModel.status == status)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return list(self.session.scalars(stmt))

    def get_logs(self, action_id: str) -> list[CloudActionLogModel]:
        """Get the log entries of an action in insertion order."""
        self._check_session()
        return list(
            self.session.scalars(
                select(CloudActionLogModel)
                .where(CloudActionLogModel.action_id == action_id)
                .order_by(CloudActionLogModel.id)
            )
        )

    # Orchestration

    def fetch_due(
        self,
        *,
        action_ids: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
        limit: int = DEFAULT_BATCH_SIZE,
        now: Optional[datetime] = None,
    ) -> list[CloudActionModel]:
        """Get the actions that are ready to be processed.

        Args:
            action_ids: Only consider these actions.
            user_id: Only consider the actions of this user.
            limit: Maximum number of actions returned.
        """
        self._check_session()
        now = now or utcnow()
        stmt = select(CloudActionModel).where(_create_due_filter(now))
        if action_ids is not None:
            stmt = stmt.where(CloudActionModel.id.in_(list(action_ids)))
        if user_id:
            stmt = stmt.where(CloudActionModel.user_id == user_id)
        stmt = stmt.order_by(CloudActionModel.created_at).limit(limit)
        return list(self.session.scalars(stmt))

    def mark_running(
        self,
        action: CloudActionModel,
        worker_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Claim an action for a worker.

        The claim is a conditional update that only matches while the action is
        still due, so at most one of several concurrent workers gets it.

        Returns:
            Whether the claim succeeded.

        Raises:
            ActionStateError: If the action is in a terminal state.
        """
        self._check_session()
        if action.status.is_terminal:
            raise ActionStateError(action.id, action.status.value, "start")
        now = now or utcnow()
        result = self.session.execute(
            update(CloudActionModel)
            .where(CloudActionModel.id == action.id, _create_due_filter(now))
            .values(
                status=ActionStatusEnum.RUNNING,
                started_at=func.coalesce(CloudActionModel.started_at, now),
                last_heartbeat=now,
                worker_id=worker_id,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(action)
        if result.rowcount != 1:
            logger.debug(f"Action {action.id} was claimed by another worker")
            return False
        return True

    def _check_running(self, action: CloudActionModel, operation: str) -> None:
        if action.status != ActionStatusEnum.RUNNING:
            raise ActionStateError(action.id, action.status.value, operation)

    def heartbeat(
        self,
        action: CloudActionModel,
        step_data: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Refresh the heartbeat of a running action, optionally saving step data."""
        self._check_running(action, "heartbeat")
        now = now or utcnow()
        if step_data is not None:
            action.step_data = dict(step_data)
        action.last_heartbeat = now
        action.updated_at = now
        self.session.flush()

    def advance(
        self,
        action: CloudActionModel,
        next_step: str,
        step_data: Optional[dict[str, Any]] = None,
        *,
        package_id: Optional[str] = None,
        backup_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Persist the step cursor of a running action.

        Carried ids are kept when not provided.
        """
        self._check_running(action, "advance")
        now = now or utcnow()
        action.current_step = next_step
        action.step_data = dict(step_data) if step_data else None
        if package_id:
            action.package_id = package_id
        if backup_id:
            action.backup_id = backup_id
        action.last_heartbeat = now
        action.updated_at = now
        self.session.flush()

    def succeed(
        self,
        action: CloudActionModel,
        *,
        package_id: Optional[str] = None,
        backup_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._check_running(action, "complete")
        now = now or utcnow()
        if package_id:
            action.package_id = package_id
        if backup_id:
            action.backup_id = backup_id
        action.status = ActionStatusEnum.SUCCEEDED
        action.completed_at = now
        action.current_step = None
        action.last_heartbeat = now
        action.updated_at = now
        self.session.flush()

    def fail_or_retry(
        self,
        action: CloudActionModel,
        error_message: str,
        is_fatal: bool = False,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record a step failure.

        The action is failed when it is fatal or when the maximum number of
        attempts is reached, otherwise it is scheduled again after a backoff of
        one minute per attempt.

        Returns:
            Whether the action reached the failed state.
        """
        self._check_running(action, "fail")
        now = now or utcnow()
        action.attempt_count = (action.attempt_count or 0) + 1
        action.error_message = error_message
        action.last_heartbeat = now
        action.updated_at = now
        if is_fatal or action.attempt_count >= MAX_ATTEMPTS:
            action.status = ActionStatusEnum.FAILED
            action.completed_at = now
            action.current_step = None
            self.session.flush()
            return True
        action.status = ActionStatusEnum.SCHEDULED
        action.scheduled_for = now + timedelta(
            seconds=action.attempt_count * RETRY_BACKOFF_SECONDS
        )
        self.session.flush()
        return False

    def append_log(
        self,
        action: CloudActionModel,
        level: LogLevelEnum,
        message: str,
        now: Optional[datetime] = None,
    ) -> CloudActionLogModel:
        log = CloudActionLogModel(
            action_id=action.id,
            user_id=action.user_id,
            level=LogLevelEnum(level),
            message=message,
            created_at=now or utcnow(),
        )
        self.session.add(log)
        self.session.flush()
        return log

    # Environment lock

    def acquire_environment_lock(
        self, action: CloudActionModel, now: Optional[datetime] = None
    ) -> bool:
        """Take the lock of the environment targeted by an action.

        A lock left by a terminal or deleted action is taken over.

        Returns:
            Whether the action holds the lock.
        """
        self._check_session()
        key = (action.app_id, normalize_environment_name(action.environment_name))
        lock = self.session.get(EnvironmentLockModel, key)
        if lock is not None and lock.action_id != action.id:
            holder = self.session.get(CloudActionModel, lock.action_id)
            if holder is not None and not holder.status.is_terminal:
                logger.debug(
                    f"Environment {key[0]}/{key[1]} is locked by action {holder.id}"
                )
                return False
            self.session.delete(lock)
            self.session.flush()
            lock = None
        if lock is None:
            self.session.add(
                EnvironmentLockModel(
                    app_id=key[0],
                    environment_name=key[1],
                    action_id=action.id,
                    acquired_at=now or utcnow(),
                )
            )
            self.session.flush()
        return True

    def release_environment_lock(self, action: CloudActionModel) -> None:
        self._check_session()
        self.session.execute(
            delete(EnvironmentLockModel).where(
                EnvironmentLockModel.app_id == action.app_id,
                EnvironmentLockModel.environment_name
                == normalize_environment_name(action.environment_name),
                EnvironmentLockModel.action_id == action.id,
            )
        )

    # Retention

    def cleanup(self, now: Optional[datetime] = None) -> CleanupReport:
        """Apply the retention policy.

        Running actions that never wrote a heartbeat are failed after an hour,
        terminal actions are deleted after a week and logs after a month.
        """
        self._check_session()
        now = now or utcnow()
        abandoned = self.session.execute(
            update(CloudActionModel)
            .where(
                CloudActionModel.status == ActionStatusEnum.RUNNING,
                CloudActionModel.last_heartbeat.is_(None),
                CloudActionModel.created_at
                < now - timedelta(hours=ORPHAN_ACTION_HOURS),
            )
            .values(
                status=ActionStatusEnum.FAILED,
                error_message="Action abandoned without heartbeat",
                current_step=None,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        deleted_actions = self.session.execute(
            delete(CloudActionModel)
            .where(
                CloudActionModel.status.in_(
                    [ActionStatusEnum.SUCCEEDED, ActionStatusEnum.FAILED]
                ),
                CloudActionModel.completed_at
                < now - timedelta(days=ACTION_RETENTION_DAYS),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        deleted_logs = self.session.execute(
            delete(CloudActionLogModel)
            .where(
                CloudActionLogModel.created_at
                < now - timedelta(days=LOG_RETENTION_DAYS)
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        logger.info(
            f"Cleanup: {abandoned} abandoned actions failed, {deleted_actions} "
            f"actions and {deleted_logs} logs deleted"
        )
        return CleanupReport(abandoned, deleted_actions, deleted_logs)

    # Collaborator records

    def get_credential(
        self, credential_id: str, user_id: str
    ) -> Optional[MendixCredentialModel]:
        self._check_session()
        return self.session.scalars(
            select(MendixCredentialModel).where(
                MendixCredentialModel.id == credential_id,
                MendixCredentialModel.user_id == user_id,
            )
        ).one_or_none()

    def get_app(self, project_id: str, user_id: str) -> Optional[MendixAppModel]:
        self._check_session()
        return self.session.get(MendixAppModel, (project_id, user_id))

    def get_environment(
        self, user_id: str, app_id: str, environment_name: str
    ) -> Optional[MendixEnvironmentModel]:
        """Get an environment by name, ignoring case."""
        self._check_session()
        return self.session.scalars(
            select(MendixEnvironmentModel).where(
                MendixEnvironmentModel.user_id == user_id,
                MendixEnvironmentModel.app_id == app_id,
                func.lower(MendixEnvironmentModel.environment_name)
                == environment_name.lower(),
            )
        ).first()

    def get_email_template(
        self, user_id: str, template_type: TemplateTypeEnum
    ) -> Optional[EmailTemplateModel]:
        self._check_session()
        return self.session.scalars(
            select(EmailTemplateModel).where(
                EmailTemplateModel.user_id == user_id,
                EmailTemplateModel.template_type == template_type,
            )
        ).one_or_none()

    def get_notification_recipients(
        self, user_id: str
    ) -> list[NotificationEmailAddressModel]:
        self._check_session()
        return list(
            self.session.scalars(
                select(NotificationEmailAddressModel).where(
                    NotificationEmailAddressModel.user_id == user_id,
                    NotificationEmailAddressModel.is_active.is_(True),
                    NotificationEmailAddressModel.cloud_action_notifications_enabled.is_(
                        True
                    ),
                )
            )
        )
