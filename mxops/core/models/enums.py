# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from mxops.core.utils import BaseEnum


class ActionStatusEnum(BaseEnum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ActionStatusEnum.SUCCEEDED, ActionStatusEnum.FAILED)


class ActionTypeEnum(BaseEnum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    DEPLOY = "deploy"
    TRANSPORT = "transport"


class LogLevelEnum(BaseEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class TemplateTypeEnum(BaseEnum):
    """Email template used on a terminal transition."""

    SUCCESS = "cloud_action_success"
    FAILURE = "cloud_action_failure"
