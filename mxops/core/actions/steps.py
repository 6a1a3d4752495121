# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Optional

from mxops.core.exceptions import StepError
from mxops.core.models.enums import ActionTypeEnum
from mxops.core.utils import BaseEnum


class StepEnum(BaseEnum):
    CALL_START = "call_start"
    POLL_STARTED = "poll_started"
    CALL_STOP = "call_stop"
    POLL_STOPPED = "poll_stopped"
    CREATE_PACKAGE = "create_package"
    POLL_PACKAGE = "poll_package"
    TRANSPORT = "transport"
    POLL_TRANSPORT = "poll_transport"
    STOP_ENV = "stop_env"
    CREATE_BACKUP = "create_backup"
    POLL_BACKUP = "poll_backup"
    START_ENV = "start_env"
    RETRIEVE_SOURCE_PACKAGE = "retrieve_source_package"


# Ordered steps of each action type, the first one is the initial step.
WORKFLOWS: dict[ActionTypeEnum, tuple[StepEnum, ...]] = {
    ActionTypeEnum.START: (StepEnum.CALL_START, StepEnum.POLL_STARTED),
    ActionTypeEnum.STOP: (StepEnum.CALL_STOP,),
    ActionTypeEnum.RESTART: (
        StepEnum.CALL_STOP,
        StepEnum.POLL_STOPPED,
        StepEnum.CALL_START,
        StepEnum.POLL_STARTED,
    ),
    ActionTypeEnum.DEPLOY: (
        StepEnum.CREATE_PACKAGE,
        StepEnum.POLL_PACKAGE,
        StepEnum.TRANSPORT,
        StepEnum.POLL_TRANSPORT,
        StepEnum.STOP_ENV,
        StepEnum.POLL_STOPPED,
        StepEnum.CREATE_BACKUP,
        StepEnum.POLL_BACKUP,
        StepEnum.START_ENV,
        StepEnum.POLL_STARTED,
    ),
    ActionTypeEnum.TRANSPORT: (
        StepEnum.RETRIEVE_SOURCE_PACKAGE,
        StepEnum.TRANSPORT,
        StepEnum.POLL_TRANSPORT,
    ),
}


def get_workflow(action_type: ActionTypeEnum) -> tuple[StepEnum, ...]:
    try:
        return WORKFLOWS[ActionTypeEnum(action_type)]
    except (KeyError, ValueError) as e:
        raise StepError(f"FATAL: unknown action type {action_type}") from e


def initial_step(action_type: ActionTypeEnum) -> StepEnum:
    return get_workflow(action_type)[0]


def parse_step(action_type: ActionTypeEnum, step: Optional[str]) -> StepEnum:
    """Get the step to execute for an action type.

    A missing step resolves to the initial step of the workflow.

    Raises:
        StepError: A fatal error if the step is unknown or does not belong to
          the workflow of the action type.
    """
    workflow = get_workflow(action_type)
    if step is None:
        return workflow[0]
    if step not in StepEnum:
        raise StepError(f"FATAL: unknown step {step}")
    step = StepEnum(step)
    if step not in workflow:
        raise StepError(f"FATAL: step {step} is not part of a {action_type} action")
    return step


def next_step(action_type: ActionTypeEnum, step: StepEnum) -> Optional[StepEnum]:
    """Get the step following `step`, None when `step` is the last one."""
    workflow = get_workflow(action_type)
    index = workflow.index(step)
    if index + 1 < len(workflow):
        return workflow[index + 1]
    return None
