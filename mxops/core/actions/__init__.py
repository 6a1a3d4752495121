# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from mxops.core.actions.orchestrator import Orchestrator, OutcomeEnum, RunReport
from mxops.core.actions.step_executor import StepExecutor
from mxops.core.actions.step_result import StepResult
from mxops.core.actions.steps import WORKFLOWS, StepEnum
