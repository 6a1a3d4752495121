# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from mxops.core.actions.steps import StepEnum
from mxops.core.models.enums import LogLevelEnum


@dataclass
class StepResult:
    """Outcome of one step.

    Exactly one of `completed`, `next_step` or `error` is set.
    """

    completed: bool = False
    next_step: Optional[StepEnum] = None
    step_data: dict[str, Any] = field(default_factory=dict)
    package_id: Optional[str] = None
    backup_id: Optional[str] = None
    error: Optional[str] = None
    fatal: bool = False
    logs: list[tuple[LogLevelEnum, str]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: str, fatal: bool = False) -> StepResult:
        return cls(error=error, fatal=fatal)
