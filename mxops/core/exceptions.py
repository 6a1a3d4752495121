# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from typing import Optional

from mxops.core.utils import BaseEnum

FATAL_PREFIX = "FATAL:"
FATAL_MARKERS = ("APP_NOT_FOUND", "INVALID_CREDENTIALS")


def is_fatal_error(message: Optional[str]) -> bool:
    """Whether an error message follows the non-retryable error convention."""
    if not message:
        return False
    return message.startswith(FATAL_PREFIX) or any(
        marker in message for marker in FATAL_MARKERS
    )


class ErrorKindEnum(BaseEnum):
    """Kind of a platform failure, derived from the HTTP status code."""

    NOT_FOUND = "NotFound"
    UNAUTHORIZED = "Unauthorized"
    RATE_LIMITED = "RateLimited"
    UNKNOWN = "Unknown"

    @classmethod
    def from_status_code(cls, status_code: Optional[int]) -> "ErrorKindEnum":
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code in (401, 403):
            return cls.UNAUTHORIZED
        if status_code == 429:
            return cls.RATE_LIMITED
        return cls.UNKNOWN


class PlatformError(Exception):
    """A single platform API call failed."""

    def __init__(
        self,
        operation: str,
        status_code: Optional[int] = None,
        body: str = "",
        kind: Optional[ErrorKindEnum] = None,
    ):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        self.kind = kind or ErrorKindEnum.from_status_code(status_code)
        if status_code is None:
            message = f"Platform API {operation} failed: {body}"
        else:
            message = f"Platform API {operation} failed: {status_code} - {body}"
        super().__init__(message)

    @property
    def fatal(self) -> bool:
        return self.kind in (ErrorKindEnum.NOT_FOUND, ErrorKindEnum.UNAUTHORIZED)


class StepError(Exception):
    """A step could not complete its unit of work."""

    def __init__(self, message: str, fatal: bool = False):
        super().__init__(message)
        self.fatal = fatal or is_fatal_error(message)


class LookupFailedError(StepError):
    """Credential, app or environment records needed by a step are missing."""


class ActionStateError(Exception):
    """An operation is not allowed in the current status of an action."""

    def __init__(self, action_id: str, status: str, operation: str):
        super().__init__(
            f"Cannot {operation} action {action_id}: action is {status}."
        )
        self.action_id = action_id
        self.status = status


class StepCrashedError(Exception):
    """A step raised an unexpected exception.

    Carries the logs collected by the step before the exception.
    """

    def __init__(self, message: str, logs: list):
        super().__init__(message)
        self.logs = logs
