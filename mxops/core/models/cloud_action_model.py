# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mxops.core.constants import (
    ENVIRONMENT_NAME_MAX_LENGTH,
    ID_MAX_LENGTH,
    STEP_NAME_MAX_LENGTH,
)
from mxops.core.models.base_model import BaseModel
from mxops.core.models.enums import ActionStatusEnum, ActionTypeEnum
from mxops.core.utils import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class CloudActionModel(BaseModel):
    """Cloud action model.

    One requested lifecycle operation on a Mendix environment, with its step
    cursor and retry bookkeeping.
    """

    __tablename__ = "cloud_action"

    id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), primary_key=True, default=_new_id, doc="Action id."
    )
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    credential_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), doc="Credential used to call the platform."
    )
    app_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), doc="Platform project id of the app."
    )
    environment_name: Mapped[str] = mapped_column(
        String(ENVIRONMENT_NAME_MAX_LENGTH), doc="Target environment name."
    )
    action_type: Mapped[ActionTypeEnum] = mapped_column(doc="Action type.")
    status: Mapped[ActionStatusEnum] = mapped_column(
        default=ActionStatusEnum.SCHEDULED, doc="Action status."
    )
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON(none_as_null=True), doc="Type specific parameters."
    )
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(
        doc="Earliest time the action may run."
    )
    retry_until: Mapped[Optional[datetime]] = mapped_column(
        doc="Deadline for the polling steps."
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(doc="Start time.")
    completed_at: Mapped[Optional[datetime]] = mapped_column(doc="Completion time.")
    current_step: Mapped[Optional[str]] = mapped_column(
        String(STEP_NAME_MAX_LENGTH), doc="Next step to execute."
    )
    step_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON(none_as_null=True), doc="State carried between steps."
    )
    package_id: Mapped[Optional[str]] = mapped_column(
        String(ID_MAX_LENGTH), doc="Package created or transported by the action."
    )
    backup_id: Mapped[Optional[str]] = mapped_column(
        String(ID_MAX_LENGTH), doc="Snapshot created by the action."
    )
    attempt_count: Mapped[int] = mapped_column(default=0, doc="Step failures so far.")
    last_heartbeat: Mapped[Optional[datetime]] = mapped_column(
        doc="Last time a worker touched the action."
    )
    worker_id: Mapped[Optional[str]] = mapped_column(
        String(ID_MAX_LENGTH), doc="Worker holding the lease."
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, doc="Last failure.")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, doc="Creation time.")
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, doc="Last update time."
    )

    def _formater(self, key: str, value: Optional[Any]) -> str:
        if key == "step_data" and value:
            return ", ".join(f"{k}={v}" for k, v in value.items())
        return super()._formater(key, value)
