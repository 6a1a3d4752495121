# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from mxops.core.constants import ENVIRONMENT_NAME_MAX_LENGTH, ID_MAX_LENGTH
from mxops.core.models.base_model import BaseModel


class EnvironmentLockModel(BaseModel):
    """Marks the single active action of an app environment."""

    __tablename__ = "environment_lock"

    app_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), primary_key=True)
    environment_name: Mapped[str] = mapped_column(
        String(ENVIRONMENT_NAME_MAX_LENGTH), primary_key=True
    )
    action_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), doc="Action holding the lock."
    )
    acquired_at: Mapped[datetime] = mapped_column(doc="Acquisition time.")
