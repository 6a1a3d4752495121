# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mxops.core.constants import ID_MAX_LENGTH
from mxops.core.models.base_model import BaseModel
from mxops.core.models.enums import LogLevelEnum
from mxops.core.utils import utcnow


class CloudActionLogModel(BaseModel):
    """Append-only progress message of a cloud action."""

    __tablename__ = "cloud_action_log"

    id: Mapped[int] = mapped_column(primary_key=True, doc="Log entry id.")
    action_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), index=True, doc="Action id."
    )
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    level: Mapped[LogLevelEnum] = mapped_column(doc="Log level.")
    message: Mapped[str] = mapped_column(Text, doc="Log message.")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, doc="Log time.")
