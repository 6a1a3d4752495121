# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from typing import Optional

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mxops.core.constants import ID_MAX_LENGTH
from mxops.core.models.base_model import BaseModel
from mxops.core.models.enums import TemplateTypeEnum


class EmailTemplateModel(BaseModel):
    __tablename__ = "email_template"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    template_type: Mapped[TemplateTypeEnum] = mapped_column(doc="Template type.")
    subject_template: Mapped[str] = mapped_column(Text, doc="Subject template.")
    html_template: Mapped[str] = mapped_column(Text, doc="HTML body template.")

    __table_args__ = (UniqueConstraint("user_id", "template_type"),)


class NotificationEmailAddressModel(BaseModel):
    __tablename__ = "notification_email_address"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    email_address: Mapped[str] = mapped_column(String(255), doc="Email address.")
    display_name: Mapped[Optional[str]] = mapped_column(
        String(255), doc="Recipient name."
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    cloud_action_notifications_enabled: Mapped[bool] = mapped_column(default=True)
