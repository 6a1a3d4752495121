# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from datetime import datetime
from typing import Optional

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mxops.core.constants import ENVIRONMENT_NAME_MAX_LENGTH, ID_MAX_LENGTH
from mxops.core.models.base_model import BaseModel
from mxops.core.utils import utcnow


class MendixCredentialModel(BaseModel):
    """Platform API credential of a user."""

    __tablename__ = "mendix_credential"

    id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), primary_key=True, doc="Credential id."
    )
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    name: Mapped[Optional[str]] = mapped_column(String(255), doc="Display name.")
    username: Mapped[str] = mapped_column(String(255), doc="Platform username.")
    api_key: Mapped[Optional[str]] = mapped_column(String(255), doc="API key.")
    pat: Mapped[Optional[str]] = mapped_column(
        String(255), doc="Personal access token."
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    def _formater(self, key, value):
        if key in ("api_key", "pat") and value:
            return "********"
        return super()._formater(key, value)


class MendixAppModel(BaseModel):
    """App known to a credential."""

    __tablename__ = "mendix_app"

    project_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), primary_key=True, doc="Platform project id."
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), primary_key=True, doc="Owner id."
    )
    credential_id: Mapped[Optional[str]] = mapped_column(
        String(ID_MAX_LENGTH), doc="Credential the app was fetched with."
    )
    app_id: Mapped[Optional[str]] = mapped_column(
        String(ID_MAX_LENGTH), doc="App slug used by the deploy API."
    )
    app_name: Mapped[Optional[str]] = mapped_column(String(255), doc="Display name.")


class MendixEnvironmentModel(BaseModel):
    """Environment of an app."""

    __tablename__ = "mendix_environment"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(ID_MAX_LENGTH), doc="Owner id.")
    app_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), doc="App slug of the environment."
    )
    environment_id: Mapped[str] = mapped_column(
        String(ID_MAX_LENGTH), doc="Platform environment id."
    )
    environment_name: Mapped[str] = mapped_column(
        String(ENVIRONMENT_NAME_MAX_LENGTH), doc="Environment name."
    )
    status: Mapped[Optional[str]] = mapped_column(String(40), doc="Last known status.")
    url: Mapped[Optional[str]] = mapped_column(String(255), doc="Environment URL.")

    __table_args__ = (UniqueConstraint("user_id", "app_id", "environment_name"),)
