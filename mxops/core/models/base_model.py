# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import DeclarativeBase

from mxops.core.utils import BaseEnum

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
# Longer texts (error messages, HTML templates) are cut in tables.
MAX_TEXT_LENGTH = 120


class BaseModel(DeclarativeBase):
    """Declarative base of the MX Ops tables."""

    def to_dict(
        self,
        *,
        filter_out: Optional[list[str]] = None,
        format: Optional[bool] = True,
    ) -> dict[str, Any]:
        """Convert the row to a dictionary keyed by column name.

        Args:
            filter_out: Columns to leave out.
            format: Whether to convert the values to printable strings.
        """
        excluded = set(filter_out or [])
        values = {}
        for column in self.__table__.columns:
            if column.name in excluded:
                continue
            value = getattr(self, column.name)
            values[column.name] = self._format_value(value) if format else value
        return values

    def __repr__(self):
        fields = ", ".join(f"{key}={value}" for key, value in self.to_dict().items())
        return f"{type(self).__name__}({fields})"

    @staticmethod
    def _format_value(value: Optional[Any]) -> str:
        if value is None:
            return ""
        if isinstance(value, BaseEnum):
            return value.value
        # Timestamps are naive UTC.
        if isinstance(value, datetime):
            return value.strftime(DATETIME_FORMAT)
        if isinstance(value, (dict, list)):
            value = json.dumps(value, sort_keys=True)
        text = str(value)
        if len(text) > MAX_TEXT_LENGTH:
            return text[: MAX_TEXT_LENGTH - 3] + "..."
        return text
