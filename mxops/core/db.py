# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker

from mxops.core.settings import get_settings

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def get_engine(dsn: Optional[str] = None) -> Engine:
    """Create a SQLAlchemy engine from a DSN.

    Falls back to the `MXOPS_DATABASE_DSN` setting when no DSN is given.
    """
    dsn = dsn or get_settings().DATABASE_DSN
    if not dsn:
        raise ValueError(
            "Database DSN must be provided via MXOPS_DATABASE_DSN environment variable."
        )
    return create_engine(dsn)


def get_session(engine: Optional[Engine] = None) -> Session:
    """Create a SQLAlchemy session from an engine."""
    engine = engine or get_engine()
    return sessionmaker(bind=engine)()
