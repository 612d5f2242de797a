from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Import ORM models so that their tables are registered on Base.metadata.
from meeting_scheduler.models import meeting as _meeting  # noqa: F401,E402
