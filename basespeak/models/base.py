"""
Shared columns for user-owned rows.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


class OwnedBase(Base):
    """
    Every avatar and message belongs to exactly one user; lookups always
    filter on user_id. Timestamps are set in Python so they are readable
    right after a flush, without a refresh.
    """

    __abstract__ = True

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def touch(self) -> None:
        """Bump updated_at. created_at never changes."""
        self.updated_at = utcnow()
