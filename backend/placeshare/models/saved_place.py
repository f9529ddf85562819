"""
PlaceShare Backend: SavedPlace SQLAlchemy Model
================================================

What:  One bookmark: user `user_id` saved place `place_id`.
How:   `snapshot` is a copy of the place taken at save time. Later edits to
       the place do not propagate into it.

The composite primary key makes a second save of the same place by the
same user impossible at the storage level.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, TIMESTAMP, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from placeshare.database import Base


class SavedPlace(Base):
    __tablename__ = "saved_places"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        primary_key=True,
    )

    # Indexed for "which users saved any of these places" purges
    place_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("places.id"),
        primary_key=True,
        index=True,
    )

    snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    saved_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user: Mapped["User"] = relationship(back_populates="saved_places")  # noqa: F821

    def __repr__(self) -> str:
        return f"<SavedPlace(user_id={self.user_id}, place_id={self.place_id})>"
