"""
PlaceShare Backend: Place SQLAlchemy Model
===========================================

What:  ORM model representing the `places` table.

Column notes:
    - location: JSON [longitude, latitude] as returned by the geocoder
    - image: relative path from storage root to the uploaded picture
    - creator_id: the single owning user; mirrored in User.places
    - saved: ids (as strings) of users who bookmarked this place; mirrored
      by one SavedPlace row per user
"""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import JSON, TIMESTAMP, ForeignKey, String, Text, Uuid
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column, relationship

from placeshare.database import Base


class Place(Base):
    __tablename__ = "places"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)

    location: Mapped[List[float]] = mapped_column(JSON, nullable=False)

    image: Mapped[str] = mapped_column(String(255), nullable=False)

    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    saved: Mapped[List[str]] = mapped_column(
        MutableList.as_mutable(JSON),
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Loaded on demand with selectinload(Place.creator); never lazily
    creator: Mapped["User"] = relationship(lazy="raise")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Place(id={self.id}, title='{self.title}', creator_id={self.creator_id})>"
