"""
PlaceShare Backend: User SQLAlchemy Model
==========================================

What:  ORM model representing the `users` table.
Who:   Loaded and mutated by the document store on behalf of the services.

Denormalized lists:
    - places:        ordered Place ids this user created (ownership list);
                     kept in step with Place.creator_id by the consistency manager
    - saved_places:  SavedPlace rows holding snapshots of bookmarked places;
                     kept in step with Place.saved
"""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import JSON, TIMESTAMP, String, Uuid
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column, relationship

from placeshare.database import Base


class User(Base):
    """
    Represents a registered user.

    Lifecycle:
        1. Created at signup with the default profile image
        2. Mutated on profile image changes and save/unsave actions
        3. Deleted on account deletion, cascading to owned places
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    # Unique index backs the DuplicateEmail check against concurrent signups
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    # bcrypt digest, never the plaintext
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relative path from storage root (e.g. uploads/images/<uuid>.png)
    image: Mapped[str] = mapped_column(String(255), nullable=False)

    # Place ids as strings, in creation order
    places: Mapped[List[str]] = mapped_column(
        MutableList.as_mutable(JSON),
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # selectin: async sessions cannot lazy-load on attribute access
    saved_places: Mapped[List["SavedPlace"]] = relationship(  # noqa: F821
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="SavedPlace.saved_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
