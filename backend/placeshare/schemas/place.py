"""
PlaceShare Backend: Place Request/Response Schemas
===================================================

What:  Pydantic models for place payloads.
How:   Request models validate client input (422 on failure). Response models
       are frozen records built by explicit serialization in the services;
       ORM objects never leave the service layer.
"""

import uuid
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from placeshare.models.place import Place


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class PlaceAttributes(BaseModel):
    """
    Editable fields of a place.

    Rules: title not empty, description at least 5 characters, address
    not empty (all after trimming whitespace).
    """
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=5)
    address: str = Field(min_length=1, max_length=500)

    @field_validator("title", "description", "address", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class PlaceResponse(BaseModel):
    """Full representation of a place."""
    id: uuid.UUID
    title: str
    description: str
    address: str
    location: List[float] = Field(description="[longitude, latitude]")
    image: str = Field(description="Path of the place picture relative to the server root")
    creator: uuid.UUID = Field(description="Id of the user who created the place")
    saved: List[uuid.UUID] = Field(default_factory=list, description="Ids of users who saved the place")

    model_config = {"frozen": True}

    @classmethod
    def from_document(cls, place: Place) -> "PlaceResponse":
        return cls(
            id=place.id,
            title=place.title,
            description=place.description,
            address=place.address,
            location=list(place.location),
            image=place.image,
            creator=place.creator_id,
            saved=[uuid.UUID(uid) for uid in place.saved],
        )


class PlaceListResponse(BaseModel):
    places: List[PlaceResponse]

    model_config = {"frozen": True}


def place_snapshot(place: Place) -> Dict[str, Any]:
    """
    JSON-safe copy of a place, stored on SavedPlace at save time.

    The saver list is left out; a bookmark describes the place, not who
    else bookmarked it.
    """
    return {
        "id": str(place.id),
        "title": place.title,
        "description": place.description,
        "address": place.address,
        "location": list(place.location),
        "image": place.image,
        "creator": str(place.creator_id),
    }
