"""
PlaceShare Backend: User and Auth Schemas
==========================================

What:  Pydantic models for signup/login payloads and user representations.
       Password hashes never appear in any response model.
"""

import uuid
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, EmailStr, Field, field_validator

from placeshare.models.saved_place import SavedPlace
from placeshare.models.user import User


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class SignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    # Syntax and length only; deliverability (DNS) is not checked
    email: EmailStr
    # bcrypt only looks at the first 72 bytes; longer secrets are refused
    password: str = Field(min_length=8, max_length=72)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        """Addresses are stored trimmed and lowercased; EmailStr then checks the syntax."""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes long")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class DeleteAccountRequest(BaseModel):
    password: str


class SavePlaceRequest(BaseModel):
    place_id: uuid.UUID


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AuthResponse(BaseModel):
    """Returned by signup and login."""
    user_id: uuid.UUID
    email: str
    token: str

    model_config = {"frozen": True}


class SavedPlaceResponse(BaseModel):
    """A bookmark: the place as it looked when it was saved."""
    place_id: uuid.UUID
    saved_at: datetime
    snapshot: dict

    model_config = {"frozen": True}

    @classmethod
    def from_document(cls, saved: SavedPlace) -> "SavedPlaceResponse":
        return cls(
            place_id=saved.place_id,
            saved_at=saved.saved_at,
            snapshot=dict(saved.snapshot),
        )


class UserResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    image: str
    places: List[uuid.UUID] = Field(description="Ids of places the user created, oldest first")
    saved_places: List[SavedPlaceResponse]

    model_config = {"frozen": True}

    @classmethod
    def from_document(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            image=user.image,
            places=[uuid.UUID(pid) for pid in user.places],
            saved_places=[SavedPlaceResponse.from_document(sp) for sp in user.saved_places],
        )


class UserListResponse(BaseModel):
    users: List[UserResponse]

    model_config = {"frozen": True}


class ProfileImageResponse(BaseModel):
    user_id: uuid.UUID
    image: str

    model_config = {"frozen": True}
