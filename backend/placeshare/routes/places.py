"""
PlaceShare Backend: Places Route Handlers
==========================================

What:  /api/places endpoints: read one place, list a user's places,
       create (multipart upload), update, delete.
How:   Reads go to PlaceService; every write goes to ConsistencyManager.
       Write endpoints require `Authorization: Bearer <token>`.

Request Flow (POST /api/places):
    1. FastAPI parses the multipart form (title, description, address, image)
    2. Text fields are validated before anything touches the disk
    3. FileService validates and stores the image
    4. ConsistencyManager geocodes and persists; it removes the stored
       image again if anything fails
    5. 201 Created with the new place
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError as SchemaValidationError

from placeshare.exceptions import ValidationError
from placeshare.schemas.common import ErrorResponse, MessageResponse
from placeshare.schemas.place import PlaceAttributes, PlaceListResponse, PlaceResponse
from placeshare.security import get_current_user_id
from placeshare.services.consistency import ConsistencyManager, get_consistency_manager
from placeshare.services.file_service import file_service
from placeshare.services.place_service import place_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/places", tags=["Places"])


def _form_attributes(title: str, description: str, address: str) -> PlaceAttributes:
    """Validate multipart text fields with the same rules as the JSON body."""
    try:
        return PlaceAttributes(title=title, description=description, address=address)
    except SchemaValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ValidationError(
            message="Invalid inputs passed, please check your data",
            field=field,
            context={"reason": first.get("msg")},
        )


@router.get(
    "/{place_id}",
    response_model=PlaceResponse,
    responses={404: {"description": "Place not found", "model": ErrorResponse}},
    summary="Get a place by id",
)
async def get_place(place_id: uuid.UUID) -> PlaceResponse:
    return await place_service.get_place(place_id)


@router.get(
    "/user/{user_id}",
    response_model=PlaceListResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="List the places a user created",
)
async def get_places_by_user(user_id: uuid.UUID) -> PlaceListResponse:
    return await place_service.get_places_by_user(user_id)


@router.post(
    "",
    status_code=201,
    response_model=PlaceResponse,
    responses={
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        422: {"description": "Invalid fields, image or address", "model": ErrorResponse},
        503: {"description": "Geocoding service unavailable", "model": ErrorResponse},
    },
    summary="Create a place",
    description=(
        "Multipart form with title, description, address and an image (PNG or JPEG). "
        "The address is geocoded; the place is added to the caller's places."
    ),
)
async def create_place(
    title: str = Form(...),
    description: str = Form(...),
    address: str = Form(...),
    image: UploadFile = File(..., description="Place picture (PNG, JPG or JPEG)"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> PlaceResponse:
    attributes = _form_attributes(title, description, address)

    try:
        content = await image.read()
        logger.info("Received place upload: filename=%s, size=%d bytes", image.filename, len(content))
        image_path = await file_service.validate_and_store(
            filename=image.filename or "",
            content=content,
            content_type=image.content_type,
        )
    finally:
        await image.close()

    return await manager.create_place(user_id, attributes, image_path)


@router.patch(
    "/{place_id}",
    response_model=PlaceResponse,
    responses={
        401: {"description": "Not the creator of this place", "model": ErrorResponse},
        404: {"description": "Place not found", "model": ErrorResponse},
        422: {"description": "Invalid fields or address", "model": ErrorResponse},
    },
    summary="Update a place",
)
async def update_place(
    place_id: uuid.UUID,
    attributes: PlaceAttributes,
    user_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> PlaceResponse:
    return await manager.update_place(place_id, user_id, attributes)


@router.delete(
    "/{place_id}",
    response_model=MessageResponse,
    responses={
        401: {"description": "Not the creator of this place", "model": ErrorResponse},
        404: {"description": "Place not found", "model": ErrorResponse},
    },
    summary="Delete a place",
    description="Deletes the place, every bookmark of it, and its image.",
)
async def delete_place(
    place_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> MessageResponse:
    await manager.delete_place(place_id, user_id)
    return MessageResponse(message="Deleted place.")
