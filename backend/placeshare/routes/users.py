"""
PlaceShare Backend: Users Route Handlers
=========================================

What:  /api/users endpoints: list, signup, login, profile image changes,
       account deletion, and bookmarks.
How:   Account operations go to AccountService; account deletion and
       bookmarks go to ConsistencyManager.

Authorization:
    Every /api/users/{user_id}/... endpoint requires a bearer token whose
    userId equals {user_id}; a token for anyone else gets 403.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, UploadFile

from placeshare.exceptions import ForbiddenError
from placeshare.schemas.common import ErrorResponse, MessageResponse
from placeshare.schemas.user import (
    AuthResponse,
    DeleteAccountRequest,
    LoginRequest,
    ProfileImageResponse,
    SavePlaceRequest,
    SignupRequest,
    UserListResponse,
)
from placeshare.security import get_current_user_id
from placeshare.services.account_service import account_service
from placeshare.services.consistency import ConsistencyManager, get_consistency_manager
from placeshare.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


def _require_self(user_id: uuid.UUID, caller_id: uuid.UUID) -> None:
    if user_id != caller_id:
        raise ForbiddenError(
            message="You can only change your own account",
            context={"user_id": str(user_id), "caller_id": str(caller_id)},
        )


@router.get("", response_model=UserListResponse, summary="List all users")
async def list_users() -> UserListResponse:
    return await account_service.list_users()


@router.post(
    "/signup",
    status_code=201,
    response_model=AuthResponse,
    responses={422: {"description": "Invalid input or email already registered", "model": ErrorResponse}},
    summary="Create an account",
)
async def signup(request: SignupRequest) -> AuthResponse:
    return await account_service.signup(request)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={403: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Log in and receive a token",
)
async def login(request: LoginRequest) -> AuthResponse:
    return await account_service.login(request)


@router.patch(
    "/{user_id}/profileUpdate",
    response_model=ProfileImageResponse,
    responses={
        403: {"description": "Not your account", "model": ErrorResponse},
        422: {"description": "Unsupported or empty image", "model": ErrorResponse},
    },
    summary="Replace the profile image",
)
async def update_profile_image(
    user_id: uuid.UUID,
    image: UploadFile = File(..., description="Profile picture (PNG, JPG or JPEG)"),
    caller_id: uuid.UUID = Depends(get_current_user_id),
) -> ProfileImageResponse:
    _require_self(user_id, caller_id)

    try:
        content = await image.read()
        image_path = await file_service.validate_and_store(
            filename=image.filename or "",
            content=content,
            content_type=image.content_type,
        )
    finally:
        await image.close()

    return await account_service.update_profile_image(user_id, image_path)


@router.patch(
    "/{user_id}/profileImageDelete",
    response_model=ProfileImageResponse,
    responses={403: {"description": "Not your account", "model": ErrorResponse}},
    summary="Reset the profile image to the default",
)
async def delete_profile_image(
    user_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_current_user_id),
) -> ProfileImageResponse:
    _require_self(user_id, caller_id)
    return await account_service.delete_profile_image(user_id)


@router.delete(
    "/{user_id}/deleteAccount",
    response_model=MessageResponse,
    responses={403: {"description": "Wrong password or not your account", "model": ErrorResponse}},
    summary="Delete the account with all its places",
)
async def delete_account(
    user_id: uuid.UUID,
    request: DeleteAccountRequest,
    caller_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> MessageResponse:
    _require_self(user_id, caller_id)
    await manager.delete_user(user_id, request.password)
    return MessageResponse(message="Account deleted.")


@router.post(
    "/{user_id}/savePlace",
    status_code=201,
    response_model=MessageResponse,
    responses={
        404: {"description": "User or place not found", "model": ErrorResponse},
        422: {"description": "Cannot save your own place", "model": ErrorResponse},
    },
    summary="Bookmark a place",
)
async def save_place(
    user_id: uuid.UUID,
    request: SavePlaceRequest,
    caller_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> MessageResponse:
    _require_self(user_id, caller_id)
    await manager.save_place(user_id, request.place_id)
    return MessageResponse(message="Place saved.")


@router.post(
    "/{user_id}/unsavePlace",
    response_model=MessageResponse,
    responses={404: {"description": "User or place not found", "model": ErrorResponse}},
    summary="Remove a bookmark",
)
async def unsave_place(
    user_id: uuid.UUID,
    request: SavePlaceRequest,
    caller_id: uuid.UUID = Depends(get_current_user_id),
    manager: ConsistencyManager = Depends(get_consistency_manager),
) -> MessageResponse:
    _require_self(user_id, caller_id)
    await manager.unsave_place(user_id, request.place_id)
    return MessageResponse(message="Place unsaved.")
