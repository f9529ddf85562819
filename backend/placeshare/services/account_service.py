"""
PlaceShare Backend: Account Service
====================================

What:  Signup, login, user listing and profile image changes.
How:   Single-document writes run in DocumentStore.with_transaction(); the
       replaced profile image is removed after commit (best-effort).
Who:   Called by the users router. Account deletion lives in
       ConsistencyManager because it spans users, places and bookmarks.

Signup Flow:
    hash password (worker thread) → [transaction: email unused? → insert user] → issue token
    A concurrent signup that slips past the email check hits the unique
    index; the resulting IntegrityError is reported as DuplicateEmailError.
"""

import asyncio
import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from placeshare.config import settings
from placeshare.exceptions import (
    DuplicateEmailError,
    ForbiddenError,
    NotFoundError,
    StoreError,
)
from placeshare.models.user import User
from placeshare.schemas.user import (
    AuthResponse,
    LoginRequest,
    ProfileImageResponse,
    SignupRequest,
    UserListResponse,
    UserResponse,
)
from placeshare.security import PasswordHasher, TokenIssuer, password_hasher, token_issuer
from placeshare.services.file_service import FileService, file_service
from placeshare.store import DocumentStore, StoreSession, document_store

logger = logging.getLogger(__name__)


class AccountService:

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        blob_store: Optional[FileService] = None,
        hasher: Optional[PasswordHasher] = None,
        issuer: Optional[TokenIssuer] = None,
    ):
        self.store = store or document_store
        self.blob_store = blob_store or file_service
        self.hasher = hasher or password_hasher
        self.issuer = issuer or token_issuer

    async def signup(self, request: SignupRequest) -> AuthResponse:
        """
        Register a new user with the default profile image.

        Raises:
            DuplicateEmailError: the email is already registered
            StoreError: the insert failed for another reason
        """
        digest = await asyncio.to_thread(self.hasher.hash, request.password)

        async def _signup(tx: StoreSession) -> Tuple[uuid.UUID, str]:
            if await tx.find_one(User, User.email == request.email) is not None:
                raise DuplicateEmailError(context={"email": request.email})

            user = await tx.insert(
                User(
                    name=request.name,
                    email=request.email,
                    password=digest,
                    image=settings.default_user_image,
                    places=[],
                )
            )
            return user.id, user.email

        try:
            user_id, email = await self.store.with_transaction(_signup)
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise DuplicateEmailError(context={"email": request.email}) from e
            raise

        logger.info("User %s signed up", user_id)
        return AuthResponse(user_id=user_id, email=email, token=self.issuer.issue_for(user_id, email))

    async def login(self, request: LoginRequest) -> AuthResponse:
        """
        Check credentials and issue a token.

        Raises:
            ForbiddenError: unknown email or wrong password (same message for both)
        """
        user = await self.store.with_session(
            lambda tx: tx.find_one(User, User.email == request.email)
        )
        if user is None or not await asyncio.to_thread(self.hasher.verify, request.password, user.password):
            logger.info("Rejected login attempt")
            raise ForbiddenError(message="Invalid credentials, could not log you in")

        return AuthResponse(
            user_id=user.id,
            email=user.email,
            token=self.issuer.issue_for(user.id, user.email),
        )

    async def list_users(self) -> UserListResponse:
        """All users, oldest account first. Password digests are never included."""

        async def _list(tx: StoreSession) -> UserListResponse:
            users = await tx.find(User, order_by=User.created_at)
            return UserListResponse(users=[UserResponse.from_document(u) for u in users])

        return await self.store.with_session(_list)

    async def update_profile_image(self, user_id: uuid.UUID, image_path: str) -> ProfileImageResponse:
        """
        Point the user at a freshly stored image and remove the previous one.

        The new image is removed again if the update fails; the default
        image is never removed.

        Raises:
            NotFoundError: no such user
        """
        try:
            previous = await self.store.with_transaction(
                lambda tx: self._replace_image(tx, user_id, image_path)
            )
        except Exception:
            await self.blob_store.cleanup_file(image_path)
            raise

        await self.blob_store.cleanup_file(previous)
        logger.info("User %s changed profile image", user_id)
        return ProfileImageResponse(user_id=user_id, image=image_path)

    async def delete_profile_image(self, user_id: uuid.UUID) -> ProfileImageResponse:
        """
        Reset the profile image to the default one.

        Raises:
            NotFoundError: no such user
        """
        default_image = settings.default_user_image
        previous = await self.store.with_transaction(
            lambda tx: self._replace_image(tx, user_id, default_image)
        )

        await self.blob_store.cleanup_file(previous)
        logger.info("User %s reset profile image", user_id)
        return ProfileImageResponse(user_id=user_id, image=default_image)

    @staticmethod
    async def _replace_image(tx: StoreSession, user_id: uuid.UUID, image_path: str) -> str:
        user = await tx.find_by_id(User, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        previous = user.image
        await tx.update(user, image=image_path)
        return previous


# ── Singleton Instance ────────────────────────────────────────────────────
account_service = AccountService()
