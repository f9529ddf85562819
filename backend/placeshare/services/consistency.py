"""
PlaceShare Backend: Consistency Manager
========================================

What:  Executes every mutation that touches more than one document, keeping
       users, places and bookmarks coherent.
How:   Each operation runs its writes inside DocumentStore.with_transaction():
       all writes awaited in order, then one commit; any exception rolls the
       whole operation back. Image files are removed only after commit, on a
       best-effort basis.
Who:   Called by the places and users routers.

Invariants maintained:
    - Place.creator_id == U  ⇔  str(place.id) in U.places
    - str(U.id) in Place.saved  ⇔  a SavedPlace(U, place) row exists
    - Deleting a place purges every bookmark of it and its id from the
      creator's list; deleting a user deletes the user's places (with their
      bookmarks) and the user's id from every place they saved.

Operation Flow (create_place):
    ┌──────────┐    ┌───────────┐    ┌─────────────── transaction ──────────────┐
    │ Geocode  │───▶│ Load      │───▶│ insert Place ─▶ append id to owner.places │
    │ address  │    │ owner     │    └───────────────────────────────────────────┘
    └──────────┘    └───────────┘
    On any failure the uploaded image is removed again.
"""

import asyncio
import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select

from placeshare.exceptions import (
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from placeshare.models.place import Place
from placeshare.models.saved_place import SavedPlace
from placeshare.models.user import User
from placeshare.schemas.place import PlaceAttributes, PlaceResponse, place_snapshot
from placeshare.schemas.user import UserResponse
from placeshare.security import PasswordHasher, password_hasher
from placeshare.services.file_service import FileService, file_service
from placeshare.services.geocoder_base import Geocoder
from placeshare.services.mapbox_service import mapbox_geocoder
from placeshare.store import DocumentStore, StoreSession, document_store

logger = logging.getLogger(__name__)


class ConsistencyManager:
    """
    Multi-document mutations: create/update/delete place, delete user,
    save/unsave place.

    Collaborators are injected (tests pass a temporary store, a fake
    geocoder and a FileService rooted in a temp directory); the module-level
    instance uses the application singletons.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        geocoder: Optional[Geocoder] = None,
        blob_store: Optional[FileService] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.store = store or document_store
        self.geocoder = geocoder or mapbox_geocoder
        self.blob_store = blob_store or file_service
        self.hasher = hasher or password_hasher

    # ── Places ────────────────────────────────────────────────────────────

    async def create_place(
        self,
        owner_id: uuid.UUID,
        attributes: PlaceAttributes,
        image_path: str,
    ) -> PlaceResponse:
        """
        Geocode the address, then insert the place and append its id to the
        owner's `places` list in one transaction.

        `image_path` is the already stored upload; it is removed again if
        the operation fails.

        Raises:
            GeocodeError: the address has no location
            GeocoderUnavailableError: geocoding service unreachable
            NotFoundError: the owner does not exist
            StoreError: the transaction was aborted by the database
        """

        async def _create(tx: StoreSession) -> PlaceResponse:
            owner = await tx.find_by_id(User, owner_id, lock=True)
            if owner is None:
                raise NotFoundError(resource="user", resource_id=str(owner_id))

            place = await tx.insert(
                Place(
                    title=attributes.title,
                    description=attributes.description,
                    address=attributes.address,
                    location=[longitude, latitude],
                    image=image_path,
                    creator_id=owner.id,
                    saved=[],
                )
            )
            await tx.update(owner, places=[*owner.places, str(place.id)])
            return PlaceResponse.from_document(place)

        try:
            longitude, latitude = await self.geocoder.geocode(attributes.address)
            created = await self.store.with_transaction(_create)
        except Exception:
            await self.blob_store.cleanup_file(image_path)
            raise

        logger.info("Place %s created by user %s", created.id, owner_id)
        return created

    async def update_place(
        self,
        place_id: uuid.UUID,
        requester_id: uuid.UUID,
        attributes: PlaceAttributes,
    ) -> PlaceResponse:
        """
        Edit title, description and address (re-geocoded) of a place.

        Ownership is checked before the geocoding call and again inside the
        transaction. Bookmark snapshots of this place are left as they were.

        Raises:
            NotFoundError, UnauthorizedError, GeocodeError,
            GeocoderUnavailableError, StoreError
        """
        await self.store.with_session(
            lambda tx: self._load_owned_place(tx, place_id, requester_id, action="edit")
        )

        longitude, latitude = await self.geocoder.geocode(attributes.address)

        async def _update(tx: StoreSession) -> PlaceResponse:
            place = await self._load_owned_place(tx, place_id, requester_id, action="edit", lock=True)
            await tx.update(
                place,
                title=attributes.title,
                description=attributes.description,
                address=attributes.address,
                location=[longitude, latitude],
            )
            return PlaceResponse.from_document(place)

        updated = await self.store.with_transaction(_update)
        logger.info("Place %s updated by user %s", place_id, requester_id)
        return updated

    async def delete_place(self, place_id: uuid.UUID, requester_id: uuid.UUID) -> None:
        """
        Delete a place created by `requester_id`.

        In one transaction: purge every bookmark of the place, delete the
        place, remove its id from the creator's `places`. The place image is
        removed after commit (best-effort).

        Raises:
            NotFoundError: no such place
            UnauthorizedError: requester is not the creator
            StoreError: the transaction was aborted by the database
        """

        async def _delete(tx: StoreSession) -> str:
            # Lock order is user before place, as in every other operation
            creator = await self._lock_creator(tx, place_id)
            place = await self._load_owned_place(tx, place_id, requester_id, action="delete", lock=True)
            removed_id = str(place.id)
            image = place.image

            purged = await tx.delete_where(SavedPlace, SavedPlace.place_id == place.id)
            await tx.delete(place)
            await tx.update(creator, places=[pid for pid in creator.places if pid != removed_id])

            logger.debug("Place %s: purged %d bookmarks", removed_id, purged)
            return image

        image = await self.store.with_transaction(_delete)
        logger.info("Place %s deleted by user %s", place_id, requester_id)

        await self.blob_store.cleanup_file(image)

    # ── Users ─────────────────────────────────────────────────────────────

    async def delete_user(self, user_id: uuid.UUID, password: str) -> None:
        """
        Delete an account after re-checking its password.

        In one transaction:
            1. purge every bookmark of the places the user created
            2. drop the user's id from `saved` of every place they bookmarked
            3. delete the user's places
            4. delete the user (its own bookmarks go with it)
        Then remove the profile image (unless default) and every place image.

        Raises:
            ForbiddenError: unknown user or wrong password (nothing changes)
            StoreError: the transaction was aborted by the database
        """
        stored_hash = await self.store.with_session(lambda tx: self._password_hash(tx, user_id))
        if stored_hash is None or not await asyncio.to_thread(self.hasher.verify, password, stored_hash):
            raise ForbiddenError(
                message="Could not identify you, credentials seem to be wrong",
                context={"user_id": str(user_id)},
            )

        async def _delete(tx: StoreSession) -> List[str]:
            user = await tx.find_by_id(User, user_id, lock=True)
            if user is None:
                raise ForbiddenError(message="Could not identify you")

            owned = await tx.find(Place, Place.creator_id == user.id, lock=True)
            owned_ids = [place.id for place in owned]
            if owned_ids:
                await tx.delete_where(SavedPlace, SavedPlace.place_id.in_(owned_ids))

            uid = str(user.id)
            bookmarked = await tx.find(
                Place,
                Place.id.in_(select(SavedPlace.place_id).where(SavedPlace.user_id == user.id)),
                lock=True,
            )
            for place in bookmarked:
                await tx.update(place, saved=[saver for saver in place.saved if saver != uid])

            images = [place.image for place in owned]
            await tx.delete_all(owned)
            images.append(user.image)
            await tx.delete(user)
            return images

        images = await self.store.with_transaction(_delete)
        logger.info("User %s deleted with %d places", user_id, len(images) - 1)

        for image in images:
            await self.blob_store.cleanup_file(image)

    # ── Bookmarks ─────────────────────────────────────────────────────────

    async def save_place(self, user_id: uuid.UUID, place_id: uuid.UUID) -> UserResponse:
        """
        Bookmark a place for a user. Saving an already saved place is a no-op.

        Both sides change in one transaction: a SavedPlace row holding a
        snapshot of the place, and the user's id in Place.saved.

        Raises:
            NotFoundError: user or place missing
            ValidationError: the user created the place
            StoreError: the transaction was aborted by the database
        """

        async def _save(tx: StoreSession) -> UserResponse:
            user, place = await self._load_pair(tx, user_id, place_id)
            if place.creator_id == user.id:
                raise ValidationError(
                    message="You cannot save a place you created",
                    field="place_id",
                )

            if self._bookmark_of(user, place.id) is None:
                await tx.insert(SavedPlace(user=user, place_id=place.id, snapshot=place_snapshot(place)))

            uid = str(user.id)
            if uid not in place.saved:
                await tx.update(place, saved=[*place.saved, uid])

            return UserResponse.from_document(user)

        result = await self.store.with_transaction(_save)
        logger.info("User %s saved place %s", user_id, place_id)
        return result

    async def unsave_place(self, user_id: uuid.UUID, place_id: uuid.UUID) -> UserResponse:
        """
        Remove a bookmark. Removing a bookmark that does not exist is a no-op.

        Raises:
            NotFoundError: user or place missing
            StoreError: the transaction was aborted by the database
        """

        async def _unsave(tx: StoreSession) -> UserResponse:
            user, place = await self._load_pair(tx, user_id, place_id)

            if self._bookmark_of(user, place.id) is not None:
                await tx.update(
                    user,
                    saved_places=[sp for sp in user.saved_places if sp.place_id != place.id],
                )

            uid = str(user.id)
            if uid in place.saved:
                await tx.update(place, saved=[saver for saver in place.saved if saver != uid])

            return UserResponse.from_document(user)

        result = await self.store.with_transaction(_unsave)
        logger.info("User %s unsaved place %s", user_id, place_id)
        return result

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    async def _load_owned_place(
        tx: StoreSession,
        place_id: uuid.UUID,
        requester_id: uuid.UUID,
        action: str,
        lock: bool = False,
    ) -> Place:
        place = await tx.find_by_id(Place, place_id, lock=lock)
        if place is None:
            raise NotFoundError(resource="place", resource_id=str(place_id))
        if place.creator_id != requester_id:
            raise UnauthorizedError(
                message=f"You are not allowed to {action} this place",
                context={"place_id": str(place_id), "requester_id": str(requester_id)},
            )
        return place

    @staticmethod
    async def _load_pair(
        tx: StoreSession,
        user_id: uuid.UUID,
        place_id: uuid.UUID,
    ) -> Tuple[User, Place]:
        user = await tx.find_by_id(User, user_id, lock=True)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        place = await tx.find_by_id(Place, place_id, lock=True)
        if place is None:
            raise NotFoundError(resource="place", resource_id=str(place_id))
        return user, place

    @staticmethod
    async def _lock_creator(tx: StoreSession, place_id: uuid.UUID) -> User:
        place = await tx.find_by_id(Place, place_id)
        if place is None:
            raise NotFoundError(resource="place", resource_id=str(place_id))
        return await tx.find_by_id(User, place.creator_id, lock=True)

    @staticmethod
    async def _password_hash(tx: StoreSession, user_id: uuid.UUID) -> Optional[str]:
        user = await tx.find_by_id(User, user_id)
        return user.password if user is not None else None

    @staticmethod
    def _bookmark_of(user: User, place_id: uuid.UUID) -> Optional[SavedPlace]:
        return next((sp for sp in user.saved_places if sp.place_id == place_id), None)


# ── Singleton Instance ────────────────────────────────────────────────────
consistency_manager = ConsistencyManager()


def get_consistency_manager() -> ConsistencyManager:
    """FastAPI dependency; tests override it with a manager using a fake geocoder."""
    return consistency_manager
