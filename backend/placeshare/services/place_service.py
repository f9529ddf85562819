"""
PlaceShare Backend: Place Queries
==================================

What:  Read-only place lookups: one place by id, every place of a user.
How:   Each call opens a short read session on the document store and
       serializes results into response models before the session closes.
Who:   Called by the places router. Writes go through ConsistencyManager.
"""

import logging
import uuid
from typing import Optional

from placeshare.exceptions import NotFoundError
from placeshare.models.place import Place
from placeshare.models.user import User
from placeshare.schemas.place import PlaceListResponse, PlaceResponse
from placeshare.store import DocumentStore, StoreSession, document_store

logger = logging.getLogger(__name__)


class PlaceService:

    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or document_store

    async def get_place(self, place_id: uuid.UUID) -> PlaceResponse:
        """
        Raises:
            NotFoundError: no place with this id
        """

        async def _get(tx: StoreSession) -> PlaceResponse:
            place = await tx.find_by_id(Place, place_id)
            if place is None:
                raise NotFoundError(resource="place", resource_id=str(place_id))
            return PlaceResponse.from_document(place)

        return await self.store.with_session(_get)

    async def get_places_by_user(self, user_id: uuid.UUID) -> PlaceListResponse:
        """
        Places created by a user, in the order of the user's `places` list.

        A user with no places gets an empty list.

        Raises:
            NotFoundError: no user with this id
        """

        async def _list(tx: StoreSession) -> PlaceListResponse:
            user = await tx.find_by_id(User, user_id)
            if user is None:
                raise NotFoundError(resource="user", resource_id=str(user_id))

            places = await tx.find(Place, Place.creator_id == user.id)
            position = {pid: index for index, pid in enumerate(user.places)}
            places.sort(key=lambda place: position.get(str(place.id), len(position)))
            return PlaceListResponse(places=[PlaceResponse.from_document(p) for p in places])

        result = await self.store.with_session(_list)
        logger.debug("User %s has %d places", user_id, len(result.places))
        return result


# ── Singleton Instance ────────────────────────────────────────────────────
place_service = PlaceService()
