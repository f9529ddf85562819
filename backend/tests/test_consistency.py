"""
PlaceShare Backend: Consistency Manager Tests
==============================================

What:  Multi-document mutations against a real SQLite database.
How:   Every test checks both sides of the denormalized links:
       Place.creator_id / User.places and Place.saved / SavedPlace rows.
       Rollback tests inject a StoreSession that fails on a chosen write.
"""

import asyncio
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from conftest import DEFAULT_PASSWORD
from placeshare.exceptions import (
    ForbiddenError,
    GeocodeError,
    NotFoundError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from placeshare.models.place import Place
from placeshare.models.user import User
from placeshare.schemas.place import PlaceAttributes
from placeshare.services.consistency import ConsistencyManager
from placeshare.store import DocumentStore, StoreSession


def failing_store(model) -> DocumentStore:
    """A store whose sessions reject every update of `model` documents, like a disk going away."""

    class FailingUpdates(StoreSession):
        async def update(self, document, **changes):
            if isinstance(document, model):
                raise OperationalError(f"UPDATE {model.__tablename__}", {}, Exception("disk I/O error"))
            return await super().update(document, **changes)

    class FailingStore(DocumentStore):
        session_class = FailingUpdates

    return FailingStore()


def stored(blob_store, relative_path: str) -> Path:
    return blob_store.resolve(relative_path)


# ══════════════════════════════════════════════════════════════════════════
# CreatePlace
# ══════════════════════════════════════════════════════════════════════════

class TestCreatePlace:

    @pytest.mark.asyncio
    async def test_links_place_and_owner(self, make_user, make_place, load, fake_geocoder):
        fake_geocoder.locations["Eiffel Tower, Paris"] = (2.2945, 48.8584)
        owner_id = await make_user()

        place = await make_place(owner_id, title="Eiffel Tower", address="Eiffel Tower, Paris")

        assert place.creator == owner_id
        assert place.location == [2.2945, 48.8584]
        assert place.saved == []

        owner = await load.user(owner_id)
        assert owner.places == [str(place.id)]

    @pytest.mark.asyncio
    async def test_places_listed_in_creation_order(self, make_user, make_place, load):
        owner_id = await make_user()
        first = await make_place(owner_id, title="First")
        second = await make_place(owner_id, title="Second")

        owner = await load.user(owner_id)
        assert owner.places == [str(first.id), str(second.id)]

    @pytest.mark.asyncio
    async def test_unknown_address_leaves_nothing_behind(
        self, make_user, manager, blob_store, fake_geocoder, load, sample_image_bytes
    ):
        fake_geocoder.unknown.add("Nowhere at all")
        owner_id = await make_user()
        image_path = await blob_store.store_file(sample_image_bytes, ".png")
        attributes = PlaceAttributes(title="Ghost", description="Does not exist", address="Nowhere at all")

        with pytest.raises(GeocodeError):
            await manager.create_place(owner_id, attributes, image_path)

        assert await load.all_places() == []
        assert (await load.user(owner_id)).places == []
        assert not stored(blob_store, image_path).exists()

    @pytest.mark.asyncio
    async def test_missing_owner_is_not_found(self, database, manager, blob_store, load, sample_image_bytes):
        image_path = await blob_store.store_file(sample_image_bytes, ".png")
        attributes = PlaceAttributes(title="Orphan", description="No owner here", address="Somewhere")

        with pytest.raises(NotFoundError):
            await manager.create_place(uuid4(), attributes, image_path)

        assert await load.all_places() == []
        assert not stored(blob_store, image_path).exists()

    @pytest.mark.asyncio
    async def test_failed_owner_update_rolls_back_insert(
        self, make_user, fake_geocoder, blob_store, load, sample_image_bytes
    ):
        owner_id = await make_user()
        failing = ConsistencyManager(store=failing_store(User), geocoder=fake_geocoder, blob_store=blob_store)
        image_path = await blob_store.store_file(sample_image_bytes, ".png")
        attributes = PlaceAttributes(title="Half", description="Only half written", address="Somewhere")

        with pytest.raises(StoreError) as exc_info:
            await failing.create_place(owner_id, attributes, image_path)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert await load.all_places() == []
        assert (await load.user(owner_id)).places == []
        assert not stored(blob_store, image_path).exists()

    @pytest.mark.asyncio
    async def test_concurrent_creates_keep_every_place_id(self, make_user, make_place, load):
        owner_id = await make_user()

        places = await asyncio.gather(*(make_place(owner_id, title=f"Place {i}") for i in range(4)))

        owner = await load.user(owner_id)
        assert sorted(owner.places) == sorted(str(place.id) for place in places)


# ══════════════════════════════════════════════════════════════════════════
# UpdatePlace
# ══════════════════════════════════════════════════════════════════════════

class TestUpdatePlace:

    @pytest.mark.asyncio
    async def test_updates_fields_and_location(self, make_user, make_place, manager, fake_geocoder, load):
        owner_id = await make_user()
        place = await make_place(owner_id)
        fake_geocoder.locations["Big Ben, London"] = (-0.1246, 51.5007)

        updated = await manager.update_place(
            place.id,
            owner_id,
            PlaceAttributes(title="Big Ben", description="Clock tower in London", address="Big Ben, London"),
        )

        assert updated.title == "Big Ben"
        assert updated.location == [-0.1246, 51.5007]
        reloaded = await load.place(place.id)
        assert reloaded.address == "Big Ben, London"
        assert reloaded.image == place.image

    @pytest.mark.asyncio
    async def test_non_creator_is_rejected_before_geocoding(self, make_user, make_place, manager, fake_geocoder, load):
        owner_id = await make_user()
        intruder_id = await make_user(name="Mallory")
        place = await make_place(owner_id)
        fake_geocoder.calls.clear()

        with pytest.raises(UnauthorizedError):
            await manager.update_place(
                place.id,
                intruder_id,
                PlaceAttributes(title="Mine now", description="Taken over", address="Elsewhere"),
            )

        assert fake_geocoder.calls == []
        assert (await load.place(place.id)).title == place.title

    @pytest.mark.asyncio
    async def test_missing_place_is_not_found(self, make_user, manager):
        owner_id = await make_user()
        with pytest.raises(NotFoundError):
            await manager.update_place(
                uuid4(),
                owner_id,
                PlaceAttributes(title="Nothing", description="Nothing here", address="Nowhere"),
            )

    @pytest.mark.asyncio
    async def test_saved_snapshot_keeps_original_title(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id, title="Original title")
        await manager.save_place(saver_id, place.id)

        await manager.update_place(
            place.id,
            owner_id,
            PlaceAttributes(title="Renamed", description="Edited description", address=place.address),
        )

        saver = await load.user(saver_id)
        assert saver.saved_places[0].snapshot["title"] == "Original title"


# ══════════════════════════════════════════════════════════════════════════
# DeletePlace
# ══════════════════════════════════════════════════════════════════════════

class TestDeletePlace:

    @pytest.mark.asyncio
    async def test_purges_bookmarks_and_owner_list(self, make_user, make_place, manager, blob_store, load):
        owner_id = await make_user()
        saver_a = await make_user(name="Grace")
        saver_b = await make_user(name="Alan")
        kept = await make_place(owner_id, title="Kept")
        doomed = await make_place(owner_id, title="Doomed")
        await manager.save_place(saver_a, doomed.id)
        await manager.save_place(saver_b, doomed.id)
        await manager.save_place(saver_b, kept.id)

        await manager.delete_place(doomed.id, owner_id)

        assert await load.place(doomed.id) is None
        assert (await load.user(owner_id)).places == [str(kept.id)]
        assert (await load.user(saver_a)).saved_places == []
        assert [sp.place_id for sp in (await load.user(saver_b)).saved_places] == [kept.id]
        assert not stored(blob_store, doomed.image).exists()
        assert stored(blob_store, kept.image).exists()

    @pytest.mark.asyncio
    async def test_non_creator_changes_nothing(self, make_user, make_place, manager, blob_store, load):
        owner_id = await make_user()
        intruder_id = await make_user(name="Mallory")
        place = await make_place(owner_id)

        with pytest.raises(UnauthorizedError):
            await manager.delete_place(place.id, intruder_id)

        assert await load.place(place.id) is not None
        assert (await load.user(owner_id)).places == [str(place.id)]
        assert stored(blob_store, place.image).exists()

    @pytest.mark.asyncio
    async def test_missing_place_is_not_found(self, make_user, manager):
        with pytest.raises(NotFoundError):
            await manager.delete_place(uuid4(), await make_user())

    @pytest.mark.asyncio
    async def test_failed_creator_update_keeps_place_and_bookmarks(
        self, make_user, make_place, manager, fake_geocoder, blob_store, load
    ):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)
        await manager.save_place(saver_id, place.id)
        failing = ConsistencyManager(store=failing_store(User), geocoder=fake_geocoder, blob_store=blob_store)

        with pytest.raises(StoreError):
            await failing.delete_place(place.id, owner_id)

        reloaded = await load.place(place.id)
        assert reloaded is not None
        assert reloaded.saved == [str(saver_id)]
        assert [sp.place_id for sp in (await load.user(saver_id)).saved_places] == [place.id]
        assert stored(blob_store, place.image).exists()


# ══════════════════════════════════════════════════════════════════════════
# DeleteUser
# ══════════════════════════════════════════════════════════════════════════

class TestDeleteUser:

    @pytest.mark.asyncio
    async def test_cascades_places_and_bookmarks(self, make_user, make_place, manager, blob_store, load):
        leaving_id = await make_user(name="Leaving", image="uploads/images/leaving.png")
        other_id = await make_user(name="Staying")
        blob_store.resolve("uploads/images/leaving.png").write_bytes(b"avatar")

        own_place = await make_place(leaving_id, title="Owned by leaving user")
        other_place = await make_place(other_id, title="Owned by staying user")
        await manager.save_place(other_id, own_place.id)
        await manager.save_place(leaving_id, other_place.id)

        await manager.delete_user(leaving_id, DEFAULT_PASSWORD)

        assert await load.user(leaving_id) is None
        assert await load.place(own_place.id) is None
        assert (await load.user(other_id)).saved_places == []
        assert (await load.place(other_place.id)).saved == []
        assert not stored(blob_store, own_place.image).exists()
        assert not blob_store.resolve("uploads/images/leaving.png").exists()
        assert stored(blob_store, other_place.image).exists()

    @pytest.mark.asyncio
    async def test_cafe_scenario(self, make_user, make_place, manager, fake_geocoder, load):
        fake_geocoder.locations["123 Main St"] = (10.0, 20.0)
        a_id = await make_user(name="A")
        b_id = await make_user(name="B")
        cafe = await make_place(a_id, title="Cafe", description="Nice coffee", address="123 Main St")
        assert cafe.location == [10.0, 20.0]
        await manager.save_place(b_id, cafe.id)

        await manager.delete_user(a_id, DEFAULT_PASSWORD)

        assert await load.place(cafe.id) is None
        assert (await load.user(b_id)).saved_places == []

    @pytest.mark.asyncio
    async def test_wrong_password_changes_nothing(self, make_user, make_place, manager, load):
        user_id = await make_user()
        place = await make_place(user_id)

        with pytest.raises(ForbiddenError):
            await manager.delete_user(user_id, "not-the-password")

        assert await load.user(user_id) is not None
        assert await load.place(place.id) is not None

    @pytest.mark.asyncio
    async def test_unknown_user_is_forbidden(self, database, manager):
        with pytest.raises(ForbiddenError):
            await manager.delete_user(uuid4(), DEFAULT_PASSWORD)

    @pytest.mark.asyncio
    async def test_default_image_is_kept(self, make_user, manager, blob_store):
        default_image = blob_store.resolve("uploads/images/user-profile-default.png")
        default_image.write_bytes(b"default avatar")
        user_id = await make_user()

        await manager.delete_user(user_id, DEFAULT_PASSWORD)

        assert default_image.exists()

    @pytest.mark.asyncio
    async def test_failed_write_keeps_account_places_and_bookmarks(
        self, make_user, make_place, manager, fake_geocoder, blob_store, load
    ):
        leaving_id = await make_user(name="Leaving")
        other_id = await make_user(name="Staying")
        own_place = await make_place(leaving_id, title="Owned by leaving user")
        other_place = await make_place(other_id, title="Owned by staying user")
        await manager.save_place(other_id, own_place.id)
        await manager.save_place(leaving_id, other_place.id)
        failing = ConsistencyManager(store=failing_store(Place), geocoder=fake_geocoder, blob_store=blob_store)

        with pytest.raises(StoreError):
            await failing.delete_user(leaving_id, DEFAULT_PASSWORD)

        assert await load.user(leaving_id) is not None
        assert (await load.place(own_place.id)).saved == [str(other_id)]
        assert [sp.place_id for sp in (await load.user(other_id)).saved_places] == [own_place.id]
        assert (await load.place(other_place.id)).saved == [str(leaving_id)]
        assert [sp.place_id for sp in (await load.user(leaving_id)).saved_places] == [other_place.id]
        assert stored(blob_store, own_place.image).exists()


# ══════════════════════════════════════════════════════════════════════════
# SavePlace / UnsavePlace
# ══════════════════════════════════════════════════════════════════════════

class TestBookmarks:

    @pytest.mark.asyncio
    async def test_save_links_both_sides_with_snapshot(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id, title="Louvre")

        result = await manager.save_place(saver_id, place.id)

        assert [sp.place_id for sp in result.saved_places] == [place.id]
        snapshot = result.saved_places[0].snapshot
        assert snapshot["title"] == "Louvre"
        assert snapshot["creator"] == str(owner_id)
        assert (await load.place(place.id)).saved == [str(saver_id)]

    @pytest.mark.asyncio
    async def test_save_twice_is_idempotent(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)

        await manager.save_place(saver_id, place.id)
        await manager.save_place(saver_id, place.id)

        assert len((await load.user(saver_id)).saved_places) == 1
        assert (await load.place(place.id)).saved == [str(saver_id)]

    @pytest.mark.asyncio
    async def test_cannot_save_own_place(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        place = await make_place(owner_id)

        with pytest.raises(ValidationError):
            await manager.save_place(owner_id, place.id)

        assert (await load.place(place.id)).saved == []

    @pytest.mark.asyncio
    async def test_save_missing_place_is_not_found(self, make_user, manager):
        with pytest.raises(NotFoundError):
            await manager.save_place(await make_user(), uuid4())

    @pytest.mark.asyncio
    async def test_unsave_clears_both_sides(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)
        await manager.save_place(saver_id, place.id)

        result = await manager.unsave_place(saver_id, place.id)

        assert result.saved_places == []
        assert (await load.user(saver_id)).saved_places == []
        assert (await load.place(place.id)).saved == []

    @pytest.mark.asyncio
    async def test_unsave_without_bookmark_is_noop(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)

        result = await manager.unsave_place(saver_id, place.id)

        assert result.saved_places == []
        assert (await load.place(place.id)).saved == []

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_every_saver(self, make_user, make_place, manager, load):
        owner_id = await make_user()
        saver_ids = [await make_user(name=f"Saver {i}") for i in range(4)]
        place = await make_place(owner_id)

        await asyncio.gather(*(manager.save_place(saver_id, place.id) for saver_id in saver_ids))

        assert sorted((await load.place(place.id)).saved) == sorted(str(s) for s in saver_ids)
        for saver_id in saver_ids:
            assert [sp.place_id for sp in (await load.user(saver_id)).saved_places] == [place.id]

    @pytest.mark.asyncio
    async def test_failed_save_leaves_no_bookmark(self, make_user, make_place, fake_geocoder, blob_store, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)
        failing = ConsistencyManager(store=failing_store(Place), geocoder=fake_geocoder, blob_store=blob_store)

        with pytest.raises(StoreError):
            await failing.save_place(saver_id, place.id)

        assert (await load.user(saver_id)).saved_places == []
        assert (await load.place(place.id)).saved == []

    @pytest.mark.asyncio
    async def test_failed_unsave_keeps_bookmark(self, make_user, make_place, manager, fake_geocoder, blob_store, load):
        owner_id = await make_user()
        saver_id = await make_user(name="Grace")
        place = await make_place(owner_id)
        await manager.save_place(saver_id, place.id)
        failing = ConsistencyManager(store=failing_store(Place), geocoder=fake_geocoder, blob_store=blob_store)

        with pytest.raises(StoreError):
            await failing.unsave_place(saver_id, place.id)

        assert [sp.place_id for sp in (await load.user(saver_id)).saved_places] == [place.id]
        assert (await load.place(place.id)).saved == [str(saver_id)]
