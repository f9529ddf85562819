"""
PlaceShare Backend: Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Tests run against a real SQLite database (aiosqlite) in a temporary
       directory; tables are created and dropped around every test that
       asks for `database`. The geocoder is replaced by an in-memory fake.

Fixture Hierarchy:
    database ─┬─ make_user
              ├─ manager (ConsistencyManager with fake geocoder, temp blob store)
              └─ test_client (FastAPI app, consistency manager overridden)
    fake_geocoder, blob_store, sample_image_bytes: standalone
"""

import os
import tempfile

# Settings are read at import time; configure them before importing placeshare
_TEST_ROOT = tempfile.mkdtemp(prefix="placeshare_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["JWT_PRIVATE_KEY"] = "test-secret-not-real"
os.environ["MAP_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_ROOT"] = _TEST_ROOT
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"

from typing import Dict, List, Optional, Tuple  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import placeshare.models  # noqa: E402,F401
from placeshare.config import settings  # noqa: E402
from placeshare.database import Base, engine  # noqa: E402
from placeshare.exceptions import GeocodeError  # noqa: E402
from placeshare.models.place import Place  # noqa: E402
from placeshare.models.user import User  # noqa: E402
from placeshare.schemas.place import PlaceAttributes  # noqa: E402
from placeshare.security import password_hasher, token_issuer  # noqa: E402
from placeshare.services.consistency import ConsistencyManager, get_consistency_manager  # noqa: E402
from placeshare.services.file_service import FileService  # noqa: E402
from placeshare.services.geocoder_base import Coordinates, Geocoder  # noqa: E402
from placeshare.store import DocumentStore  # noqa: E402

DEFAULT_PASSWORD = "correct-horse-battery"

# A complete 1x1 PNG; libmagic identifies uploads from these header bytes
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
    "0000000a49444154789c63000100000500010d0a2db40000000049454e44ae426082"
)

# JFIF header, no scan data; enough for libmagic to report image/jpeg
JPEG_BYTES = bytes.fromhex(
    "ffd8ffe000104a46494600010100000100010000ffd9"
)


class FakeGeocoder(Geocoder):
    """
    In-memory geocoder.

    Known addresses map to fixed coordinates; anything in `unknown` raises
    GeocodeError; every other address resolves to `default`.
    """

    def __init__(self):
        self.locations: Dict[str, Coordinates] = {}
        self.unknown = set()
        self.default: Coordinates = (-73.9857, 40.7484)
        self.calls: List[str] = []

    async def geocode(self, address: str) -> Coordinates:
        self.calls.append(address)
        if address in self.unknown:
            raise GeocodeError(address=address)
        return self.locations.get(address, self.default)

    async def health_check(self) -> bool:
        return True


# ══════════════════════════════════════════════════════════════════════════
# Collaborators
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def blob_store(tmp_path) -> FileService:
    """FileService rooted in a per-test temporary directory."""
    return FileService(storage_root=str(tmp_path / "storage"))


@pytest.fixture
def sample_image_bytes() -> bytes:
    return PNG_BYTES


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Fresh tables for one test; yields a DocumentStore bound to them."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield DocumentStore()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def make_user(database):
    """
    Factory inserting a user directly through the store.

    Usage:
        user_id = await make_user(name="Ada")
    """

    async def _make(
        name: str = "Ada Lovelace",
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        image: Optional[str] = None,
    ) -> UUID:
        async def _insert(tx):
            user = await tx.insert(
                User(
                    name=name,
                    email=email or f"{uuid4().hex[:10]}@example.com",
                    password=password_hasher.hash(password),
                    image=image or settings.default_user_image,
                    places=[],
                )
            )
            return user.id

        return await database.with_transaction(_insert)

    return _make


@pytest.fixture
def manager(database, fake_geocoder, blob_store) -> ConsistencyManager:
    return ConsistencyManager(store=database, geocoder=fake_geocoder, blob_store=blob_store)


@pytest.fixture
def make_place(manager, blob_store):
    """
    Factory creating a place through the ConsistencyManager, with a real
    stored image file.

    Usage:
        place = await make_place(owner_id, title="Empire State")
    """

    async def _make(
        owner_id: UUID,
        title: str = "Empire State Building",
        description: str = "A famous skyscraper in New York",
        address: str = "20 W 34th St, New York, NY 10001",
    ):
        image_path = await blob_store.store_file(PNG_BYTES, ".png")
        attributes = PlaceAttributes(title=title, description=description, address=address)
        return await manager.create_place(owner_id, attributes, image_path)

    return _make


@pytest.fixture
def load(database):
    """Read helpers returning detached documents (or None)."""

    class _Loader:
        async def user(self, user_id: UUID) -> Optional[User]:
            return await database.with_session(lambda tx: tx.find_by_id(User, user_id))

        async def place(self, place_id: UUID) -> Optional[Place]:
            return await database.with_session(lambda tx: tx.find_by_id(Place, place_id))

        async def all_places(self) -> List[Place]:
            return await database.with_session(lambda tx: tx.find(Place))

    return _Loader()


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

def auth_headers(user_id: UUID, email: str = "someone@example.com") -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_issuer.issue_for(user_id, email)}"}


@pytest_asyncio.fixture
async def test_client(database, fake_geocoder):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    The consistency manager is swapped for one using the fake geocoder;
    everything else runs against the test database and STORAGE_ROOT.
    """
    from placeshare.main import app

    app.dependency_overrides[get_consistency_manager] = lambda: ConsistencyManager(
        store=database,
        geocoder=fake_geocoder,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def upload(name: str = "photo.png", content: bytes = PNG_BYTES, content_type: str = "image/png") -> Tuple:
    return (name, content, content_type)
