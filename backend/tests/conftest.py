"""
Pytest fixtures for test database, client, fakes, and authentication.

Each test gets a freshly created schema on TEST_DATABASE_URL (a SQLite file
via aiosqlite unless overridden, e.g. with a PostgreSQL test database).
The image store and mailer are replaced with in-memory fakes.
"""

import itertools
import os
import tempfile
from datetime import timedelta
from typing import AsyncGenerator

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SMTP_HOST", "")

import pytest
import pytest_asyncio
from fastapi import UploadFile
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from staybook.main import app
from staybook.api.deps import get_image_store, get_mailer
from staybook.db.base import Base, utcnow
from staybook.db.session import get_db
from staybook.core.security import create_access_token, hash_password
from staybook.domain.enums import AccountStatus, Role
from staybook.domain.periods import start_of_day
from staybook.infrastructure import ImageStore, Mailer
from staybook.models import Account, Booking, Property, TourPackage

# Test database URL - uses a separate database
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'staybook_test.db')}",
)

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

PASSWORD = "testpassword123"


class FakeImageStore(ImageStore):
    """Keeps uploaded bytes in memory; individual uploads/deletes can be made to fail."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_uploads: set[str] = set()
        self.fail_deletes: set[str] = set()
        self._ids = itertools.count(1)

    async def upload(self, file: UploadFile, folder: str) -> str:
        if file.filename in self.fail_uploads:
            raise RuntimeError(f"upload of {file.filename} failed")
        url = f"https://images.test/{folder}/{next(self._ids)}-{file.filename}"
        self.objects[url] = await file.read()
        return url

    async def delete(self, url: str) -> bool:
        if url in self.fail_deletes:
            raise RuntimeError(f"delete of {url} failed")
        self.deleted.append(url)
        return self.objects.pop(url, None) is not None

    def seed(self, url: str) -> str:
        self.objects[url] = b"seed"
        return url


class FakeMailer(Mailer):
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html})


def days_from_today(days: int):
    """Midnight UTC `days` from today."""
    return start_of_day(utcnow()) + timedelta(days=days)


def stay(start_in_days: int, nights: int) -> tuple[str, str]:
    check_in = days_from_today(start_in_days)
    return check_in.isoformat(), (check_in + timedelta(days=nights)).isoformat()


def headers_for(account: Account) -> dict:
    token = create_access_token(data={"sub": str(account.id)})
    return {"Authorization": f"Bearer {token}"}


def png(name: str = "proof.png") -> tuple:
    return ("payment_images", (name, b"\x89PNG\r\n\x1a\nfake", "image/png"))


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def image_store() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    image_store: FakeImageStore,
    mailer: FakeMailer,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, image store and mailer dependencies overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_account(db_session: AsyncSession):
    """Factory for accounts with a known password."""

    async def _make(
        email: str,
        role: Role = Role.USER,
        account_status: AccountStatus = AccountStatus.ACTIVE,
        first_name: str = "Test",
    ) -> Account:
        account = Account(
            first_name=first_name,
            last_name="Account",
            email=email,
            hashed_password=hash_password(PASSWORD),
            role=role.value,
            account_status=account_status.value,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest_asyncio.fixture
async def guest(make_account) -> Account:
    return await make_account("guest@example.com", first_name="Gina")


@pytest_asyncio.fixture
async def other_guest(make_account) -> Account:
    return await make_account("other.guest@example.com", first_name="Otto")


@pytest_asyncio.fixture
async def host(make_account) -> Account:
    return await make_account("host@example.com", role=Role.HOST, first_name="Hana")


@pytest_asyncio.fixture
async def other_host(make_account) -> Account:
    return await make_account("other.host@example.com", role=Role.HOST)


@pytest_asyncio.fixture
async def admin(make_account) -> Account:
    return await make_account("admin@example.com", role=Role.ADMIN)


@pytest_asyncio.fixture
async def property_listing(db_session: AsyncSession, host: Account, image_store: FakeImageStore) -> Property:
    """An available property in Lisbon at 100/night."""
    listing = Property(
        title="Sea View Flat",
        description="Two bedrooms above the river",
        host_id=host.id,
        image_urls=[image_store.seed("https://images.test/staybook/properties/flat.png")],
        address="Rua Augusta 1",
        city="Lisbon",
        price_per_night=100.0,
        amenities=["wifi"],
    )
    db_session.add(listing)
    await db_session.commit()
    return listing


@pytest_asyncio.fixture
async def tour_listing(db_session: AsyncSession, host: Account, image_store: FakeImageStore) -> TourPackage:
    listing = TourPackage(
        title="Douro Valley Day Trip",
        description="Wine tasting and river cruise",
        host_id=host.id,
        image_urls=[image_store.seed("https://images.test/staybook/tours/douro.png")],
        price=150.0,
        duration="1 day",
    )
    db_session.add(listing)
    await db_session.commit()
    return listing


@pytest.fixture
def seed_booking(db_session: AsyncSession):
    """Insert a booking directly, bypassing the service."""

    async def _seed(user: Account, listing, start_in_days: int, nights: int, **fields) -> Booking:
        check_in = days_from_today(start_in_days)
        is_tour = isinstance(listing, TourPackage)
        booking = Booking(
            user_id=user.id,
            property_id=None if is_tour else listing.id,
            tour_package_id=listing.id if is_tour else None,
            check_in=check_in,
            check_out=check_in + timedelta(days=nights),
            guests=fields.pop("guests", 2),
            total_price=fields.pop("total_price", 100.0 * nights),
            **fields,
        )
        db_session.add(booking)
        await db_session.commit()
        return booking

    return _seed
