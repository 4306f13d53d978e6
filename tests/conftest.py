"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database shared by the test and the
app through a StaticPool, with get_db overridden to use it.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_mock")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_URL", "http://testserver")

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stitchcraft.api.dependencies import get_rate_limiter
from stitchcraft.api.main import app
from stitchcraft.core.auth import create_session, hash_password
from stitchcraft.core.rate_limit import RateLimiter
from stitchcraft.core.tracking import create_tracking_token
from stitchcraft.database.connection import get_db
from stitchcraft.database.models import (
    Base,
    Client,
    Invoice,
    Order,
    Organization,
    OrganizationMember,
    User,
    UserRole,
    UserStatus,
    WorkerRole,
)

PASSWORD = "correct-horse-battery"


@dataclass
class Workshop:
    """One seeded tenant: owner, organization, a client and their order."""

    tailor: User
    organization: Organization
    client: Client
    order: Order
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_limiter() -> AsyncMock:
    return AsyncMock(spec=RateLimiter)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession], rate_limiter: AsyncMock
) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client against the app, bound to the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    status: UserStatus = UserStatus.ACTIVE,
    name: str = "Test User",
) -> User:
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        name=name,
        role=role.value,
        status=status.value,
    )
    db.add(user)
    await db.flush()
    return user


async def create_workshop(db: AsyncSession, slug: str, phone: str) -> Workshop:
    tailor = await create_user(db, f"{slug}@stitchcraft.gh", UserRole.TAILOR, name=f"{slug} owner")
    organization = Organization(name=f"{slug} Studio", slug=slug, owner_id=tailor.id)
    db.add(organization)
    await db.flush()
    db.add(
        OrganizationMember(
            organization_id=organization.id,
            user_id=tailor.id,
            role=WorkerRole.MANAGER.value,
            permissions=[],
        )
    )

    client = Client(
        tailor_id=tailor.id,
        organization_id=organization.id,
        name="Akosua Boateng",
        phone=phone,
        email="akosua@example.com",
        region="Greater Accra",
        city="Accra",
    )
    db.add(client)
    await db.flush()

    order = Order(
        order_number="SC-2601-0001",
        tailor_id=tailor.id,
        organization_id=organization.id,
        client_id=client.id,
        garment_type="KABA_AND_SLIT",
        material_cost=Decimal("200.00"),
        labor_cost=Decimal("300.00"),
        total_amount=Decimal("500.00"),
    )
    db.add(order)
    await db.flush()

    session = await create_session(db, tailor.id)
    await db.commit()
    return Workshop(
        tailor=tailor, organization=organization, client=client, order=order, token=session.token
    )


@pytest_asyncio.fixture
async def workshop(db: AsyncSession) -> Workshop:
    return await create_workshop(db, "ama-kente", "+233241234567")


@pytest_asyncio.fixture
async def other_workshop(db: AsyncSession) -> Workshop:
    return await create_workshop(db, "kofi-tailoring", "+233201112222")


@pytest_asyncio.fixture
async def tracking_token(db: AsyncSession, workshop: Workshop) -> str:
    issued = await create_tracking_token(db, workshop.client.id)
    await db.commit()
    return issued.token


async def add_worker(
    db: AsyncSession,
    workshop: Workshop,
    role: WorkerRole = WorkerRole.WORKER,
    permissions: list = None,
) -> Dict[str, str]:
    """Add a worker to the workshop and return auth headers for them."""
    worker = await create_user(
        db, f"worker-{uuid.uuid4().hex[:8]}@stitchcraft.gh", UserRole.WORKER, name="Yaw Worker"
    )
    db.add(
        OrganizationMember(
            organization_id=workshop.organization.id,
            user_id=worker.id,
            role=role.value,
            permissions=permissions or [],
        )
    )
    session = await create_session(db, worker.id)
    await db.commit()
    return {"Authorization": f"Bearer {session.token}"}


async def add_client(
    db: AsyncSession, workshop: Workshop, phone: str, name: str = "Kwame Asante"
) -> Client:
    client = Client(
        tailor_id=workshop.tailor.id,
        organization_id=workshop.organization.id,
        name=name,
        phone=phone,
    )
    db.add(client)
    await db.commit()
    return client


async def add_invoice(
    db: AsyncSession,
    workshop: Workshop,
    client_id: uuid.UUID,
    order_id: Optional[uuid.UUID] = None,
    number: str = "INV-2601-0001",
) -> Invoice:
    """A 100 GHS draft invoice with no tax, enough for payment and isolation checks."""
    invoice = Invoice(
        invoice_number=number,
        tailor_id=workshop.tailor.id,
        organization_id=workshop.organization.id,
        client_id=client_id,
        order_id=order_id,
        items=[
            {
                "description": "Kaba and slit",
                "quantity": "1",
                "unit_price": "100.00",
                "amount": "100.00",
            }
        ],
        subtotal=Decimal("100.00"),
        vat_amount=Decimal("0"),
        nhil_amount=Decimal("0"),
        getfund_amount=Decimal("0"),
        total_tax=Decimal("0"),
        total_amount=Decimal("100.00"),
    )
    db.add(invoice)
    await db.commit()
    return invoice
