"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh SQLite database file (aiosqlite) with every table
created from the models. Set TEST_DATABASE_URL to run against Postgres.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tour_booking_test.db")
os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import create_access_token
from app.models.user import User
from app.models.tour import Category, Tour, TourInstance
from app.models.catalog import Service, TourService
from app.models.promotion import Coupon, Promotion, PromotionRule, PromotionTarget


@pytest_asyncio.fixture(scope="function")
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(db: AsyncSession, email: str, is_staff: bool = False) -> User:
    user = User(email=email, full_name=email.split("@")[0], is_staff=is_staff)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "traveller@example.com")


@pytest_asyncio.fixture
async def other_users(db_session: AsyncSession) -> list[User]:
    return [await make_user(db_session, f"guest{i}@example.com") for i in range(3)]


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "ops@example.com", is_staff=True)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return headers_for(test_user)


@pytest_asyncio.fixture
async def staff_headers(staff_user: User) -> dict:
    return headers_for(staff_user)


@pytest_asyncio.fixture
async def test_category(db_session: AsyncSession) -> Category:
    category = Category(name="Mountain treks")
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest_asyncio.fixture
async def test_tour(db_session: AsyncSession, test_category: Category) -> Tour:
    tour = Tour(name="Sapa Trek", category_id=test_category.id)
    db_session.add(tour)
    await db_session.commit()
    await db_session.refresh(tour)
    return tour


async def make_instance(
    db: AsyncSession,
    tour: Tour,
    capacity: int = 10,
    price: str = "100.00",
    days_ahead: int = 30,
) -> TourInstance:
    start = datetime.now(timezone.utc) + timedelta(days=days_ahead)
    instance = TourInstance(
        tour_id=tour.id,
        start_date=start,
        end_date=start + timedelta(days=3),
        capacity=capacity,
        price_base=Decimal(price),
        currency="VND",
    )
    db.add(instance)
    await db.commit()
    await db.refresh(instance)
    return instance


@pytest_asyncio.fixture
async def test_instance(db_session: AsyncSession, test_tour: Tour) -> TourInstance:
    """A 10-seat departure at 100.00 per seat."""
    return await make_instance(db_session, test_tour)


@pytest_asyncio.fixture
async def second_instance(db_session: AsyncSession, test_tour: Tour) -> TourInstance:
    return await make_instance(db_session, test_tour, days_ahead=60)


@pytest_asyncio.fixture
async def services(db_session: AsyncSession, test_tour: Tour) -> dict[str, Service]:
    """Lunch at list price 10.00, transfer overridden to 15.00 for the tour."""
    lunch = Service(name="Lunch", code="LUNCH", price=Decimal("10.00"), currency="VND")
    transfer = Service(name="Airport transfer", code="XFER", price=Decimal("20.00"), currency="VND")
    retired = Service(name="Old guidebook", code="BOOK", price=Decimal("5.00"), is_active=False)
    db_session.add_all([lunch, transfer, retired])
    await db_session.flush()
    db_session.add(TourService(
        tour_id=test_tour.id,
        service_id=transfer.id,
        price_override=Decimal("15.00"),
        currency="VND",
    ))
    await db_session.commit()
    return {"lunch": lunch, "transfer": transfer, "retired": retired}


async def make_promotion(
    db: AsyncSession,
    name: str,
    rules: list[tuple],
    promotion_type: str = "Automatic",
    targets: list[tuple] | None = None,
    coupon_codes: list[str] | None = None,
    **fields,
) -> Promotion:
    """`rules` are (rule_type, value[, max_discount_amount]); `targets` are (type, id)."""
    promotion = Promotion(
        name=name,
        promotion_type=promotion_type,
        rules=[
            PromotionRule(
                rule_type=rule[0],
                value=Decimal(str(rule[1])),
                max_discount_amount=Decimal(str(rule[2])) if len(rule) > 2 else None,
            )
            for rule in rules
        ],
        targets=[PromotionTarget(target_type=t, target_id=i) for t, i in (targets or [])],
        coupons=[Coupon(code=code) for code in (coupon_codes or [])],
        **fields,
    )
    db.add(promotion)
    await db.commit()
    await db.refresh(promotion)
    return promotion
