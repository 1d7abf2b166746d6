# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import dataclasses
import os
import uuid
from decimal import Decimal
from typing import Callable, Generator

import pytest
import pytest_asyncio
import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_cart_engine.db")
os.environ.setdefault("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./test_cart_engine.db")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from cart_engine.main import app
from cart_engine.db.session import Base
from cart_engine.db.session_async import AsyncSessionLocal
from cart_engine.models.product import Product
from cart_engine.services.catalog_client import ProductSnapshot
from cart_engine.services.coupon_service import CouponCatalog
from cart_engine.services.pricing import PricingRules

SQLALCHEMY_DATABASE_URL = os.environ["DATABASE_URL"]

sync_engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=sync_engine)


# ---------- Fixtures ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create the SQLite schema once per test session."""
    import cart_engine.models.cart  # noqa: F401
    import cart_engine.models.product  # noqa: F401

    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest_asyncio.fixture(scope="function")
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_db_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def pricing_rules() -> PricingRules:
    return PricingRules.from_settings()


@pytest.fixture
def coupon_catalog() -> CouponCatalog:
    return CouponCatalog.from_settings()


# --- Catalog ---

@pytest.fixture(scope="function")
def make_product(db_session: Session) -> Callable[..., Product]:
    """Insert a catalog product committed outside the async session under test."""

    def _make(
        *,
        price: str = "10.00",
        name: str | None = None,
        vendor_id: uuid.UUID | None = None,
        category: str | None = "general",
        stock_quantity: int = 100,
        active: bool = True,
        track_inventory: bool = True,
        allow_backorders: bool = False,
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            vendor_id=vendor_id or uuid.uuid4(),
            name=name or f"Product-{uuid.uuid4().hex[:8]}",
            category=category,
            price=Decimal(price),
            currency="USD",
            active=active,
            stock_quantity=stock_quantity,
            track_inventory=track_inventory,
            allow_backorders=allow_backorders,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def update_product(db_session: Session) -> Callable[..., None]:
    """Change catalog fields of an existing product, as the product service would."""

    def _update(product_id: uuid.UUID, **fields) -> None:
        product = db_session.get(Product, product_id)
        for key, value in fields.items():
            setattr(product, key, value)
        db_session.commit()

    return _update


class InMemoryCatalog:
    """CatalogLookup double whose products can be changed between calls."""

    def __init__(self) -> None:
        self.products: dict[uuid.UUID, ProductSnapshot] = {}

    def add(self, **overrides) -> ProductSnapshot:
        fields = dict(
            product_id=uuid.uuid4(),
            price=Decimal("10.00"),
            currency="USD",
            active=True,
            stock_quantity=100,
            track_inventory=True,
            allow_backorders=False,
            category="general",
            vendor_id=uuid.uuid4(),
            name=f"Product-{uuid.uuid4().hex[:8]}",
            image_url=None,
        )
        fields.update(overrides)
        if "price" in overrides:
            fields["price"] = Decimal(str(overrides["price"]))
        snapshot = ProductSnapshot(**fields)
        self.products[snapshot.product_id] = snapshot
        return snapshot

    def update(self, product_id: uuid.UUID, **changes) -> None:
        self.products[product_id] = dataclasses.replace(self.products[product_id], **changes)

    def remove(self, product_id: uuid.UUID) -> None:
        self.products.pop(product_id, None)

    async def get_product(self, product_id: uuid.UUID) -> ProductSnapshot | None:
        return self.products.get(product_id)


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()
