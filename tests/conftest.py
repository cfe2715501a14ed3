"""Shared fixtures: an isolated SQLite database and in-process fakes."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CATALOG_JITTER_MS", "0")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import backend.src.models  # noqa: F401
from backend.src.api.schemas.catalog_schemas import CatalogItemData
from backend.src.core.database import Base
from backend.src.core.exceptions import CrawlError
from backend.src.models.user import ROLE_ADMIN, User
from backend.src.services.push_transport import PushResult


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def create_user(
    db: AsyncSession,
    username: str = "alice",
    wx_user_id: Optional[str] = "wx-alice",
    role: Optional[str] = None,
    notify_frequency_minutes: int = 60,
) -> User:
    user = User(
        username=username,
        wx_user_id=wx_user_id,
        notify_frequency_minutes=notify_frequency_minutes,
    )
    if role is not None:
        user.role = role
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_admin(db: AsyncSession, username: str = "root") -> User:
    return await create_user(db, username=username, wx_user_id=None, role=ROLE_ADMIN)


def make_item(
    code: str = "455123",
    color: str = "09 BLACK",
    size: str = "M",
    sku_id: Optional[str] = None,
    category: str = "WOMEN",
    price: float = 99.0,
    product_id: Optional[str] = None,
    name: str = "Ultra Light Down Jacket",
    stock: int = 3,
) -> CatalogItemData:
    return CatalogItemData(
        product_id=product_id or f"u0000000{code}",
        code=code,
        name=name,
        color=color,
        size=size,
        price=price,
        min_price=price,
        origin_price=price,
        stock=stock,
        category=category,
        sku_id=sku_id,
    )


class FakeTransport:
    """Records pushes instead of sending them."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: List[dict] = []

    async def send(self, recipient, title, body, link_url=None) -> PushResult:
        self.sent.append(
            {"recipient": recipient, "title": title, "body": body, "link_url": link_url}
        )
        if self.succeed:
            return PushResult(success=True, data={"success": True})
        return PushResult(success=False, error="relay unavailable")

    async def close(self) -> None:
        pass


class FakeFetcher:
    """Serves a fixed snapshot; raises CrawlError when the listing is down."""

    def __init__(self, items: Optional[List[CatalogItemData]] = None, stock: int = 0):
        self.items = items or []
        self.stock = stock
        self.listing_down = False
        self.stock_down = False
        self.requested_categories: list = []

    async def fetch_candidate_codes(self, category=None) -> List[str]:
        self.requested_categories.append(category)
        if self.listing_down:
            raise CrawlError(message="Listing configuration unavailable", url="http://listing")
        return sorted({item.product_id for item in self.items})

    async def fetch_catalog_items(self, codes, category=None) -> List[CatalogItemData]:
        return [
            item
            for item in self.items
            if item.product_id in codes and (category is None or item.category == category.value)
        ]

    async def fetch_variant_stock(self, product_id, color, size) -> int:
        if self.stock_down:
            raise CrawlError(message="Product stock unavailable", url="http://stock")
        return self.stock

    async def search_by_code(self, code):
        return []

    async def close(self) -> None:
        pass


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fetcher():
    return FakeFetcher()
