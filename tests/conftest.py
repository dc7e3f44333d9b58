import os
import uuid
from contextlib import contextmanager
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

# Optional local overrides, then safe defaults. Must run before the apps are
# imported because they read settings at import time.
env_test_path = os.path.join(os.path.dirname(__file__), "..", ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("APP_URL", "http://api.test")
os.environ.setdefault("FRONTEND_URL", "http://shop.test")

from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from libs.db.config import build_engine, build_sessionmaker  # noqa: E402
from services.payments_service import models as _payment_models  # noqa: E402,F401
from services.payments_service.gateways.registry import (  # noqa: E402
    GatewayRegistry,
    get_gateway_registry,
)
from services.payments_service.models import PaymentMethod  # noqa: E402
from services.store_service import models as _store_models  # noqa: E402,F401
from tests.fakes import FakeGateway  # noqa: E402

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh SQLite database file per test, with every table created.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Independent sessions, for tests that need concurrent transactions."""
    return build_sessionmaker(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session for setup, assertions and the HTTP apps.
    """
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------


@pytest.fixture
def card_gateway() -> FakeGateway:
    return FakeGateway("fakecard")


@pytest.fixture
def wallet_gateway() -> FakeGateway:
    return FakeGateway("fakewallet")


@pytest.fixture
def gateway_registry(card_gateway, wallet_gateway) -> GatewayRegistry:
    return GatewayRegistry(
        {
            PaymentMethod.CARD: card_gateway,
            PaymentMethod.MOBILE_WALLET: wallet_gateway,
        }
    )


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------


def make_token(user_id: Optional[str] = None, role: str = "authenticated") -> str:
    """Sign a JWT the way the identity provider would."""
    user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
    return jwt.encode(
        {"sub": user_id, "email": f"{user_id}@test.com", "role": role},
        settings.AUTH_JWT_SECRET,
        algorithm=settings.AUTH_JWT_ALGORITHM,
    )


def user_headers(user_id: str, role: str = "authenticated") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


def admin_headers() -> dict:
    return user_headers("admin-user", role="service_role")


def guest_headers(guest_token: Optional[str] = None) -> dict:
    return {"X-Guest-Token": guest_token or str(uuid.uuid4())}


def new_guest_token() -> str:
    return str(uuid.uuid4())


@contextmanager
def override_registry(app, registry: GatewayRegistry):
    """Temporarily route an app's gateway lookups to ``registry``."""
    previous = app.dependency_overrides.get(get_gateway_registry)
    app.dependency_overrides[get_gateway_registry] = lambda: registry
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_gateway_registry, None)
        else:
            app.dependency_overrides[get_gateway_registry] = previous


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


async def _client_for(app, db_session, registry) -> AsyncGenerator[AsyncClient, None]:
    from libs.db.session import get_async_db

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_gateway_registry] = lambda: registry

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def store_client(db_session, gateway_registry) -> AsyncGenerator[AsyncClient, None]:
    """Store Service app with the test database and fake gateways."""
    from services.store_service.app.main import app

    async for ac in _client_for(app, db_session, gateway_registry):
        yield ac


@pytest_asyncio.fixture
async def payments_client(
    db_session, gateway_registry
) -> AsyncGenerator[AsyncClient, None]:
    """Payments Service app with the test database and fake gateways."""
    from services.payments_service.app.main import app

    async for ac in _client_for(app, db_session, gateway_registry):
        yield ac
