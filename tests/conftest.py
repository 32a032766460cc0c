from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from src.api.deps import (
    get_blob_storage,
    get_certificate_renderer,
    get_db_session,
    get_payment_gateways,
)
from src.api.main import app
from src.infrastructure.db.base import Base
from src.infrastructure.db.models import PaymentProvider
from src.libs.certificate_pdf import CertificateRenderer

from tests.utils import (
    FakeAbacatePayClient,
    FakeBlobStorage,
    FakeStripeGateway,
    FakeTemplateFetcher,
)


@pytest.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    # One shared in-memory connection so every session sees the same database
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Session for seeding and asserting directly against the database."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def storage() -> FakeBlobStorage:
    return FakeBlobStorage()


@pytest.fixture()
def template_fetcher() -> FakeTemplateFetcher:
    return FakeTemplateFetcher()


@pytest.fixture()
def renderer(template_fetcher: FakeTemplateFetcher) -> CertificateRenderer:
    return CertificateRenderer(template_fetcher)


@pytest.fixture()
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture()
def abacatepay_client() -> FakeAbacatePayClient:
    return FakeAbacatePayClient()


@pytest.fixture()
def gateways(
    stripe_gateway: FakeStripeGateway, abacatepay_client: FakeAbacatePayClient
) -> dict:
    return {
        PaymentProvider.STRIPE: stripe_gateway,
        PaymentProvider.ABACATEPAY: abacatepay_client,
    }


@pytest.fixture()
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    storage: FakeBlobStorage,
    renderer: CertificateRenderer,
    gateways: dict,
) -> AsyncIterator[AsyncClient]:
    """HTTP client wired to the in-memory database and fake collaborators."""

    async def override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_blob_storage] = lambda: storage
    app.dependency_overrides[get_certificate_renderer] = lambda: renderer
    app.dependency_overrides[get_payment_gateways] = lambda: gateways

    transport = ASGITransport(app=app)  # type: ignore
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
