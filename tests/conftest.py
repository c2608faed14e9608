"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from stockview.config import Settings
from stockview.database import create_engine, create_session_factory, init_db
from stockview.schemas.account import Stock
from stockview.services.browser_scraper import MockHoldingsScraper
from stockview.services.container import ServiceContainer
from stockview.services.finance import compute_stock_derived_fields
from stockview.services.record_store import RecordStore


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's .env."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        scrape_mode="mock",
        screenshot_dir=str(tmp_path / "screenshots"),
        navigation_backoff_seconds=0,
        network_capture_wait_seconds=0,
        extraction_timeout_seconds=5,
        otp_timeout_seconds=1,
    )


@pytest_asyncio.fixture
async def async_engine(settings):
    """Create async test engine with fresh tables."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def store(session_factory):
    return RecordStore(session_factory)


@pytest_asyncio.fixture
async def services(settings, session_factory):
    """Service container wired to the test database, with an instant mock scraper."""
    container = ServiceContainer(settings, session_factory)
    container.jobs.scraper_factory = lambda broker_id: MockHoldingsScraper(step_delay=0)
    yield container
    await container.close()


@pytest_asyncio.fixture
async def client(settings, services):
    """HTTP client against the app, bypassing the lifespan so the test container is used."""
    from stockview.main import create_app

    app = create_app(settings)
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_stock():
    """Factory for persisted-looking Stock rows with derived fields filled in."""

    def _make(
        stock_name,
        quantity,
        avg_price,
        market_price,
        account_id="acc-1",
        account_name="Main",
        updated_at=None,
        **extra,
    ):
        stamp = updated_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
        return Stock(
            id=str(uuid4()),
            account_id=account_id,
            account_name=account_name,
            stock_name=stock_name,
            avg_price=avg_price,
            market_price=market_price,
            quantity=quantity,
            created_at=stamp,
            updated_at=stamp,
            **compute_stock_derived_fields(quantity, avg_price, market_price),
            **extra,
        )

    return _make
