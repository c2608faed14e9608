import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockview.config import Settings
from stockview.services.browser_scraper import HoldingsScraper, MockHoldingsScraper
from stockview.services.commit import CommitService
from stockview.services.credentials import CredentialProvider
from stockview.services.jobs import Scraper, ScrapeJobRunner
from stockview.services.otp import OTPChannel
from stockview.services.portfolio import AccountService, ViewService
from stockview.services.record_store import RecordStore
from stockview.services.scrape_sessions import ScrapeSessionService
from stockview.services.sectors import SectorEnricher
from stockview.services.site_adapter import get_adapter

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Owns every long-lived service object; built once per application."""

    def __init__(self, settings: Settings, session_factory: async_sessionmaker[AsyncSession]):
        self.settings = settings
        self.store = RecordStore(session_factory)
        self.enricher = SectorEnricher(settings.sector_map_path)
        self.credentials = CredentialProvider(self.store)
        self.otp = OTPChannel()
        self.sessions = ScrapeSessionService(self.store)
        self.accounts = AccountService(self.store)
        self.views = ViewService(self.store)
        self.commit = CommitService(self.store, self.enricher)
        self.jobs = ScrapeJobRunner(
            self.sessions,
            self.credentials,
            self.otp,
            self.make_scraper,
            otp_timeout=settings.otp_timeout_seconds,
        )

    def make_scraper(self, broker_id: str) -> Scraper:
        adapter = get_adapter(broker_id)
        if self.settings.is_live:
            return HoldingsScraper(adapter, self.settings)
        return MockHoldingsScraper()

    async def housekeeping(self):
        """Drop unused OTP values and old finished sessions."""
        self.otp.purge_expired(self.settings.otp_retention_seconds)
        await self.sessions.purge_finished(timedelta(hours=self.settings.session_retention_hours))

    async def close(self):
        await self.jobs.shutdown()
