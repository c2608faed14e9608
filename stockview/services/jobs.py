import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from stockview.exceptions import (
    AutomationError,
    InvalidTransitionError,
    ScrapeCancelledError,
)
from stockview.schemas.credentials import BrokerCredentials
from stockview.schemas.scrape import RawHolding, ScrapeProgress, ScrapeSession
from stockview.services.aggregation import map_raw_holdings
from stockview.services.credentials import CredentialProvider
from stockview.services.otp import OTPChannel
from stockview.services.scrape_sessions import ScrapeSessionService

logger = logging.getLogger(__name__)


class Scraper(Protocol):
    async def scrape(
        self,
        credentials: Optional[BrokerCredentials],
        on_progress: Callable[[int, str], Awaitable[None]],
        on_otp_request: Optional[Callable[[], Awaitable[str]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[RawHolding]:
        ...


ScraperFactory = Callable[[str], Scraper]


class ScrapeJobRunner:
    """
    Runs scrapes in the background, one asyncio task per session.

    Failures never escape the task: they end the session as failed with a
    readable error. Cancelling a session stops the browser work at its next
    checkpoint.
    """

    def __init__(
        self,
        sessions: ScrapeSessionService,
        credentials: CredentialProvider,
        otp: OTPChannel,
        scraper_factory: ScraperFactory,
        otp_timeout: float = 60.0,
    ):
        self.sessions = sessions
        self.credentials = credentials
        self.otp = otp
        self.scraper_factory = scraper_factory
        self.otp_timeout = otp_timeout
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}

    def is_running(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    async def start(self, account_name: str, broker_id: str = "groww") -> ScrapeSession:
        """Create a session and return it immediately; the scrape continues in the background."""
        scraper = self.scraper_factory(broker_id)
        session = await self.sessions.create_session(account_name, broker_id)

        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self._run(session.id, session.account_name, scraper, cancel_event),
            name=f"scrape-{session.id}",
        )
        self._tasks[session.id] = task
        self._cancel_events[session.id] = cancel_event
        task.add_done_callback(lambda _: self._forget(session.id))
        return session

    def _forget(self, session_id: str):
        self._tasks.pop(session_id, None)
        self._cancel_events.pop(session_id, None)

    async def wait(self, session_id: str):
        """Wait for a background scrape to finish (no-op if it is not running)."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.shield(task)

    async def _run(self, session_id: str, account_name: str, scraper: Scraper, cancel_event: asyncio.Event):
        async def on_progress(percent: int, stage: str):
            await self.sessions.advance_progress(session_id, percent, stage)

        async def on_otp_request() -> str:
            # the scraper has already reported the OTP stage through on_progress
            return await self.otp.await_value(session_id, self.otp_timeout)

        try:
            await self.sessions.mark_running(session_id, ScrapeProgress(percent=5, stage="starting scrape"))
            credentials = await self.credentials.get_credentials_for_scraping(account_name)

            raw = await scraper.scrape(credentials, on_progress, on_otp_request, cancel_event)
            if cancel_event.is_set():
                raise ScrapeCancelledError(session_id)

            await self.sessions.advance_progress(session_id, 60, f"extracted raw ({len(raw)})")
            mapped = map_raw_holdings(raw, account_name)
            if not mapped:
                raise AutomationError("No holdings were extracted from the broker page")

            await self.sessions.attach_preview(session_id, raw, mapped)
            await self.sessions.advance_progress(session_id, 80, f"mapped {len(mapped)} holdings")
            await self.sessions.mark_completed(session_id)
        except ScrapeCancelledError:
            logger.info(f"Scrape {session_id} stopped after cancellation")
        except InvalidTransitionError as e:
            # the session was finished elsewhere (usually cancelled) while we worked
            logger.info(f"Scrape {session_id} stopped: {e}")
        except AutomationError as e:
            await self._fail(session_id, str(e), e.kind)
        except asyncio.CancelledError:
            await self._fail(session_id, "Scrape interrupted by service shutdown", "internal")
            raise
        except Exception as e:
            logger.error(f"Scrape {session_id} crashed: {e}", exc_info=True)
            await self._fail(session_id, f"Unexpected error: {e}", "internal")
        finally:
            self.otp.cancel(session_id)

    async def _fail(self, session_id: str, error: str, kind: str):
        try:
            await self.sessions.mark_failed(session_id, error, kind)
        except InvalidTransitionError:
            logger.info(f"Scrape {session_id} already finished, not marking it failed")

    async def cancel(self, session_id: str) -> ScrapeSession:
        session = await self.sessions.mark_cancelled(session_id)
        event = self._cancel_events.get(session_id)
        if event is not None:
            event.set()
        self.otp.cancel(session_id)
        return session

    async def submit_otp(self, session_id: str, otp: str) -> bool:
        """
        Pass an OTP to the session's scrape. True when a waiting scrape took it;
        False when it was held for the scrape's next OTP prompt.
        """
        session = await self.sessions.get_session(session_id)
        if session.is_terminal:
            raise InvalidTransitionError(session_id, session.status.value, "otp")
        return self.otp.provide_value(session_id, otp.strip())

    async def shutdown(self):
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} running scrape(s)")
