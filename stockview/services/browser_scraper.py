import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from stockview.config import Settings
from stockview.exceptions import (
    AutomationError,
    CaptchaDetectedError,
    ElementNotFoundError,
    ExtractionTimeoutError,
    LoginError,
    NavigationError,
    ScrapeCancelledError,
)
from stockview.schemas.credentials import BrokerCredentials
from stockview.schemas.scrape import RawHolding
from stockview.services.holdings_extractor import (
    DOM_ROWS_SCRIPT,
    SCROLL_SCRIPT,
    extract_holdings_from_payload,
    merge_holdings,
    parse_dom_rows,
)
from stockview.services.site_adapter import SiteAdapter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], Awaitable[None]]
OTPRequestCallback = Callable[[], Awaitable[str]]
PageFactory = Callable[[], AsyncContextManager[Page]]

STEP_SETTLE_MS = 2000
SCROLL_SETTLE_MS = 500
MANUAL_LOGIN_POLL_MS = 2000
HOLDINGS_LINK_TIMEOUT_MS = 5000

OTP_STAGE = "waiting for OTP"


def _ms(seconds: float) -> float:
    return seconds * 1000


@asynccontextmanager
async def playwright_page(settings: Settings) -> AsyncIterator[Page]:
    """
    Open a page on a local Chromium, or on a remote browser when
    browser_ws_endpoint is set. Everything is closed on the way out.
    """
    async with async_playwright() as pw:
        if settings.browser_ws_endpoint:
            logger.info("Connecting to remote browser")
            browser = await pw.chromium.connect_over_cdp(settings.browser_ws_endpoint)
        else:
            browser = await pw.chromium.launch(headless=settings.browser_headless)
        try:
            context = await browser.new_context(
                user_agent=settings.browser_user_agent,
                viewport={"width": 1366, "height": 900},
            )
            try:
                page = await context.new_page()
                page.set_default_timeout(_ms(settings.login_step_timeout_seconds))
                yield page
            finally:
                await context.close()
        finally:
            await browser.close()
            logger.info("Browser closed")


class HoldingsScraper:
    """Logs into a broker site with Playwright and reads the holdings page."""

    def __init__(self, adapter: SiteAdapter, settings: Settings, page_factory: Optional[PageFactory] = None):
        self.adapter = adapter
        self.settings = settings
        self._page_factory = page_factory or (lambda: playwright_page(settings))

    async def scrape(
        self,
        credentials: Optional[BrokerCredentials],
        on_progress: ProgressCallback,
        on_otp_request: Optional[OTPRequestCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[RawHolding]:
        """
        Run the whole login and extraction flow.

        Without credentials the site is opened and the user is given
        manual_login_timeout_seconds to log in by hand.
        """
        run = _ScrapeRun(self, on_progress, cancel_event)
        await run.progress(10, "connecting to browser")
        try:
            async with self._page_factory() as page:
                return await run.execute(page, credentials, on_otp_request)
        except PlaywrightError as e:
            raise AutomationError(f"Browser automation failed: {e}") from e


class _ScrapeRun:
    """State of one scrape call; the page belongs to it alone."""

    def __init__(self, scraper: HoldingsScraper, on_progress: ProgressCallback, cancel_event: Optional[asyncio.Event]):
        self.adapter = scraper.adapter
        self.settings = scraper.settings
        self._on_progress = on_progress
        self._cancel_event = cancel_event

    def check_cancelled(self):
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ScrapeCancelledError()

    async def progress(self, percent: int, stage: str):
        self.check_cancelled()
        await self._on_progress(percent, stage)

    async def execute(
        self,
        page: Page,
        credentials: Optional[BrokerCredentials],
        on_otp_request: Optional[OTPRequestCallback],
    ) -> List[RawHolding]:
        try:
            await self.progress(15, f"opening {self.adapter.home_url}")
            await self.navigate_with_retry(page, self.adapter.home_url)

            if credentials is None:
                await self.progress(20, "waiting for manual login")
                await self.wait_for_manual_login(page)
            else:
                await self.progress(20, "logging in")
                await self.login(page, credentials, on_otp_request)

            await self.progress(40, "login successful, navigating to holdings")
            await self.navigate_to_holdings(page)

            await self.progress(45, "on holdings page, extracting holdings")
            try:
                holdings = await asyncio.wait_for(
                    self.extract(page), timeout=self.settings.extraction_timeout_seconds
                )
            except asyncio.TimeoutError:
                raise ExtractionTimeoutError(
                    f"Holdings extraction took longer than {self.settings.extraction_timeout_seconds:g}s"
                ) from None

            await self.progress(55, f"extraction complete - {len(holdings)} holdings found")
            logger.info(f"Extracted {len(holdings)} holdings from {self.adapter.broker_id}")
            return holdings
        except (AutomationError, PlaywrightError) as e:
            logger.error(f"Scrape of {self.adapter.broker_id} failed: {e}")
            await self.screenshot_on_error(page)
            raise

    async def navigate_with_retry(self, page: Page, url: str):
        attempts = max(1, self.settings.navigation_max_attempts)
        last_error = None
        for attempt in range(1, attempts + 1):
            self.check_cancelled()
            try:
                await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=_ms(self.settings.navigation_timeout_seconds),
                )
                return
            except PlaywrightError as e:
                last_error = e
                logger.warning(f"Navigation attempt {attempt}/{attempts} to {url} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self.settings.navigation_backoff_seconds * 2 ** (attempt - 1))
        raise NavigationError(f"Could not open {url} after {attempts} attempts: {last_error}")

    async def wait_for(self, page: Page, selector: str, what: str, timeout_ms: Optional[float] = None):
        try:
            await page.wait_for_selector(
                selector, timeout=timeout_ms or _ms(self.settings.login_step_timeout_seconds)
            )
        except PlaywrightTimeoutError:
            raise ElementNotFoundError(f"{what} not found on {page.url}") from None

    async def submit_step(self, page: Page):
        await page.click(self.adapter.continue_button)
        await page.wait_for_timeout(STEP_SETTLE_MS)

    async def body_text(self, page: Page) -> str:
        try:
            return await page.inner_text("body")
        except PlaywrightError:
            return ""

    async def enter_digits(self, page: Page, selector: str, value: str, what: str):
        await self.wait_for(page, selector, f"{what} input")
        inputs = await page.query_selector_all(selector)
        if not inputs:
            raise ElementNotFoundError(f"No {what} input fields found")
        if len(inputs) == 1:
            await inputs[0].fill(value)
        else:
            for field, digit in zip(inputs, value):
                await field.fill(digit)
        await self.submit_step(page)

    async def login(
        self,
        page: Page,
        credentials: BrokerCredentials,
        on_otp_request: Optional[OTPRequestCallback],
    ):
        adapter = self.adapter

        await self.wait_for(page, adapter.login_button, "Login button")
        await page.click(adapter.login_button)
        await page.wait_for_timeout(STEP_SETTLE_MS)

        self.check_cancelled()
        await self.wait_for(page, adapter.email_input, "Email input")
        await page.fill(adapter.email_input, credentials.username)
        await self.submit_step(page)
        logger.info("Entered email address")

        self.check_cancelled()
        await self.wait_for(page, adapter.password_input, "Password input")
        await page.fill(adapter.password_input, credentials.password)
        await self.submit_step(page)
        logger.info("Entered password")

        body = await self.body_text(page)
        if adapter.shows_captcha(body):
            raise CaptchaDetectedError("The broker is showing a captcha; log in manually once and retry")

        otp_inputs = await page.query_selector_all(adapter.otp_inputs)
        if adapter.requires_otp(len(otp_inputs), body):
            if on_otp_request is None:
                raise LoginError("OTP required but no OTP source is available")
            await self.progress(25, OTP_STAGE)
            otp = (await on_otp_request()).strip()
            self.check_cancelled()
            await self.enter_digits(page, adapter.otp_inputs, otp, "OTP")
            logger.info("Entered OTP")

        body = await self.body_text(page)
        pin_inputs = await page.query_selector_all(adapter.pin_inputs)
        if adapter.requires_pin(len(pin_inputs), body):
            if not credentials.pin:
                raise LoginError("PIN required but no PIN is stored for this account")
            await self.progress(30, "entering PIN")
            await self.enter_digits(page, adapter.pin_inputs, credentials.pin, "PIN")
            logger.info("Entered PIN")

        await self.progress(35, "verifying login")
        if not await self.is_logged_in(page, allow_url_check=True):
            raise LoginError("Login verification failed")

    async def is_logged_in(self, page: Page, allow_url_check: bool) -> bool:
        for selector in self.adapter.login_success:
            if await page.query_selector(selector):
                logger.info(f"Login verified with indicator: {selector}")
                return True
        if allow_url_check and self.adapter.is_login_complete_url(page.url):
            logger.info("Login verified by URL change")
            return True
        return False

    async def wait_for_manual_login(self, page: Page):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.manual_login_timeout_seconds
        while True:
            self.check_cancelled()
            if await self.is_logged_in(page, allow_url_check=False):
                return
            if loop.time() >= deadline:
                raise LoginError(
                    f"Manual login not completed within {self.settings.manual_login_timeout_seconds:g}s"
                )
            await page.wait_for_timeout(MANUAL_LOGIN_POLL_MS)

    async def navigate_to_holdings(self, page: Page):
        await self.navigate_with_retry(page, self.adapter.holdings_url)
        if self.adapter.is_holdings_url(page.url):
            return
        await self.wait_for(page, self.adapter.holdings_link, "Holdings link", HOLDINGS_LINK_TIMEOUT_MS)
        await page.click(self.adapter.holdings_link)
        await page.wait_for_load_state("domcontentloaded")
        if not self.adapter.is_holdings_url(page.url):
            raise NavigationError(f"Could not reach the holdings page (at {page.url})")

    async def extract(self, page: Page) -> List[RawHolding]:
        captured: List[RawHolding] = []
        seen_urls = set()

        async def on_response(response):
            url = response.url
            if url in seen_urls or not self.adapter.is_holdings_response(url):
                return
            if "application/json" not in (response.headers.get("content-type") or ""):
                return
            seen_urls.add(url)
            try:
                payload = await response.json()
            except (PlaywrightError, ValueError) as e:
                logger.debug(f"Ignoring unreadable response from {url}: {e}")
                return
            captured.extend(extract_holdings_from_payload(payload))

        page.on("response", on_response)
        try:
            # reload so the site's own API calls happen while we listen
            await page.reload(wait_until="domcontentloaded")
            await page.wait_for_timeout(_ms(self.settings.network_capture_wait_seconds))

            dom_holdings: List[RawHolding] = []
            for _ in range(max(1, self.settings.max_scroll_passes)):
                self.check_cancelled()
                rows = await page.evaluate(DOM_ROWS_SCRIPT, self.adapter.holdings_row)
                before = len(dom_holdings)
                dom_holdings = merge_holdings(dom_holdings, parse_dom_rows(rows or []))
                if len(dom_holdings) == before:
                    break
                await page.evaluate(SCROLL_SCRIPT)
                await page.wait_for_timeout(SCROLL_SETTLE_MS)
        finally:
            page.remove_listener("response", on_response)

        logger.info(f"Holdings found: {len(dom_holdings)} in page, {len(captured)} in API responses")
        return merge_holdings(dom_holdings, captured)

    async def screenshot_on_error(self, page: Page) -> Optional[str]:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        path = Path(self.settings.screenshot_dir) / f"{self.adapter.broker_id}-error-{stamp}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            logger.warning(f"Failed to take error screenshot: {e}")
            return None
        logger.info(f"Error screenshot saved: {path}")
        return str(path)


SAMPLE_HOLDINGS = [
    RawHolding(stock_name="ABC Corp", quantity="10", avg_price="100", market_price="120",
               sector="Tech", subsector="Software"),
    RawHolding(stock_name="XYZ Ltd", quantity="5", avg_price="200", market_price="180",
               sector="Finance", subsector="Banking"),
]


class MockHoldingsScraper:
    """Stands in for the browser in mock scrape mode; same contract, fixed holdings."""

    def __init__(self, holdings: Optional[List[RawHolding]] = None, step_delay: float = 0.2):
        self.holdings = list(SAMPLE_HOLDINGS if holdings is None else holdings)
        self.step_delay = step_delay

    async def scrape(
        self,
        credentials: Optional[BrokerCredentials],
        on_progress: ProgressCallback,
        on_otp_request: Optional[OTPRequestCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[RawHolding]:
        for percent, stage in ((10, "connecting to browser"), (40, "mock data prepared")):
            if cancel_event is not None and cancel_event.is_set():
                raise ScrapeCancelledError()
            await on_progress(percent, stage)
            await asyncio.sleep(self.step_delay)
        if cancel_event is not None and cancel_event.is_set():
            raise ScrapeCancelledError()
        return [holding.model_copy() for holding in self.holdings]
