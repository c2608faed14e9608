import asyncio
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from stockview.exceptions import (
    ElementNotFoundError,
    ExtractionTimeoutError,
    LoginError,
    NavigationError,
    ScrapeCancelledError,
)
from stockview.schemas.credentials import BrokerCredentials
from stockview.services.browser_scraper import SAMPLE_HOLDINGS, HoldingsScraper, MockHoldingsScraper
from stockview.services.holdings_extractor import DOM_ROWS_SCRIPT
from stockview.services.site_adapter import GROWW

CREDENTIALS = BrokerCredentials(username="me@example.com", password="secret", pin="")

DOM_ROWS = [
    {
        "name": "Reliance Industries",
        "spans": ["12 shares", "Avg. ₹2,450.75"],
        "right_cells": ["+₹1,200.00", "₹2,550.20"],
    },
]

API_PAYLOAD = {
    "holdings": [
        {"symbol": "RELIANCE INDUSTRIES", "qty": 999, "avgPrice": 1, "ltp": 1},
        {"symbol": "TCS", "qty": 3, "avgPrice": "3,400", "ltp": "3,550.5"},
    ]
}


class FakeElement:
    def __init__(self):
        self.value = None

    async def fill(self, value):
        self.value = value


class FakeResponse:
    def __init__(self, url, payload, content_type="application/json"):
        self.url = url
        self.headers = {"content-type": content_type}
        self._payload = payload

    async def json(self):
        return self._payload


class FakePage:
    """Scripted stand-in for a Playwright page on the broker site."""

    def __init__(self, otp_required=False, missing=(), goto_failures=0, dom_delay=0.0):
        self.url = "about:blank"
        self.body = "Welcome back"
        self.otp_required = otp_required
        self.otp_fields = []
        self.missing = set(missing)
        self.goto_failures = goto_failures
        self.dom_delay = dom_delay
        self.visited = []
        self.filled = {}
        self.clicks = []
        self.handlers = []
        self.screenshots = []
        self.logged_in = False

    async def goto(self, url, **kwargs):
        self.visited.append(url)
        if self.goto_failures:
            self.goto_failures -= 1
            raise PlaywrightError("net::ERR_CONNECTION_RESET")
        self.url = url

    async def wait_for_selector(self, selector, **kwargs):
        if selector in self.missing:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def wait_for_timeout(self, ms):
        await asyncio.sleep(0)

    async def wait_for_load_state(self, state=None):
        pass

    async def fill(self, selector, value):
        self.filled[selector] = value

    async def click(self, selector):
        self.clicks.append(selector)
        if selector != GROWW.continue_button:
            return
        if GROWW.password_input in self.filled and self.otp_required and not self.otp_fields and not self.logged_in:
            self.body = "Enter the OTP sent to your phone"
            self.otp_fields = [FakeElement() for _ in range(6)]
        elif self.otp_fields and all(f.value for f in self.otp_fields):
            self.body = "Dashboard"
            self.logged_in = True

    async def inner_text(self, selector):
        return self.body

    async def query_selector_all(self, selector):
        if selector == GROWW.otp_inputs and not self.logged_in:
            return self.otp_fields
        return []

    async def query_selector(self, selector):
        return None

    def on(self, event, handler):
        self.handlers.append(handler)

    def remove_listener(self, event, handler):
        self.handlers.remove(handler)

    async def reload(self, **kwargs):
        for handler in list(self.handlers):
            await handler(FakeResponse("https://groww.in/v1/api/holdings/user", API_PAYLOAD))
            await handler(FakeResponse("https://groww.in/v1/api/user/profile", {"holdings": [{"symbol": "X", "qty": 1}]}))

    async def evaluate(self, script, arg=None):
        if script == DOM_ROWS_SCRIPT:
            await asyncio.sleep(self.dom_delay)
            return DOM_ROWS
        return 0

    async def screenshot(self, path, full_page=False):
        self.screenshots.append(path)


def scraper_for(page, settings):
    @asynccontextmanager
    async def factory():
        yield page

    return HoldingsScraper(GROWW, settings, page_factory=factory)


class ProgressLog:
    def __init__(self):
        self.events = []

    async def __call__(self, percent, stage):
        self.events.append((percent, stage))

    @property
    def percents(self):
        return [p for p, _ in self.events]


@pytest.mark.asyncio
async def test_login_and_extract_without_otp(settings):
    page = FakePage()
    progress = ProgressLog()

    holdings = await scraper_for(page, settings).scrape(CREDENTIALS, progress)

    assert page.visited == [GROWW.home_url, GROWW.holdings_url]
    assert page.filled[GROWW.email_input] == "me@example.com"
    assert page.filled[GROWW.password_input] == "secret"
    # DOM row wins over the API row with the same name; profile endpoint is ignored
    assert [(h.stock_name, h.quantity) for h in holdings] == [("Reliance Industries", "12"), ("TCS", "3")]
    assert holdings[0].market_price == "2550.20"
    assert holdings[1].avg_price == "3400"
    assert progress.percents == sorted(progress.percents)
    assert progress.percents[0] == 10 and progress.percents[-1] == 55
    assert page.handlers == []


@pytest.mark.asyncio
async def test_otp_is_requested_and_entered_digit_by_digit(settings):
    page = FakePage(otp_required=True)
    progress = ProgressLog()
    asked = []

    async def on_otp_request():
        asked.append(True)
        return " 123456 "

    holdings = await scraper_for(page, settings).scrape(CREDENTIALS, progress, on_otp_request)

    assert asked == [True]
    assert [f.value for f in page.otp_fields] == list("123456")
    assert (25, "waiting for OTP") in progress.events
    assert len(holdings) == 2


@pytest.mark.asyncio
async def test_otp_without_a_source_fails_with_screenshot(settings):
    page = FakePage(otp_required=True)

    with pytest.raises(LoginError, match="OTP required"):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog())

    assert len(page.screenshots) == 1
    assert page.screenshots[0].endswith(".png")


@pytest.mark.asyncio
async def test_navigation_is_retried(settings):
    page = FakePage(goto_failures=2)

    holdings = await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog())

    assert page.visited[:3] == [GROWW.home_url] * 3
    assert len(holdings) == 2


@pytest.mark.asyncio
async def test_navigation_gives_up_after_max_attempts(settings):
    page = FakePage(goto_failures=10)

    with pytest.raises(NavigationError):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog())

    assert len(page.visited) == settings.navigation_max_attempts


@pytest.mark.asyncio
async def test_missing_login_button(settings):
    page = FakePage(missing={GROWW.login_button})

    with pytest.raises(ElementNotFoundError):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog())


@pytest.mark.asyncio
async def test_extraction_is_time_boxed(settings):
    settings.extraction_timeout_seconds = 0.05
    page = FakePage(dom_delay=1.0)

    with pytest.raises(ExtractionTimeoutError):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog())


@pytest.mark.asyncio
async def test_cancel_before_start(settings):
    cancel = asyncio.Event()
    cancel.set()
    page = FakePage()

    with pytest.raises(ScrapeCancelledError):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog(), cancel_event=cancel)

    assert page.visited == []


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_otp(settings):
    cancel = asyncio.Event()
    page = FakePage(otp_required=True)

    async def on_otp_request():
        cancel.set()
        return "123456"

    with pytest.raises(ScrapeCancelledError):
        await scraper_for(page, settings).scrape(CREDENTIALS, ProgressLog(), on_otp_request, cancel)

    assert all(f.value is None for f in page.otp_fields)
    assert page.screenshots == []


@pytest.mark.asyncio
async def test_mock_scraper_returns_samples():
    progress = ProgressLog()

    holdings = await MockHoldingsScraper(step_delay=0).scrape(None, progress)

    assert [h.stock_name for h in holdings] == [h.stock_name for h in SAMPLE_HOLDINGS]
    assert progress.percents == [10, 40]
