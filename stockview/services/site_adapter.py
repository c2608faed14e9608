import re
from dataclasses import dataclass, field
from typing import Dict, Tuple

from stockview.exceptions import ValidationError


@dataclass(frozen=True)
class SiteAdapter:
    """Selectors, keywords and URL rules the browser driver needs for one broker site."""

    broker_id: str
    home_url: str
    holdings_url: str
    login_button: str
    email_input: str
    password_input: str
    continue_button: str
    otp_inputs: str
    pin_inputs: str
    login_success: Tuple[str, ...]
    holdings_link: str
    holdings_row: str
    otp_keywords: Tuple[str, ...] = ("otp", "one-time password", "verify")
    pin_keywords: Tuple[str, ...] = ("pin",)
    login_url_markers: Tuple[str, ...] = ("/login", "auth")
    captcha_keywords: Tuple[str, ...] = ("captcha", "i'm not a robot")
    holdings_response_pattern: re.Pattern = field(
        default=re.compile(r"(holding|position|portfolio|invest|equity|stock)", re.IGNORECASE)
    )

    @staticmethod
    def _mentions(body_text: str, keywords: Tuple[str, ...]) -> bool:
        text = (body_text or "").lower()
        return any(keyword in text for keyword in keywords)

    def requires_otp(self, input_count: int, body_text: str) -> bool:
        return input_count > 0 or self._mentions(body_text, self.otp_keywords)

    def requires_pin(self, input_count: int, body_text: str) -> bool:
        return input_count > 0 or self._mentions(body_text, self.pin_keywords)

    def shows_captcha(self, body_text: str) -> bool:
        return self._mentions(body_text, self.captcha_keywords)

    def is_login_complete_url(self, url: str) -> bool:
        return not any(marker in url for marker in self.login_url_markers)

    def is_holdings_url(self, url: str) -> bool:
        return "/holdings" in url

    def is_holdings_response(self, url: str) -> bool:
        return bool(self.holdings_response_pattern.search(url))


GROWW = SiteAdapter(
    broker_id="groww",
    home_url="https://groww.in",
    holdings_url="https://groww.in/stocks/user/holdings",
    login_button='button:has-text("Login/Sign up"), a:has-text("Login"), [data-testid="login-button"]',
    email_input=(
        'input[type="email"], input[name="email"], '
        'input[placeholder*="email"], input[placeholder*="Email"]'
    ),
    password_input=(
        'input[type="password"], input[name="password"], '
        'input[placeholder*="password"], input[placeholder*="Password"]'
    ),
    continue_button='button:has-text("Continue"), button:has-text("Submit"), input[type="submit"]',
    otp_inputs='input[type="text"][maxlength="1"], input[type="number"][maxlength="1"], .otp-input input',
    pin_inputs='input[type="password"][maxlength="1"], input[type="text"][maxlength="1"], .pin-input input',
    login_success=(".user-profile", '[data-testid="user-menu"]', ".dashboard", ".holdings"),
    holdings_link='a[href*="/holdings"], a:has-text("Holdings"), button:has-text("Holdings")',
    holdings_row="tr[data-holding-parent]",
)

ADAPTERS: Dict[str, SiteAdapter] = {GROWW.broker_id: GROWW}


def get_adapter(broker_id: str) -> SiteAdapter:
    adapter = ADAPTERS.get((broker_id or "").strip().lower())
    if adapter is None:
        raise ValidationError(f"Unsupported broker: {broker_id!r}")
    return adapter
