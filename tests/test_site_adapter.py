import pytest

from stockview.exceptions import ValidationError
from stockview.services.site_adapter import GROWW, get_adapter


def test_get_adapter():
    assert get_adapter("groww") is GROWW
    assert get_adapter(" Groww ") is GROWW
    with pytest.raises(ValidationError):
        get_adapter("zerodha")


def test_otp_detection():
    assert GROWW.requires_otp(6, "")
    assert GROWW.requires_otp(0, "Enter the OTP sent to +91 98xxxx")
    assert GROWW.requires_otp(0, "Please verify your email")
    assert not GROWW.requires_otp(0, "Welcome back")


def test_pin_detection():
    assert GROWW.requires_pin(4, "")
    assert GROWW.requires_pin(0, "Enter your Groww PIN")
    assert not GROWW.requires_pin(0, "Your holdings")


def test_captcha_detection():
    assert GROWW.shows_captcha("Please complete the CAPTCHA")
    assert not GROWW.shows_captcha("Stocks")


def test_login_complete_url():
    assert GROWW.is_login_complete_url("https://groww.in/stocks/user/explore")
    assert not GROWW.is_login_complete_url("https://groww.in/login")
    assert not GROWW.is_login_complete_url("https://groww.in/oauth/callback")


def test_holdings_response_filter():
    assert GROWW.is_holdings_response("https://groww.in/v1/api/stocks_portfolio/v2/holdings")
    assert GROWW.is_holdings_response("https://groww.in/api/Positions/all")
    assert not GROWW.is_holdings_response("https://groww.in/v1/api/user/profile")
