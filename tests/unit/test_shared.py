"""
Unit tests for the shared/ utility modules.

Covers:
- shared.ip_utils        (is_valid_ip, is_public_ip, ip_in_ranges,
                          resolve_client_ip)
- shared.bot_detection   (match_bot_user_agent, is_bot_ip_prefix,
                          is_datacenter_range, match_spam_referrer,
                          accepts_html, suspicion_score, describe_bot)
- shared.referrers       (classify_referrer)
- shared.datetime_utils  (parse_datetime, utc_day, resolve_date_range,
                          comparison_range, percent_change)
- shared.validators      (sanitize_text, validate_location)
- shared.crypto          (fingerprint)
- shared.logging         (should_sample, hash_ip)
"""

from __future__ import annotations

import hashlib
from datetime import date, datetime, timedelta, timezone

import pytest

from config import CLOUDFLARE_RANGES
from schemas.models.click import Location, TrafficSource
from shared import logging_config
from shared.bot_detection import (
    accepts_html,
    count_missing_browser_headers,
    describe_bot,
    is_bot_ip_prefix,
    is_datacenter_range,
    match_bot_user_agent,
    match_spam_referrer,
    suspicion_score,
)
from shared.crypto import fingerprint
from shared.datetime_utils import (
    comparison_range,
    parse_datetime,
    percent_change,
    resolve_date_range,
    utc_day,
)
from shared.ip_utils import (
    LOOPBACK_IP,
    ResolvedIP,
    ip_in_ranges,
    is_public_ip,
    is_valid_ip,
    resolve_client_ip,
)
from shared.logging import hash_ip, should_sample
from shared.referrers import MAX_REFERRER_LENGTH, classify_referrer
from shared.validators import sanitize_text, validate_location

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = (
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)
CLOUDFLARE_EDGE = "173.245.48.10"


# ---------------------------------------------------------------------------
# shared.ip_utils
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        ("81.2.69.160", True),
        ("2001:db8::1", True),
        (" 10.0.0.1 ", True),
        ("999.1.1.1", False),
        ("not-an-ip", False),
        ("", False),
        (None, False),
    ],
    ids=["ipv4", "ipv6", "padded", "out_of_range", "text", "empty", "none"],
)
def test_is_valid_ip(value, expected):
    assert is_valid_ip(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("8.8.8.8", True),
        ("81.2.69.160", True),
        ("10.0.0.1", False),
        ("192.168.1.5", False),
        ("127.0.0.1", False),
        ("203.0.113.7", False),  # documentation range
        ("::1", False),
        ("garbage", False),
    ],
)
def test_is_public_ip(value, expected):
    assert is_public_ip(value) is expected


class TestIpInRanges:
    def test_ipv4_match(self):
        assert ip_in_ranges("173.245.48.1", CLOUDFLARE_RANGES) is True

    def test_ipv6_match(self):
        assert ip_in_ranges("2606:4700::6810:85e5", CLOUDFLARE_RANGES) is True

    def test_no_match(self):
        assert ip_in_ranges("81.2.69.160", CLOUDFLARE_RANGES) is False

    def test_invalid_ip_never_matches(self):
        assert ip_in_ranges("nope", ["0.0.0.0/0"]) is False

    def test_invalid_cidr_ignored(self):
        assert ip_in_ranges("10.1.2.3", ["bogus", "10.0.0.0/8"]) is True


class TestResolveClientIp:
    def test_trusted_proxy_header_used(self):
        assert resolve_client_ip(CLOUDFLARE_EDGE, "81.2.69.160", CLOUDFLARE_RANGES) == (
            ResolvedIP("81.2.69.160", True)
        )

    def test_header_ignored_from_untrusted_peer(self):
        resolved = resolve_client_ip("10.0.0.1", "81.2.69.160", CLOUDFLARE_RANGES)
        assert resolved == ResolvedIP("10.0.0.1", False)

    def test_invalid_header_falls_back_to_peer(self):
        resolved = resolve_client_ip(CLOUDFLARE_EDGE, "spoofed", CLOUDFLARE_RANGES)
        assert resolved == ResolvedIP(CLOUDFLARE_EDGE, False)

    def test_nothing_valid_gives_loopback(self):
        assert resolve_client_ip(None, None, CLOUDFLARE_RANGES) == ResolvedIP(LOOPBACK_IP, False)
        assert resolve_client_ip("garbage", None, CLOUDFLARE_RANGES).ip == LOOPBACK_IP


@pytest.mark.parametrize(
    "remote_addr, connecting_ip, expected",
    [
        (CLOUDFLARE_EDGE, " 81.2.69.160 ", ResolvedIP("81.2.69.160", True)),
        (CLOUDFLARE_EDGE, "", ResolvedIP(CLOUDFLARE_EDGE, False)),
        ("192.168.1.50", None, ResolvedIP("192.168.1.50", False)),
    ],
    ids=["header_stripped", "empty_header", "no_header"],
)
def test_resolve_client_ip_header_shapes(remote_addr, connecting_ip, expected):
    assert resolve_client_ip(remote_addr, connecting_ip, CLOUDFLARE_RANGES) == expected


# ---------------------------------------------------------------------------
# shared.bot_detection
# ---------------------------------------------------------------------------


class TestMatchBotUserAgent:
    def test_googlebot(self):
        assert match_bot_user_agent(GOOGLEBOT_UA) == "googlebot"

    def test_http_library(self):
        assert match_bot_user_agent("curl/8.4.0") == "curl"

    def test_browser_is_not_bot(self):
        assert match_bot_user_agent(CHROME_UA) is None

    def test_empty_not_handled_here(self):
        assert match_bot_user_agent("") is None
        assert match_bot_user_agent(None) is None

    def test_falls_back_to_crawler_detect(self, mocker):
        detector = mocker.patch("shared.bot_detection._crawler_detect")
        detector.isCrawler.return_value = True
        detector.getMatches.return_value = "SomeCrawler"
        assert match_bot_user_agent("Mozilla/5.0 Xyzzy/1.0") == "SomeCrawler"


@pytest.mark.parametrize(
    "ip, expected",
    [("66.249.66.1", True), ("157.55.39.1", True), ("81.2.69.160", False)],
)
def test_is_bot_ip_prefix(ip, expected):
    assert is_bot_ip_prefix(ip) is expected


@pytest.mark.parametrize(
    "ip, expected",
    [("52.1.2.3", True), ("159.65.10.10", True), ("81.2.69.160", False), ("garbage", False)],
    ids=["aws", "digitalocean", "residential", "invalid"],
)
def test_is_datacenter_range(ip, expected):
    assert is_datacenter_range(ip) is expected


@pytest.mark.parametrize(
    "referrer, expected",
    [
        ("https://semalt.com/crawler", "semalt.com"),
        ("https://www.Reddit.com/r/SEO/comments/1", "reddit.com/r/seo"),
        ("https://www.google.com/", None),
        ("", None),
        (None, None),
    ],
)
def test_match_spam_referrer(referrer, expected):
    assert match_spam_referrer(referrer) == expected


@pytest.mark.parametrize(
    "accept, expected",
    [
        (None, True),
        ("", True),
        ("text/html,application/xhtml+xml", True),
        ("*/*", True),
        ("application/json", False),
        ("image/webp", False),
    ],
)
def test_accepts_html(accept, expected):
    assert accepts_html(accept) is expected


def test_count_missing_browser_headers():
    assert count_missing_browser_headers(None, None) == 2
    assert count_missing_browser_headers("en", None) == 1
    assert count_missing_browser_headers("en", "gzip") == 0


class TestSuspicionScore:
    def test_full_browser_headers_score_zero(self):
        score = suspicion_score(
            accept="text/html,application/xhtml+xml",
            accept_language="en-US",
            accept_encoding="gzip",
            dnt=None,
        )
        assert score == 0

    def test_everything_missing(self):
        score = suspicion_score(accept=None, accept_language=None, accept_encoding=None, dnt=None)
        assert score == 5

    def test_dnt_without_language_adds_one(self):
        score = suspicion_score(accept=None, accept_language=None, accept_encoding=None, dnt="1")
        assert score == 6

    def test_empty_headers_score_like_missing_ones(self):
        empty = suspicion_score(accept="", accept_language="", accept_encoding="", dnt="1")
        missing = suspicion_score(accept=None, accept_language=None, accept_encoding=None, dnt="1")
        assert empty == missing == 6

    def test_empty_accept_language_matches_missing_header_count(self):
        score = suspicion_score(
            accept="text/html,application/xhtml+xml",
            accept_language="",
            accept_encoding="gzip",
            dnt=None,
        )
        assert score == 2
        assert count_missing_browser_headers("", "gzip") == 1

    def test_generic_accept(self):
        score = suspicion_score(
            accept="*/*", accept_language="en", accept_encoding="gzip", dnt=None
        )
        assert score == 1


@pytest.mark.parametrize(
    "ua, name, bot_type",
    [
        (GOOGLEBOT_UA, "Googlebot", "search"),
        ("Mozilla/5.0 (compatible; AhrefsBot/7.0)", "Ahrefs Bot", "crawler"),
        ("Mozilla/5.0 (compatible; SemrushBot/7)", "SEMrush Bot", "crawler"),
        ("curl/8.4.0", "Other Bot", "monitor"),
    ],
)
def test_describe_bot(ua, name, bot_type):
    profile = describe_bot(ua)
    assert profile.name == name
    assert profile.type == bot_type


# ---------------------------------------------------------------------------
# shared.referrers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "referrer, user_agent, source, label",
    [
        ("https://www.google.com/search?q=x", CHROME_UA, TrafficSource.SEARCH, "https://www.google.com/search?q=x"),
        ("https://www.google.com.au/", CHROME_UA, TrafficSource.SEARCH, "https://www.google.com.au/"),
        ("https://www.bing.com/", CHROME_UA, TrafficSource.SEARCH, "https://www.bing.com/"),
        ("https://www.facebook.com/", CHROME_UA, TrafficSource.SOCIAL, "https://www.facebook.com/"),
        ("https://t.co/abc", CHROME_UA, TrafficSource.SOCIAL, "https://t.co/abc"),
        ("https://example.org/post", CHROME_UA, TrafficSource.DIRECT, "https://example.org/post"),
        ("android-app://com.whatsapp/", CHROME_UA, TrafficSource.SOCIAL, "whatsapp-app"),
        ("fb://profile/1", CHROME_UA, TrafficSource.SOCIAL, "facebook-app"),
        ("", CHROME_UA + " [FBAN/FBIOS;FBAV/400.0]", TrafficSource.SOCIAL, "facebook-app"),
        ("", CHROME_UA + " Instagram 300.0", TrafficSource.SOCIAL, "instagram-app"),
        ("", CHROME_UA, TrafficSource.DIRECT, ""),
        (None, None, TrafficSource.DIRECT, ""),
    ],
    ids=[
        "google",
        "google_country_tld",
        "bing",
        "facebook",
        "twitter_shortener",
        "other_site",
        "android_app",
        "fb_scheme",
        "facebook_in_app",
        "instagram_in_app",
        "no_referrer",
        "nothing",
    ],
)
def test_classify_referrer(referrer, user_agent, source, label):
    info = classify_referrer(referrer, user_agent)
    assert info.source == source
    assert info.label == label


def test_classify_referrer_truncates_label():
    info = classify_referrer("https://example.org/" + "a" * 400)
    assert len(info.label) == MAX_REFERRER_LENGTH


# ---------------------------------------------------------------------------
# shared.datetime_utils
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (1705320000, datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)),
        ("2024-01-15T12:00:00Z", datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)),
        ("2024-01-15T14:00:00+02:00", datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)),
        (
            datetime(2024, 1, 15, 12, 0, 0),
            datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc),
        ),
        ("not-a-date", None),
    ],
    ids=["none", "epoch_int", "iso_z", "iso_offset", "naive_datetime", "invalid"],
)
def test_parse_datetime(value, expected):
    assert parse_datetime(value) == expected


def test_utc_day_converts_offset():
    est = timezone(timedelta(hours=-5))
    assert utc_day(datetime(2024, 1, 1, 23, 30, tzinfo=est)) == date(2024, 1, 2)


def test_utc_day_naive_assumed_utc():
    assert utc_day(datetime(2024, 1, 1, 23, 30)) == date(2024, 1, 1)


@pytest.mark.parametrize(
    "preset, expected",
    [
        ("today", (date(2024, 3, 10), date(2024, 3, 10))),
        ("yesterday", (date(2024, 3, 9), date(2024, 3, 9))),
        ("last_7_days", (date(2024, 3, 4), date(2024, 3, 10))),
        ("last_30_days", (date(2024, 2, 10), date(2024, 3, 10))),
        ("this_month", (date(2024, 3, 1), date(2024, 3, 10))),
        ("last_month", (date(2024, 2, 1), date(2024, 2, 29))),
    ],
)
def test_resolve_date_range(preset, expected):
    assert resolve_date_range(preset, today=date(2024, 3, 10)) == expected


def test_resolve_date_range_unknown_preset():
    with pytest.raises(ValueError):
        resolve_date_range("last_century", today=date(2024, 3, 10))


def test_comparison_range_is_preceding_period():
    assert comparison_range(date(2024, 3, 4), date(2024, 3, 10)) == (
        date(2024, 2, 26),
        date(2024, 3, 3),
    )


@pytest.mark.parametrize(
    "current, previous, expected",
    [(150, 100, 50.0), (50, 100, -50.0), (5, 0, 100.0), (0, 0, 0.0)],
    ids=["growth", "decline", "from_zero", "zero_zero"],
)
def test_percent_change(current, previous, expected):
    assert percent_change(current, previous) == expected


# ---------------------------------------------------------------------------
# shared.validators
# ---------------------------------------------------------------------------


def test_sanitize_text_strips_tags_and_controls():
    assert sanitize_text("<b>Par\x00is</b>  ") == "Paris"


def test_sanitize_text_caps_length():
    assert len(sanitize_text("x" * 500)) == 100


@pytest.mark.parametrize(
    "raw, expected",
    [
        (
            {"country_code": "US", "country_name": "United States", "city_name": "Boston"},
            Location("US", "United States", "Boston"),
        ),
        (
            {"country_code": "GB", "country_name": "Unknown", "city_name": "N/A"},
            Location("GB", "GB", ""),
        ),
        ({"country_code": "DE", "country_name": None, "city_name": None}, Location("DE", "DE", "")),
        ({"country_code": "XX", "country_name": "Nowhere"}, None),
        ({"country_code": "us", "country_name": "United States"}, None),
        ({"country_code": "USA"}, None),
        ({"country_name": "France"}, None),
    ],
    ids=["valid", "placeholders", "missing_names", "placeholder_code", "lower_case", "three_letters", "no_code"],
)
def test_validate_location(raw, expected):
    assert validate_location(raw) == expected


# ---------------------------------------------------------------------------
# shared.crypto
# ---------------------------------------------------------------------------


def test_fingerprint_joins_parts():
    expected = hashlib.md5(b"81.2.69.160_Mozilla").hexdigest()
    assert fingerprint("81.2.69.160", "Mozilla") == expected


def test_fingerprint_distinct_inputs():
    assert fingerprint("1.1.1.1", 5) != fingerprint("1.1.1.1", 6)


# ---------------------------------------------------------------------------
# shared.logging
# ---------------------------------------------------------------------------


class TestShouldSample:
    def test_unknown_event_always_logged(self):
        assert should_sample("something_rare") is True

    def test_zero_rate_never_logged(self, monkeypatch):
        monkeypatch.setitem(logging_config.SAMPLING_RATES, "view_dropped", 0.0)
        assert should_sample("view_dropped") is False

    def test_full_rate_always_logged(self, monkeypatch):
        monkeypatch.setitem(logging_config.SAMPLING_RATES, "view_recorded", 1.0)
        assert should_sample("view_recorded") is True


class TestHashIp:
    def test_none_passthrough(self):
        assert hash_ip(None) is None

    def test_plain_in_development(self, monkeypatch):
        monkeypatch.setattr(logging_config, "IS_PRODUCTION", False)
        assert hash_ip("81.2.69.160") == "81.2.69.160"

    def test_hashed_in_production(self, monkeypatch):
        monkeypatch.setattr(logging_config, "IS_PRODUCTION", True)
        hashed = hash_ip("81.2.69.160")
        assert hashed != "81.2.69.160"
        assert len(hashed) == 16
