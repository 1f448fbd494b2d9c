"""
Referrer classification into traffic-source buckets.

Every countable view lands in one of three buckets: search (stored as
``google_clicks`` since Google dominates it), social, or direct.

Matching is a substring test against the lower-cased referrer host, not an
exact domain comparison. ``google.co`` therefore also matches
``google.com.au`` and ``news.google.com``, and ``t.co`` matches any host
containing it. This is intentionally permissive: a false "search" or "social"
is cheaper than losing attribution for an unlisted country TLD or subdomain.
"""

from __future__ import annotations

from typing import NamedTuple, Optional
from urllib.parse import urlparse

from schemas.models.click import TrafficSource

MAX_REFERRER_LENGTH = 255


class ReferrerInfo(NamedTuple):
    source: TrafficSource
    # Value stored as referrer_url: the trimmed URL or a synthetic app label
    label: str


GOOGLE_DOMAINS: tuple[str, ...] = (
    # Major domains
    "google.com", "google.co", "google.ca", "google.co.uk", "google.fr", "google.de",
    "google.it", "google.es", "google.com.au", "google.co.in", "google.com.br",
    "google.co.jp", "google.ru", "google.com.mx", "google.cn", "google.com.sg",
    "google.ae", "google.sa", "google.com.eg", "google.co.za", "google.com.pk",
    # European domains
    "google.nl", "google.be", "google.ch", "google.at", "google.se", "google.no",
    "google.dk", "google.fi", "google.ie", "google.pt", "google.gr", "google.pl",
    "google.cz", "google.hu", "google.ro", "google.bg", "google.hr", "google.sk",
    "google.si", "google.lt", "google.lv", "google.ee", "google.lu", "google.is",
    # Other international domains
    "google.com.tr", "google.com.hk", "google.com.tw", "google.co.kr", "google.co.th",
    "google.com.vn", "google.com.ph", "google.com.my", "google.co.id", "google.com.np",
    "google.lk", "google.com.bd", "google.com.af", "google.kz", "google.uz",
    "google.com.ua", "google.co.il", "google.jo", "google.com.lb", "google.com.qa",
    "google.com.kw", "google.com.om", "google.co.ke", "google.com.ng", "google.com.gh",
    "google.co.tz", "google.co.ug", "google.co.ma", "google.dz", "google.com.ly",
    "google.tn", "google.com.et", "google.sn", "google.com.na", "google.co.zw",
    "google.co.bw", "google.co.mz", "google.mg", "google.mu", "google.com.jm",
    "google.com.pr", "google.com.do", "google.com.cu", "google.com.gt", "google.com.sv",
    "google.hn", "google.com.ni", "google.co.cr", "google.com.pa", "google.com.co",
    "google.co.ve", "google.com.ec", "google.com.pe", "google.com.bo", "google.com.py",
    "google.com.uy", "google.com.ar", "google.cl", "google.com.fj", "google.co.nz",
    "google.com.sb", "google.com.vc", "google.tt", "google.bs", "google.dm",
    # Google service domains
    "googleusercontent.com", "googlesyndication.com", "googleadservices.com",
    "googleapis.com", "google-analytics.com", "googletagmanager.com",
    "googlevideo.com", "gstatic.com", "google.page.link", "g.co",
)

OTHER_SEARCH_ENGINES: tuple[str, ...] = (
    "bing.com", "yahoo.com", "duckduckgo.com", "baidu.com", "yandex",
)

SOCIAL_DOMAINS: tuple[str, ...] = (
    # Facebook family
    "facebook.com", "fb.com", "m.facebook.com", "l.facebook.com",
    "lm.facebook.com", "web.facebook.com", "business.facebook.com",
    # Twitter/X
    "twitter.com", "x.com", "t.co", "mobile.twitter.com", "twimg.com",
    # Professional networks
    "linkedin.com", "lnkd.in", "xing.com", "glassdoor.com",
    # Visual platforms
    "instagram.com", "pinterest.com", "pinterest.co.uk", "pinterest.ca",
    "pinterest.de", "pinterest.fr", "flickr.com", "imgur.com",
    # Video platforms
    "youtube.com", "youtu.be", "m.youtube.com", "tiktok.com", "vimeo.com",
    "dailymotion.com", "twitch.tv", "kick.com",
    # Messaging/chat
    "whatsapp.com", "web.whatsapp.com", "telegram.org", "t.me",
    "discord.com", "discord.gg", "slack.com", "teams.microsoft.com",
    # Reddit
    "reddit.com", "redd.it", "old.reddit.com", "np.reddit.com",
    # Newer platforms
    "threads.net", "mastodon.social", "mastodon.world", "mastodon.online",
    "bsky.app", "bsky.social", "bluesky.social", "truth.social",
    "gettr.com", "parler.com", "gab.com", "minds.com",
    # Regional networks
    "vk.com", "vk.ru", "ok.ru", "weibo.com", "weibo.cn",
    "qzone.qq.com", "douyin.com", "line.me", "kakaotalk.com",
    # Content platforms
    "medium.com", "substack.com", "quora.com", "tumblr.com",
    "mix.com", "flipboard.com", "pocket.com", "feedly.com",
    # Professional/industry communities
    "behance.net", "dribbble.com", "deviantart.com", "github.com",
    "stackoverflow.com", "producthunt.com", "hackernews.ycombinator.com",
)

APP_SCHEMES: tuple[str, ...] = ("android-app://", "fb://", "twitter://", "whatsapp://")

# (needle in referrer, label) for app-scheme referrers
_APP_LABELS: tuple[tuple[str, str], ...] = (
    ("whatsapp", "whatsapp-app"),
    ("fb://", "facebook-app"),
    ("twitter://", "twitter-app"),
    ("instagram", "instagram-app"),
    ("tiktok", "tiktok-app"),
    ("linkedin", "linkedin-app"),
    ("pinterest", "pinterest-app"),
    ("reddit", "reddit-app"),
)

# (needles in user agent, label) for in-app browsers with no referrer
IN_APP_BROWSERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("fbav", "fb_iab", "fban"), "facebook-app"),
    (("instagram",), "instagram-app"),
    (("twitter",), "twitter-app"),
    (("whatsapp",), "whatsapp-app"),
    (("linkedin",), "linkedin-app"),
    (("pinterest",), "pinterest-app"),
    (("tiktok",), "tiktok-app"),
    (("reddit",), "reddit-app"),
)


def referrer_host(referrer_url: str) -> str:
    """Lower-cased host of *referrer_url*, or ``""`` if it has none."""
    try:
        return (urlparse(referrer_url).hostname or "").lower()
    except ValueError:
        return ""


def _contains_any(haystack: str, needles: tuple[str, ...]) -> bool:
    return any(needle in haystack for needle in needles)


def _app_label(referrer_url: str) -> str:
    for needle, label in _APP_LABELS:
        if needle in referrer_url:
            return label
    return referrer_url[:MAX_REFERRER_LENGTH]


def _in_app_browser(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    lowered = user_agent.lower()
    for needles, label in IN_APP_BROWSERS:
        if _contains_any(lowered, needles):
            return label
    return None


def classify_referrer(
    referrer_url: Optional[str], user_agent: Optional[str] = None
) -> ReferrerInfo:
    """Bucket a view by where it came from.

    Order of checks:
    1. App-scheme referrer (``android-app://``, ``fb://``, ...) → social
    2. Referrer host contains a search-engine domain → search
    3. Referrer host contains a social/messaging domain → social
    4. No referrer but an in-app browser user agent → social
    5. Anything else → direct
    """
    referrer_url = (referrer_url or "").strip()

    if referrer_url:
        if referrer_url.lower().startswith(APP_SCHEMES):
            return ReferrerInfo(TrafficSource.SOCIAL, _app_label(referrer_url.lower()))

        host = referrer_host(referrer_url)
        label = referrer_url[:MAX_REFERRER_LENGTH]
        if host and (
            _contains_any(host, GOOGLE_DOMAINS)
            or _contains_any(host, OTHER_SEARCH_ENGINES)
        ):
            return ReferrerInfo(TrafficSource.SEARCH, label)
        if host and _contains_any(host, SOCIAL_DOMAINS):
            return ReferrerInfo(TrafficSource.SOCIAL, label)
        return ReferrerInfo(TrafficSource.DIRECT, label)

    app = _in_app_browser(user_agent)
    if app is not None:
        return ReferrerInfo(TrafficSource.SOCIAL, app)
    return ReferrerInfo(TrafficSource.DIRECT, "")
