"""
Bot and spam detection data — framework-agnostic, pure functions.

Combines two signature sources for user agents:
1. A curated substring list (search engines, SEO crawlers, HTTP libraries,
   headless browsers, uptime monitors, scanners)
2. The ``crawlerdetect`` library signature database

plus the IP prefix, datacenter CIDR and spam-referrer lists consulted by
``services.classifier``. Everything here is stateless; caching of the IP
checks is the classifier's job.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from crawlerdetect import CrawlerDetect

from shared.ip_utils import ip_in_ranges

_crawler_detect = CrawlerDetect()

# Lower-case substrings; order only matters for the name reported in logs.
BOT_USER_AGENT_PATTERNS: tuple[str, ...] = (
    # Search engine bots
    "googlebot", "google-inspectiontool", "google-site-verification",
    "bingbot", "msnbot", "bingpreview",
    "slurp", "yahoo",
    "duckduckbot", "duckduckgo",
    "baiduspider", "baidu",
    "yandexbot", "yandex",
    "seznambot", "seznam",
    "facebookexternalhit", "facebookcatalog",
    "twitterbot",
    "linkedinbot",
    "whatsapp",
    "telegram",
    "applebot",
    # SEO tools and crawlers
    "ahrefsbot", "ahrefs",
    "semrushbot", "semrush",
    "dotbot", "moz.com",
    "majesticbot", "mj12bot",
    "blexbot",
    "serpstatbot",
    "petalbot",
    "aspiegelbot",
    "dataprovider.com",
    # Generic crawlers, HTTP libraries, headless browsers
    "crawler", "spider", "bot", "scraper", "crawling",
    "wget", "curl", "python-requests", "scrapy",
    "phantomjs", "headless", "puppeteer", "selenium",
    # Monitoring services
    "pingdom", "uptimerobot", "statuscake",
    "nagios", "zabbix", "newrelic",
    # Feed readers
    "feedly", "feedburner", "feedfetcher",
    # Link preview fetchers
    "skypeuripreview", "discordbot",
    "slackbot", "slack-imgproxy",
    # Archivers / research
    "ia_archiver", "alexa", "surveybot",
    # Security scanners
    "nessus", "nikto", "sqlmap", "openvas",
    # Misc tooling
    "go-http-client", "java/", "libwww-perl",
    "mechanize", "zgrab", "masscan",
)

# Published crawler address prefixes (plain string prefix match).
BOT_IP_PREFIXES: tuple[str, ...] = (
    "66.249.",  # Googlebot
    "66.102.",  # Google
    "64.233.",  # Google
    "72.14.",  # Google
    "209.85.",  # Google
    "216.239.",  # Google
    "64.68.",  # Yahoo
    "67.195.",  # Yahoo
    "157.55.",  # Bing
    "207.46.",  # Bing
    "65.52.",  # Microsoft
    "131.253.",  # Microsoft
    "40.77.",  # Microsoft
    "52.167.",  # Microsoft Azure
    "13.66.",  # Microsoft Azure
    "54.208.",  # Amazon AWS
    "52.44.",  # Amazon AWS
    "52.20.",  # Amazon AWS
    "52.4.",  # Amazon AWS
)

# Hosting / cloud networks. Deliberately coarse (whole /8s for the big clouds).
DATACENTER_RANGES: tuple[str, ...] = (
    # Cloudflare
    "173.245.48.0/20", "103.21.244.0/22", "103.22.200.0/22", "103.31.4.0/22",
    "141.101.64.0/18", "108.162.192.0/18", "190.93.240.0/20", "188.114.96.0/20",
    "197.234.240.0/22", "198.41.128.0/17", "162.158.0.0/15", "172.64.0.0/13",
    "131.0.72.0/22", "104.16.0.0/13", "104.24.0.0/14",
    # GitHub
    "192.30.252.0/22", "185.199.108.0/22", "140.82.112.0/20",
    # Amazon AWS
    "13.0.0.0/8", "52.0.0.0/8", "54.0.0.0/8",
    # Google Cloud
    "34.0.0.0/8", "35.0.0.0/8", "104.196.0.0/14",
    # Microsoft Azure
    "40.0.0.0/8", "20.0.0.0/8", "51.0.0.0/8",
    # DigitalOcean
    "159.65.0.0/16", "161.35.0.0/16", "167.172.0.0/16", "178.62.0.0/16",
    # Linode
    "198.211.0.0/16", "192.155.80.0/20", "50.116.0.0/18", "45.33.0.0/16",
    "23.239.0.0/19", "104.237.128.0/19", "172.104.0.0/15", "139.162.0.0/16",
)

# Referrer-spam domains; matched as substrings of the lower-cased referrer.
SPAM_REFERRER_DOMAINS: tuple[str, ...] = (
    "semalt.com", "buttons-for-website.com", "best-seo-offer.com",
    "best-seo-solution.com", "simple-share-buttons.com", "darodar.com",
    "economicnews.trade", "finance.info", "free-traffic.xyz",
    "videos-for-your-business.com", "success-seo.com", "get-free-traffic-now.com",
    "free-social-buttons.com", "hulfingtonpost.com", "о-о-6-о-о.com",
    "humanorightswatch.org", "reddit.com/r/seo", "theguardlan.com",
    "social-buttons.com", "sharebutton.net", "soundfrost.org",
    "srecorder.com", "responsive-test.net", "savetubevideo.com",
    "video--production.com", "keywords-monitoring-your-success.com",
    "traffic2money.com", "erot.co", "lombia.co", "econom.co",
    "kambasoft.com", "shopping.ilovevitaly.com",
)

# Suspicion score weights
WEIGHT_MISSING_ACCEPT_LANGUAGE = 2
WEIGHT_MISSING_ACCEPT_ENCODING = 2
WEIGHT_DNT_WITHOUT_LANGUAGE = 1
WEIGHT_GENERIC_ACCEPT = 1


class BotProfile(NamedTuple):
    name: str
    type: str  # search | crawler | spam | monitor
    purpose: str


# (substrings, profile) — first match wins
_BOT_PROFILES: tuple[tuple[tuple[str, ...], BotProfile], ...] = (
    (("googlebot",), BotProfile("Googlebot", "search", "Search engine indexing")),
    (("bingbot",), BotProfile("Bingbot", "search", "Search engine indexing")),
    (("ahrefs",), BotProfile("Ahrefs Bot", "crawler", "SEO analysis")),
    (("semrush",), BotProfile("SEMrush Bot", "crawler", "SEO analysis")),
    (("dotbot",), BotProfile("DotBot", "crawler", "SEO analysis")),
    (("mj12bot",), BotProfile("Majestic Bot", "crawler", "SEO analysis")),
    (("spam",), BotProfile("Other Bot", "spam", "Spam/Malicious activity")),
    (("bot",), BotProfile("Other Bot", "crawler", "Site monitoring")),
)


def match_bot_user_agent(user_agent: Optional[str]) -> Optional[str]:
    """Return the signature that marks *user_agent* as automated, or ``None``.

    The curated list is checked first (case-insensitive substring), then
    ``crawlerdetect``. An empty user agent is not handled here; the
    classifier has a dedicated rule for it.
    """
    if not user_agent:
        return None
    lowered = user_agent.lower()
    for pattern in BOT_USER_AGENT_PATTERNS:
        if pattern in lowered:
            return pattern
    if _crawler_detect.isCrawler(user_agent):
        matches = _crawler_detect.getMatches()
        return str(matches) if matches else "crawlerdetect"
    return None


def is_bot_ip_prefix(ip: str) -> bool:
    """Return True if *ip* starts with a known crawler prefix."""
    return any(ip.startswith(prefix) for prefix in BOT_IP_PREFIXES)


def is_datacenter_range(ip: str) -> bool:
    """Return True if *ip* is inside a known hosting/cloud network."""
    return ip_in_ranges(ip, DATACENTER_RANGES)


def match_spam_referrer(referrer_url: Optional[str]) -> Optional[str]:
    """Return the spam domain found in *referrer_url*, or ``None``."""
    if not referrer_url:
        return None
    lowered = referrer_url.lower()
    for domain in SPAM_REFERRER_DOMAINS:
        if domain in lowered:
            return domain
    return None


def accepts_html(accept: Optional[str]) -> bool:
    """Content negotiation check used by the bot rules.

    A missing or empty ``Accept`` header is not held against the visitor
    here (it only feeds the suspicion score); a present one must allow HTML
    or ``*/*``.
    """
    if not accept:
        return True
    lowered = accept.lower()
    return "text/html" in lowered or "*/*" in lowered


def count_missing_browser_headers(
    accept_language: Optional[str], accept_encoding: Optional[str]
) -> int:
    return sum(1 for value in (accept_language, accept_encoding) if not value)


def suspicion_score(
    *,
    accept: Optional[str],
    accept_language: Optional[str],
    accept_encoding: Optional[str],
    dnt: Optional[str],
) -> int:
    """Weighted sum of header-absence signals.

    An empty header value counts as absent, as it does for
    count_missing_browser_headers().

    - no ``Accept-Language``: +2
    - no ``Accept-Encoding``: +2
    - ``DNT: 1`` without ``Accept-Language``: +1
    - ``Accept`` missing, exactly ``*/*`` or shorter than 10 chars: +1
    """
    score = 0
    if not accept_language:
        score += WEIGHT_MISSING_ACCEPT_LANGUAGE
    if not accept_encoding:
        score += WEIGHT_MISSING_ACCEPT_ENCODING
    if dnt == "1" and not accept_language:
        score += WEIGHT_DNT_WITHOUT_LANGUAGE
    if not accept or accept == "*/*" or len(accept) < 10:
        score += WEIGHT_GENERIC_ACCEPT
    return score


def describe_bot(user_agent: Optional[str]) -> BotProfile:
    """Map a bot user agent to a display name, type and purpose."""
    lowered = (user_agent or "").lower()
    for needles, profile in _BOT_PROFILES:
        if any(needle in lowered for needle in needles):
            return profile
    return BotProfile("Other Bot", "monitor", "Site monitoring")
