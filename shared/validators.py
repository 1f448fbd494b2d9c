"""
Input validators — framework-agnostic, pure functions.

Geolocation answers come from third parties and end up in stored records and
admin reports, so they are validated and sanitised here before use.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from schemas.models.click import Location

MAX_LOCATION_NAME_LENGTH = 100

_COUNTRY_CODE_RE = re.compile(r"^[A-Z]{2}$")
_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1F\x7F-\x9F]")
_WHITESPACE_RE = re.compile(r"\s+")

INVALID_COUNTRY_CODES = frozenset({"XX", "ZZ", "AA", "TEST", "--"})
PLACEHOLDER_NAMES = frozenset({"Unknown", "N/A", "None", "(Unknown)", "-"})


def sanitize_text(value: Any, max_length: int = MAX_LOCATION_NAME_LENGTH) -> str:
    """Strip tags and control characters, collapse whitespace, cap length."""
    if value is None:
        return ""
    text = _TAG_RE.sub("", str(value))
    text = _CONTROL_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text[:max_length]


def validate_country_code(code: Any) -> bool:
    """Return True for a two-letter upper-case ISO 3166 code that is not a placeholder."""
    if not isinstance(code, str):
        return False
    return bool(_COUNTRY_CODE_RE.match(code)) and code not in INVALID_COUNTRY_CODES


def validate_location(raw: Mapping[str, Any]) -> Optional[Location]:
    """Turn a provider's parsed answer into a clean ``Location``.

    Args:
        raw: Mapping with ``country_code``, ``country_name`` and ``city_name``.

    Returns:
        ``None`` when the country code is missing, malformed or a placeholder
        (the answer is then rejected and the next provider is tried).
        Otherwise a Location where an empty/"Unknown" country name falls back
        to the code and placeholder city names become empty.
    """
    code = raw.get("country_code")
    if not validate_country_code(code):
        return None

    country_name = sanitize_text(raw.get("country_name"))
    if not country_name or country_name == "Unknown":
        country_name = code

    city_name = sanitize_text(raw.get("city_name"))
    if city_name in PLACEHOLDER_NAMES:
        city_name = ""

    return Location(country_code=code, country_name=country_name, city_name=city_name)
