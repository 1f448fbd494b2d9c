"""
Hashing helpers for cache keys.

Cache keys are derived from visitor data (IP, user agent). Hashing keeps raw
IPs out of Redis and bounds key length for arbitrarily long user agents.
MD5 is fine here: the digest is a key, not a secret.
"""

from __future__ import annotations

import hashlib


def fingerprint(*parts: object) -> str:
    """Return the hex MD5 digest of *parts* joined with ``_``."""
    joined = "_".join(str(part) for part in parts)
    return hashlib.md5(joined.encode("utf-8"), usedforsecurity=False).hexdigest()
