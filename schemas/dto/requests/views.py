"""
Request DTO for the ingest endpoint.

RecordViewRequest — POST /api/v1/views

The rendering layer forwards what it saw for the visitor. When ``client_ip``
is omitted the endpoint falls back to its own connection address and request
headers, which is what a direct beacon from the browser looks like.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.datetime_utils import parse_datetime
from shared.ip_utils import is_valid_ip


class RecordViewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    post_id: int = Field(gt=0)
    client_ip: Optional[str] = None
    # Value of the trusted proxy's client-IP header as seen by the caller
    connecting_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer_url: Optional[str] = None
    timestamp: Optional[datetime] = None

    accept: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    dnt: Optional[str] = None
    post_language: Optional[str] = Field(default=None, max_length=16)

    @field_validator("client_ip", "connecting_ip", mode="after")
    @classmethod
    def _validate_ip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not is_valid_ip(v):
            raise ValueError("must be a valid IPv4 or IPv6 address")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Optional[datetime]:
        if v is None or v == "":
            return None
        parsed = parse_datetime(v)
        if parsed is None:
            raise ValueError("timestamp must be ISO 8601 or Unix epoch seconds")
        return parsed
