"""
Ingest endpoint.

POST /api/v1/views — record one page view (202, body {"accepted": true})

Two calling styles:
- server-to-server: the rendering layer sends client_ip (and optionally
  connecting_ip plus the visitor's headers) in the JSON body
- beacon: client_ip omitted; this request's own peer address and headers
  describe the visitor. A body connecting_ip is ignored here: only the
  trusted proxy header set by the edge may name the visitor

The response never reveals whether the view was counted, deduplicated or
classified as automated.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from config import AppSettings
from dependencies import get_settings, get_tracker
from errors import AppError
from schemas.dto.requests.views import RecordViewRequest
from schemas.dto.responses.common import AcceptedResponse
from services.tracker import ClickTracker, ViewEvent
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["views"])


def _event_from_request(
    body: RecordViewRequest, request: Request, settings: AppSettings
) -> ViewEvent:
    beacon = body.client_ip is None
    headers = request.headers

    def pick(value: Optional[str], header: str) -> Optional[str]:
        if value is not None or not beacon:
            return value
        return headers.get(header)

    if beacon:
        remote_addr = request.client.host if request.client else None
        connecting_ip = headers.get(settings.tracking.trusted_proxy_header)
    else:
        remote_addr = body.client_ip
        connecting_ip = body.connecting_ip

    return ViewEvent(
        post_id=body.post_id,
        remote_addr=remote_addr,
        connecting_ip=connecting_ip,
        user_agent=pick(body.user_agent, "user-agent"),
        referrer_url=pick(body.referrer_url, "referer"),
        timestamp=body.timestamp,
        accept=pick(body.accept, "accept"),
        accept_language=pick(body.accept_language, "accept-language"),
        accept_encoding=pick(body.accept_encoding, "accept-encoding"),
        dnt=pick(body.dnt, "dnt"),
        post_language=body.post_language,
    )


async def _record_in_background(tracker: ClickTracker, event: ViewEvent) -> None:
    try:
        await tracker.record_view(event)
    except AppError as e:
        log.error(
            "view_ingest_failed",
            post_id=event.post_id,
            error=e.message,
            error_code=e.error_code,
        )


@router.post("/views", status_code=202, response_model=AcceptedResponse)
async def record_view(
    body: RecordViewRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    settings: AppSettings = Depends(get_settings),
    tracker: ClickTracker = Depends(get_tracker),
) -> AcceptedResponse:
    event = _event_from_request(body, request, settings)

    if settings.tracking.ingest_in_background:
        # Reject bad input now; the rest runs after the response is sent
        tracker.validate(event)
        background_tasks.add_task(_record_in_background, tracker, event)
    else:
        await tracker.record_view(event)

    return AcceptedResponse()
