"""
referrals/api/routers/referrals.py

Referring-doctor report HTTP endpoints.

GET /cliniko/referrals  text/event-stream of progress events, one run per request
GET /cliniko/test       connection check against the patient listing
GET /cliniko/debug      raw first page of contacts

All pipeline logic lives in ReferralReportService; the router only handles
HTTP plumbing (streaming, content-type, error mapping).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from referrals.connectors.base import ConnectorRequestError
from referrals.schemas.progress import ConnectionCheckResponse
from referrals.services.progress import TERMINAL_PHASES, ProgressEmitter, encode_sse
from referrals.services.referral_report_service import (
    ReferralReportService,
    get_referral_report_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cliniko", tags=["referrals"])

_POLL_SECONDS = 0.5


async def _event_stream(emitter: ProgressEmitter) -> AsyncIterator[str]:
    """Relay events until the terminal one; a dropped client just closes the emitter."""
    try:
        while True:
            event = await run_in_threadpool(emitter.get, _POLL_SECONDS)
            if event is None:
                continue
            yield encode_sse(event)
            if event.phase in TERMINAL_PHASES:
                break
    finally:
        emitter.close()


@router.get("/referrals", summary="Stream a referring-doctor report")
async def stream_referrals(
    report_service: ReferralReportService = Depends(get_referral_report_service),
) -> StreamingResponse:
    emitter = report_service.start_run()
    return StreamingResponse(
        content=_event_stream(emitter),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.get("/test", response_model=ConnectionCheckResponse, response_model_exclude_none=True)
def test_connection(
    report_service: ReferralReportService = Depends(get_referral_report_service),
) -> Any:
    try:
        result = report_service.check_connection()
    except Exception as exc:
        logger.error(
            "Cliniko connection check failed error=%s",
            exc,
            exc_info=not isinstance(exc, ConnectorRequestError),
        )
        failure = ConnectionCheckResponse(success=False, error=str(exc) or exc.__class__.__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure.model_dump(by_alias=True, exclude_none=True),
        )
    return JSONResponse(content=result.model_dump(by_alias=True, exclude_none=True))


@router.get("/debug")
def debug_contacts(
    report_service: ReferralReportService = Depends(get_referral_report_service),
) -> Any:
    try:
        return report_service.sample_contacts()
    except Exception as exc:
        logger.error(
            "Cliniko contact sample failed error=%s",
            exc,
            exc_info=not isinstance(exc, ConnectorRequestError),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or exc.__class__.__name__},
        )
