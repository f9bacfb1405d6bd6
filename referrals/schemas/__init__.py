"""
referrals/schemas package marker.
"""

from referrals.schemas.progress import (
    CompleteEvent,
    ConnectionCheckResponse,
    ErrorEvent,
    FetchingEvent,
    PartialResult,
    ProcessingEvent,
    ProgressEvent,
    RankedDoctorResponse,
    RunStatisticsResponse,
    progress_event_adapter,
)

__all__ = [
    "CompleteEvent",
    "ConnectionCheckResponse",
    "ErrorEvent",
    "FetchingEvent",
    "PartialResult",
    "ProcessingEvent",
    "ProgressEvent",
    "RankedDoctorResponse",
    "RunStatisticsResponse",
    "progress_event_adapter",
]
