"""
referrals/schemas/progress.py

Wire models for referral progress events and connection checks.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RankedDoctorResponse(_WireModel):
    name: str
    value: int = Field(..., ge=0)


class RunStatisticsResponse(_WireModel):
    contact_fetch_success: int = Field(0, ge=0)
    contact_fetch_failed: int = Field(0, ge=0)
    contact_cache_hits: int = Field(0, ge=0)


class FetchingEvent(_WireModel):
    phase: Literal["fetching"] = "fetching"
    message: str = "Fetching patients..."
    current: int = Field(0, ge=0)
    total: int = Field(0, ge=0)


class ProcessingEvent(_WireModel):
    phase: Literal["processing"] = "processing"
    message: str = "Processing referring doctors..."
    current: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    contact_lookups: int = Field(0, ge=0)


class CompleteEvent(_WireModel):
    phase: Literal["complete"] = "complete"
    success: Literal[True] = True
    total_patients: int = Field(..., ge=0)
    patients_with_known_doctor: int = Field(..., ge=0)
    referring_doctors: list[RankedDoctorResponse]
    debug: RunStatisticsResponse


class PartialResult(_WireModel):
    """
    Tally computed before a run aborted, sent only when partial delivery is enabled.
    """

    processed: int = Field(..., ge=0)
    total_patients: int = Field(..., ge=0)
    patients_with_known_doctor: int = Field(..., ge=0)
    referring_doctors: list[RankedDoctorResponse]


class ErrorEvent(_WireModel):
    phase: Literal["error"] = "error"
    success: Literal[False] = False
    error: str
    partial: PartialResult | None = None


ProgressEvent = Annotated[
    Union[FetchingEvent, ProcessingEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="phase"),
]

progress_event_adapter: TypeAdapter[ProgressEvent] = TypeAdapter(ProgressEvent)


class ConnectionCheckResponse(_WireModel):
    success: bool
    message: str | None = None
    total_patients: int | None = None
    sample_patient: str | None = None
    error: str | None = None
