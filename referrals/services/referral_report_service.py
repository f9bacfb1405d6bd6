"""
referrals/services/referral_report_service.py

Orchestration service for referring-doctor aggregation runs.
"""

from __future__ import annotations

import logging
import threading
import time
from functools import lru_cache
from typing import Any, Callable

import requests

from referrals.config import (
    ClinikoSettings,
    ExternalHTTPSettings,
    ReferralRunSettings,
    get_cliniko_settings,
    get_external_http_settings,
    get_referral_run_settings,
)
from referrals.connectors.base import ClinikoClient
from referrals.connectors.patients import PatientCollector
from referrals.domain.referrals import RankedDoctor, ReferralReport, RunStatistics
from referrals.logging_utils import log_event, new_run_id
from referrals.schemas.progress import (
    CompleteEvent,
    ConnectionCheckResponse,
    PartialResult,
    RankedDoctorResponse,
    RunStatisticsResponse,
)
from referrals.services.aggregation import ReferralAggregator, RunCancelled
from referrals.services.contact_lookup import ContactLookupCache
from referrals.services.progress import ProgressEmitter

logger = logging.getLogger(__name__)


def _ranked(doctors: list[RankedDoctor]) -> list[RankedDoctorResponse]:
    return [RankedDoctorResponse(name=doctor.name, value=doctor.value) for doctor in doctors]


def build_complete_event(report: ReferralReport) -> CompleteEvent:
    return CompleteEvent(
        total_patients=report.total_patients,
        patients_with_known_doctor=report.patients_with_known_doctor,
        referring_doctors=_ranked(report.referring_doctors),
        debug=RunStatisticsResponse(**report.statistics.as_dict()),
    )


class ReferralReportService:
    """
    Runs the fetch -> aggregate pipeline and reports every phase to a ProgressEmitter.

    Nothing mutable is shared between runs: each run gets its own HTTP
    session, contact cache, counters and tally.
    """

    def __init__(
        self,
        *,
        settings: ClinikoSettings,
        http_settings: ExternalHTTPSettings,
        run_settings: ReferralRunSettings,
        session_factory: Callable[[], requests.Session] | None = None,
    ) -> None:
        self._settings = settings
        self._http_settings = http_settings
        self._run_settings = run_settings
        self._session_factory = session_factory or requests.Session

    @property
    def run_settings(self) -> ReferralRunSettings:
        return self._run_settings

    def new_emitter(self) -> ProgressEmitter:
        return ProgressEmitter(maxsize=self._run_settings.event_queue_size)

    def start_run(self, emitter: ProgressEmitter | None = None) -> ProgressEmitter:
        """
        Launch one run on a background thread and hand back its event channel.
        """

        emitter = emitter or self.new_emitter()
        worker = threading.Thread(
            target=self.run,
            args=(emitter,),
            name="referral-run",
            daemon=True,
        )
        worker.start()
        return emitter

    def run(self, emitter: ProgressEmitter) -> ReferralReport | None:
        """
        Execute one complete run. Never raises; failures become an ``error`` event.

        Returns the report on success, otherwise None.
        """

        run_id = new_run_id()
        started = time.monotonic()
        settings = self._run_settings
        should_stop = (lambda: emitter.disconnected) if settings.cancel_on_disconnect else None
        aggregator: ReferralAggregator | None = None
        log_event(logger, logging.INFO, "referral_run_started", run_id=run_id)

        try:
            with self._new_client() as client:
                emitter.fetching(0, 0)
                collector = PatientCollector(client=client, settings=settings, should_stop=should_stop)
                patients = collector.collect_all(on_page=emitter.fetching)
                if should_stop is not None and should_stop():
                    raise RunCancelled(f"Patient fetch cancelled after {collector.pages_fetched} pages.")

                lookup = ContactLookupCache(
                    client=client,
                    statistics=RunStatistics(),
                    request_delay_seconds=settings.request_delay_seconds,
                    cache_failures=settings.cache_failed_lookups,
                )
                aggregator = ReferralAggregator(
                    lookup=lookup,
                    top_n=settings.top_n,
                    progress_every=settings.progress_every,
                    should_stop=should_stop,
                )
                emitter.processing(0, len(patients), 0)
                report = aggregator.aggregate(patients, on_progress=emitter.processing)
                emitter.complete(build_complete_event(report))
        except RunCancelled as exc:
            log_event(logger, logging.INFO, "referral_run_cancelled", run_id=run_id, reason=str(exc))
            return None
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            log_event(
                logger,
                logging.ERROR,
                "referral_run_failed",
                run_id=run_id,
                error=message,
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            if not emitter.terminated:
                emitter.error(message, partial=self._partial(aggregator))
            return None

        log_event(
            logger,
            logging.INFO,
            "referral_run_completed",
            run_id=run_id,
            total_patients=report.total_patients,
            patients_with_known_doctor=report.patients_with_known_doctor,
            doctors=len(report.tally),
            statistics=report.statistics.as_dict(),
            elapsed_seconds=round(time.monotonic() - started, 2),
            discarded_events=emitter.discarded or None,
        )
        return report

    def check_connection(self) -> ConnectionCheckResponse:
        """
        Fetch a single patient to prove the credential and shard are valid.
        """

        with self._new_client() as client:
            payload = client.fetch("/patients?per_page=1")
        payload = payload if isinstance(payload, dict) else {}
        return ConnectionCheckResponse(
            success=True,
            message="Connected to Cliniko successfully!",
            total_patients=payload.get("total_entries"),
            sample_patient="Found" if payload.get("patients") else "No patients",
        )

    def sample_contacts(self) -> Any:
        """
        Raw first page of contacts, for inspecting the contact payload shape.
        """

        with self._new_client() as client:
            return client.fetch("/contacts?per_page=1")

    def _new_client(self) -> ClinikoClient:
        return ClinikoClient(
            settings=self._settings,
            http_settings=self._http_settings,
            session=self._session_factory(),
        )

    def _partial(self, aggregator: ReferralAggregator | None) -> PartialResult | None:
        if not self._run_settings.partial_on_error or aggregator is None or aggregator.processed == 0:
            return None
        return PartialResult(
            processed=aggregator.processed,
            total_patients=aggregator.total_patients,
            patients_with_known_doctor=aggregator.patients_with_known_doctor,
            referring_doctors=_ranked(aggregator.ranking()),
        )


@lru_cache(maxsize=1)
def get_referral_report_service() -> ReferralReportService:
    """
    Build and cache the referral report service.
    """

    return ReferralReportService(
        settings=get_cliniko_settings(),
        http_settings=get_external_http_settings(),
        run_settings=get_referral_run_settings(),
    )
