"""
tests/test_referral_report_service.py

End-to-end runs of ReferralReportService against a fake Cliniko session.
"""

from __future__ import annotations

import dataclasses

import pytest
import requests

from referrals.config import ReferralRunSettings
from referrals.services.progress import ProgressEmitter
from referrals.services.referral_report_service import ReferralReportService
from tests.conftest import BASE_URL, FakeSession, make_response, patient, patients_page

PAGE_1 = f"{BASE_URL}/patients?page=1&per_page=100"
PAGE_2 = f"{BASE_URL}/patients?page=2&per_page=100"
JANE = f"{BASE_URL}/contacts/1"
ACME = f"{BASE_URL}/contacts/2"


def _routes() -> dict:
    return {
        PAGE_1: make_response(200, patients_page([patient(1, JANE), patient(2, JANE)], total=4, next_url="p2")),
        PAGE_2: make_response(200, patients_page([patient(3), patient(4, ACME)], total=4)),
        JANE: make_response(200, {"first_name": "Jane", "last_name": "Doe"}),
        ACME: make_response(200, {"first_name": "Bo", "last_name": "Li", "company_name": "Acme Clinic"}),
    }


class _SessionFactory:
    def __init__(self, routes_factory=_routes) -> None:
        self._routes_factory = routes_factory
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        session = FakeSession(self._routes_factory())
        self.sessions.append(session)
        return session


@pytest.fixture()
def factory() -> _SessionFactory:
    return _SessionFactory()


def _service(cliniko_settings, http_settings, run_settings, factory) -> ReferralReportService:
    return ReferralReportService(
        settings=cliniko_settings,
        http_settings=http_settings,
        run_settings=run_settings,
        session_factory=factory,
    )


def _drain(emitter: ProgressEmitter) -> list:
    events = []
    while True:
        event = emitter.get(timeout=0.01)
        if event is None:
            return events
        events.append(event)


def test_successful_run_reports_every_phase(sleeps, cliniko_settings, http_settings, run_settings, factory) -> None:
    service = _service(cliniko_settings, http_settings, run_settings, factory)
    emitter = ProgressEmitter()

    report = service.run(emitter)
    events = _drain(emitter)

    assert [e.phase for e in events] == [
        "fetching",
        "fetching",
        "fetching",
        "processing",
        "processing",
        "complete",
    ]
    assert [(e.current, e.total) for e in events[:3]] == [(0, 0), (2, 4), (4, 4)]
    assert events[4].contact_lookups == 3

    complete = events[-1]
    assert complete.total_patients == 4
    assert complete.patients_with_known_doctor == 3
    assert [(d.name, d.value) for d in complete.referring_doctors] == [
        ("Jane Doe", 2),
        ("Bo Li (Acme Clinic)", 1),
    ]
    assert complete.debug.contact_fetch_success == 2
    assert complete.debug.contact_cache_hits == 1
    assert complete.debug.contact_fetch_failed == 0

    assert report.tally == {"Jane Doe": 2, "Bo Li (Acme Clinic)": 1}
    assert sum(report.tally.values()) == report.patients_with_known_doctor <= report.total_patients
    assert factory.sessions[0].closed


def test_each_run_gets_fresh_state(sleeps, cliniko_settings, http_settings, run_settings, factory) -> None:
    service = _service(cliniko_settings, http_settings, run_settings, factory)

    first = service.run(ProgressEmitter())
    second = service.run(ProgressEmitter())

    assert first.tally == second.tally
    assert first.referring_doctors == second.referring_doctors
    assert first.statistics is not second.statistics
    assert second.statistics.contact_fetch_success == 2
    assert second.statistics.contact_cache_hits == 1
    assert len(factory.sessions) == 2
    assert factory.sessions[1].calls.count(JANE) == 1


def test_client_error_aborts_with_single_error_event(sleeps, cliniko_settings, http_settings, run_settings) -> None:
    factory = _SessionFactory(lambda: {PAGE_1: make_response(401, text="unauthorized")})
    emitter = ProgressEmitter()

    assert _service(cliniko_settings, http_settings, run_settings, factory).run(emitter) is None

    events = _drain(emitter)
    assert [e.phase for e in events] == ["fetching", "error"]
    assert "401" in events[-1].error
    assert events[-1].partial is None
    assert len(factory.sessions[0].calls) == 1


def test_exhausted_retries_surface_as_error(sleeps, cliniko_settings, http_settings, run_settings) -> None:
    factory = _SessionFactory(lambda: {PAGE_1: make_response(502)})
    emitter = ProgressEmitter()

    _service(cliniko_settings, http_settings, run_settings, factory).run(emitter)

    events = _drain(emitter)
    assert events[-1].phase == "error"
    assert "after 3 attempts" in events[-1].error


def test_missing_credential_becomes_error_event(sleeps, http_settings, run_settings, factory) -> None:
    from referrals.config import ClinikoSettings

    emitter = ProgressEmitter()
    _service(ClinikoSettings(api_key=None), http_settings, run_settings, factory).run(emitter)

    events = _drain(emitter)
    assert [e.phase for e in events] == ["error"]
    assert "CLINIKO_API_KEY" in events[0].error


def test_transport_failure_on_contact_is_counted_and_run_completes(
    sleeps, cliniko_settings, http_settings, run_settings
) -> None:
    def routes() -> dict:
        routes = _routes()
        routes[JANE] = requests.exceptions.ChunkedEncodingError("connection broken mid-body")
        return routes

    factory = _SessionFactory(routes)
    emitter = ProgressEmitter()

    report = _service(cliniko_settings, http_settings, run_settings, factory).run(emitter)
    events = _drain(emitter)

    assert events[-1].phase == "complete"
    assert [e.phase for e in events].count("error") == 0
    assert factory.sessions[0].calls.count(JANE) == 6
    assert report.statistics.contact_fetch_failed == 2
    assert report.statistics.contact_fetch_success == 1
    assert report.tally == {"Bo Li (Acme Clinic)": 1}
    assert events[-1].debug.contact_fetch_failed == 2


def _failing_routes() -> dict:
    routes = _routes()
    routes[PAGE_2] = RuntimeError("socket exploded")
    return routes


def test_aborted_run_discards_tally_by_default(sleeps, cliniko_settings, http_settings, run_settings) -> None:
    emitter = ProgressEmitter()
    _service(cliniko_settings, http_settings, run_settings, _SessionFactory(_failing_routes)).run(emitter)

    events = _drain(emitter)
    assert [e.phase for e in events] == ["fetching", "fetching", "error"]
    assert events[-1].error == "socket exploded"
    assert events[-1].partial is None


class _BrokenSinkEmitter(ProgressEmitter):
    """Fails the first mid-run processing update."""

    def processing(self, current: int, total: int, contact_lookups: int) -> bool:
        if current > 0:
            raise RuntimeError("progress sink failed")
        return super().processing(current, total, contact_lookups)


def test_aborted_run_can_deliver_partial_tally(sleeps, cliniko_settings, http_settings, run_settings, factory) -> None:
    settings = dataclasses.replace(run_settings, partial_on_error=True, progress_every=1)
    emitter = _BrokenSinkEmitter()
    _service(cliniko_settings, http_settings, settings, factory).run(emitter)

    error = _drain(emitter)[-1]
    assert error.phase == "error"
    assert error.error == "progress sink failed"
    assert error.partial is not None
    assert error.partial.processed == 1
    assert error.partial.total_patients == 4
    assert [(d.name, d.value) for d in error.partial.referring_doctors] == [("Jane Doe", 1)]


def test_partial_tally_is_omitted_when_nothing_was_processed(
    sleeps, cliniko_settings, http_settings, run_settings
) -> None:
    settings = dataclasses.replace(run_settings, partial_on_error=True)
    emitter = ProgressEmitter()
    _service(cliniko_settings, http_settings, settings, _SessionFactory(_failing_routes)).run(emitter)

    error = _drain(emitter)[-1]
    assert error.phase == "error"
    assert error.partial is None


def test_disconnect_does_not_stop_run_by_default(sleeps, cliniko_settings, http_settings, run_settings, factory) -> None:
    emitter = ProgressEmitter()
    emitter.close()

    report = _service(cliniko_settings, http_settings, run_settings, factory).run(emitter)

    assert report is not None
    assert report.total_patients == 4
    assert emitter.emitted == 0
    assert emitter.discarded == 6


def test_disconnect_cancels_when_enabled(sleeps, cliniko_settings, http_settings, factory) -> None:
    settings = ReferralRunSettings(request_delay_seconds=0.0, cancel_on_disconnect=True)
    emitter = ProgressEmitter()
    emitter.close()

    assert _service(cliniko_settings, http_settings, settings, factory).run(emitter) is None
    assert factory.sessions[0].calls == []
    assert not emitter.terminated


def test_start_run_streams_from_background_thread(sleeps, cliniko_settings, http_settings, run_settings, factory) -> None:
    emitter = _service(cliniko_settings, http_settings, run_settings, factory).start_run()

    events = list(emitter.iter_events(poll_seconds=0.05))

    assert events[0].phase == "fetching"
    assert events[-1].phase == "complete"


def test_check_connection(sleeps, cliniko_settings, http_settings, run_settings) -> None:
    factory = _SessionFactory(
        lambda: {f"{BASE_URL}/patients?per_page=1": make_response(200, patients_page([patient(1)], total=812))}
    )

    result = _service(cliniko_settings, http_settings, run_settings, factory).check_connection()

    assert result.success is True
    assert result.total_patients == 812
    assert result.sample_patient == "Found"


def test_sample_contacts_returns_raw_payload(sleeps, cliniko_settings, http_settings, run_settings) -> None:
    payload = {"contacts": [{"id": 1}], "total_entries": 1}
    factory = _SessionFactory(lambda: {f"{BASE_URL}/contacts?per_page=1": make_response(200, payload)})

    assert _service(cliniko_settings, http_settings, run_settings, factory).sample_contacts() == payload
