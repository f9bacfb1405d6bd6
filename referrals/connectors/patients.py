"""
referrals/connectors/patients.py

Paginated walk over the Cliniko patient listing.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from referrals.config import ReferralRunSettings
from referrals.connectors.base import ClinikoClient, EmptyResponse
from referrals.domain.referrals import Patient

logger = logging.getLogger(__name__)

PageCallback = Callable[[int, int], None]


class PatientCollector:
    """
    Fetch every patient, one page at a time, until the API stops advertising a next page.
    """

    records_key = "patients"

    def __init__(
        self,
        *,
        client: ClinikoClient,
        settings: ReferralRunSettings,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self._client = client
        self._page_size = settings.page_size
        self._max_pages = settings.max_pages
        self._request_delay_seconds = settings.request_delay_seconds
        self._should_stop = should_stop
        self.pages_fetched = 0
        self.total_entries = 0

    def collect_all(self, on_page: PageCallback | None = None) -> list[Patient]:
        """
        Return every patient in listing order.

        ``on_page(fetched_so_far, total_entries)`` is invoked after each page.
        Stops after ``max_pages`` even if the server still reports a next page.
        """

        patients: list[Patient] = []
        page = 1
        while page <= self._max_pages:
            if self._should_stop is not None and self._should_stop():
                break
            self._pause()
            payload = self._client.fetch(f"/patients?page={page}&per_page={self._page_size}")
            records = self._page_records(payload, page)
            patients.extend(Patient.from_payload(record) for record in records if isinstance(record, dict))
            self.pages_fetched = page
            self.total_entries = _as_int(payload.get("total_entries"), default=len(patients))

            if on_page is not None:
                on_page(len(patients), self.total_entries)

            if not self._has_next(payload):
                break
            page += 1
        else:
            logger.warning(
                "Patient pagination stopped at page cap max_pages=%s fetched=%s total_entries=%s",
                self._max_pages,
                len(patients),
                self.total_entries,
            )

        return patients

    def _page_records(self, payload: Any, page: int) -> list[Any]:
        if not isinstance(payload, dict):
            raise EmptyResponse(f"Unexpected patient page shape for page {page}.")
        records = payload.get(self.records_key)
        if records is None:
            return []
        if not isinstance(records, list):
            raise EmptyResponse(f"Patient page {page} did not contain a list of {self.records_key}.")
        return records

    @staticmethod
    def _has_next(payload: dict[str, Any]) -> bool:
        links = payload.get("links")
        return isinstance(links, dict) and bool(links.get("next"))

    def _pause(self) -> None:
        if self._request_delay_seconds > 0:
            time.sleep(self._request_delay_seconds)


def _as_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
