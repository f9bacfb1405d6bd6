"""
referrals/services/aggregation.py

Tally patients per referring doctor.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from typing import Callable

from referrals.domain.referrals import Patient, RankedDoctor, ReferralReport
from referrals.services.contact_lookup import ContactLookupCache

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


class RunCancelled(RuntimeError):
    """
    Raised when a run stops early because nobody is listening any more.
    """


class ReferralAggregator:
    """
    Resolve each patient's referring doctor and count patients per doctor name.

    One instance per run: the tally and counters live on the instance so a
    partial report can be taken if the run aborts.
    """

    def __init__(
        self,
        *,
        lookup: ContactLookupCache,
        top_n: int = 20,
        progress_every: int = 50,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self._lookup = lookup
        self._top_n = top_n
        self._progress_every = max(1, progress_every)
        self._should_stop = should_stop
        self.tally: Counter[str] = Counter()
        self.processed = 0
        self.contact_lookups = 0
        self.patients_with_known_doctor = 0
        self.total_patients = 0

    def aggregate(
        self,
        patients: Sequence[Patient],
        on_progress: ProgressCallback | None = None,
    ) -> ReferralReport:
        """
        Walk patients in fetch order and return the ranked report.

        ``on_progress(processed, total, contact_lookups)`` fires every
        ``progress_every`` patients and on the last one.
        """

        self.total_patients = len(patients)
        for patient in patients:
            if self._should_stop is not None and self._should_stop():
                raise RunCancelled(f"Aggregation cancelled after {self.processed} patients.")

            self._count(patient)
            self.processed += 1

            if on_progress is not None and (
                self.processed % self._progress_every == 0 or self.processed == self.total_patients
            ):
                on_progress(self.processed, self.total_patients, self.contact_lookups)

        return self.report()

    def _count(self, patient: Patient) -> None:
        if not patient.referring_doctor_url:
            return

        self.contact_lookups += 1
        result = self._lookup.lookup(patient.referring_doctor_url)
        if not result.resolved:
            return

        name = result.contact.display_name
        if not name:
            logger.debug("Referring doctor has no usable name url=%s patient=%s", result.url, patient.id)
            return

        self.tally[name] += 1
        self.patients_with_known_doctor += 1

    def ranking(self) -> list[RankedDoctor]:
        return [RankedDoctor(name=name, value=count) for name, count in self.tally.most_common(self._top_n)]

    def report(self) -> ReferralReport:
        return ReferralReport(
            total_patients=self.total_patients,
            patients_with_known_doctor=self.patients_with_known_doctor,
            referring_doctors=self.ranking(),
            statistics=self._lookup.statistics,
            tally=dict(self.tally),
        )
