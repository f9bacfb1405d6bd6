"""
referrals/services/contact_lookup.py

Per-run memoisation of referring-doctor contact fetches.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from referrals.connectors.base import ClinikoClient, ConnectorRequestError
from referrals.domain.referrals import Contact, RunStatistics

logger = logging.getLogger(__name__)


class LookupStatus(str, enum.Enum):
    HIT = "hit"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass(frozen=True)
class ContactLookup:
    """
    Outcome of one lookup. ``contact`` is None when the doctor is unresolved.
    """

    url: str
    status: LookupStatus
    contact: Contact | None = None
    error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.contact is not None


class ContactLookupCache:
    """
    Resolve contact URLs, fetching each unique URL at most once per run.

    Create one instance per aggregation run; it owns the run's counters.
    Failed fetches are not cached unless ``cache_failures`` is set, in which
    case later lookups of the same URL are hits that stay unresolved.
    """

    def __init__(
        self,
        *,
        client: ClinikoClient,
        statistics: RunStatistics,
        request_delay_seconds: float = 0.0,
        cache_failures: bool = False,
    ) -> None:
        self._client = client
        self._statistics = statistics
        self._request_delay_seconds = request_delay_seconds
        self._cache_failures = cache_failures
        self._entries: dict[str, Contact | None] = {}

    @property
    def statistics(self) -> RunStatistics:
        return self._statistics

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, url: str) -> Contact | None:
        return self.lookup(url).contact

    def lookup(self, url: str) -> ContactLookup:
        if url in self._entries:
            self._statistics.contact_cache_hits += 1
            return ContactLookup(url=url, status=LookupStatus.HIT, contact=self._entries[url])

        if self._request_delay_seconds > 0:
            time.sleep(self._request_delay_seconds)

        try:
            payload = self._client.fetch(url)
        except ConnectorRequestError as exc:
            self._statistics.contact_fetch_failed += 1
            logger.warning("Contact fetch failed url=%s error=%s", url, exc)
            if self._cache_failures:
                self._entries[url] = None
            return ContactLookup(url=url, status=LookupStatus.FAILED, error=str(exc))

        contact = Contact.from_payload(payload)
        self._entries[url] = contact
        self._statistics.contact_fetch_success += 1
        return ContactLookup(url=url, status=LookupStatus.FETCHED, contact=contact)
