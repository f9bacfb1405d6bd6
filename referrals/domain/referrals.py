"""
referrals/domain/referrals.py

Domain models for patient referral aggregation.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class Patient:
    """
    One patient from the paginated listing endpoint.

    ``referral_source`` is the free-text fallback field; it is kept for
    completeness but never used for aggregation.
    """

    id: str
    first_name: str | None = None
    last_name: str | None = None
    referring_doctor_url: str | None = None
    referral_source: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Patient":
        referring = payload.get("referring_doctor")
        links = referring.get("links") if isinstance(referring, dict) else None
        doctor_url = _clean(links.get("self")) if isinstance(links, dict) else None
        return cls(
            id=str(payload.get("id", "")),
            first_name=_clean(payload.get("first_name")),
            last_name=_clean(payload.get("last_name")),
            referring_doctor_url=doctor_url,
            referral_source=_clean(payload.get("referral_source")),
        )


@dataclass(frozen=True)
class Contact:
    """
    Referring doctor contact, fetched individually by URL.
    """

    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Contact":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            first_name=_clean(payload.get("first_name")),
            last_name=_clean(payload.get("last_name")),
            company_name=_clean(payload.get("company_name")),
        )

    @property
    def display_name(self) -> str | None:
        return format_doctor_name(self)


def format_doctor_name(contact: Contact) -> str | None:
    """
    Derive the tally key for a contact.

    "First Last", with the organisation appended in parentheses when both
    are present, or the organisation alone. ``None`` when neither exists.
    """

    personal = " ".join(part for part in (contact.first_name, contact.last_name) if part)
    if personal and contact.company_name:
        return f"{personal} ({contact.company_name})"
    return personal or contact.company_name or None


@dataclass
class RunStatistics:
    """
    Contact lookup counters for one run. Each lookup bumps exactly one.
    """

    contact_fetch_success: int = 0
    contact_fetch_failed: int = 0
    contact_cache_hits: int = 0

    @property
    def total_lookups(self) -> int:
        return self.contact_fetch_success + self.contact_fetch_failed + self.contact_cache_hits

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class RankedDoctor:
    name: str
    value: int


@dataclass(frozen=True)
class ReferralReport:
    """
    Finished (or partial) aggregation outcome.
    """

    total_patients: int
    patients_with_known_doctor: int
    referring_doctors: list[RankedDoctor]
    statistics: RunStatistics
    tally: dict[str, int] = field(default_factory=dict)
