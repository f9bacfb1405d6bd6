"""
referrals/domain package marker.
"""

from referrals.domain.referrals import (
    Contact,
    Patient,
    RankedDoctor,
    ReferralReport,
    RunStatistics,
    format_doctor_name,
)

__all__ = [
    "Contact",
    "Patient",
    "RankedDoctor",
    "ReferralReport",
    "RunStatistics",
    "format_doctor_name",
]
