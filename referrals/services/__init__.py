"""
referrals/services package marker.
"""

from referrals.services.aggregation import ReferralAggregator, RunCancelled
from referrals.services.contact_lookup import ContactLookup, ContactLookupCache, LookupStatus
from referrals.services.progress import ProgressEmitter, ProgressStateError, encode_sse
from referrals.services.referral_report_service import (
    ReferralReportService,
    get_referral_report_service,
)

__all__ = [
    "ContactLookup",
    "ContactLookupCache",
    "LookupStatus",
    "ProgressEmitter",
    "ProgressStateError",
    "ReferralAggregator",
    "ReferralReportService",
    "RunCancelled",
    "encode_sse",
    "get_referral_report_service",
]
