"""
referrals/api/routers package marker.
"""

from referrals.api.routers.referrals import router as referrals_router

__all__ = [
    "referrals_router",
]
