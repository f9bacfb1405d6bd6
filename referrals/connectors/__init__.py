"""
referrals/connectors package marker.
"""

from referrals.connectors.base import (
    ClientError,
    ClinikoClient,
    ConnectorRequestError,
    EmptyResponse,
    MaxRetriesExceeded,
    RateLimited,
    ServerError,
)
from referrals.connectors.patients import PatientCollector

__all__ = [
    "ClientError",
    "ClinikoClient",
    "ConnectorRequestError",
    "EmptyResponse",
    "MaxRetriesExceeded",
    "PatientCollector",
    "RateLimited",
    "ServerError",
]
