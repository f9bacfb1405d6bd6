"""
Structured logging helpers for referral runs.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any


def new_run_id() -> str:
    """
    Short identifier used to correlate every log line of one aggregation run.
    """

    return uuid.uuid4().hex[:12]


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """
    Emit one run lifecycle line as compact JSON, omitting unset fields.
    """

    payload = {"event": event}
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=str, sort_keys=True), exc_info=exc_info)
