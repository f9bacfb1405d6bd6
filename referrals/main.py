from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from referrals.config import load_env_files


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing variable so the operator can
    fix all problems in one restart cycle.

    Rules:
    - CLINIKO_API_KEY must be set and non-empty.
    - CLINIKO_SHARD is required unless CLINIKO_BASE_URL is given.
    """

    load_env_files()

    errors: list[str] = []

    if not os.getenv("CLINIKO_API_KEY", "").strip():
        errors.append("CLINIKO_API_KEY is not set. Empty strings are not permitted.")

    if not os.getenv("CLINIKO_SHARD", "").strip() and not os.getenv("CLINIKO_BASE_URL", "").strip():
        errors.append(
            "CLINIKO_SHARD is not set. Provide the account shard (e.g. 'au1') "
            "or an explicit CLINIKO_BASE_URL."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed - missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Referral Insights API",
        version="1.0.0",
    )

    from referrals.api.routers import referrals_router

    application.include_router(referrals_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
