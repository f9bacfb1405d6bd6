"""
Run one referring-doctor aggregation from CLI, printing each progress event as a JSON line.
"""

from __future__ import annotations

import argparse
import logging
import os

from referrals.services.referral_report_service import get_referral_report_service


def main() -> int:
    parser = argparse.ArgumentParser(description="Aggregate patient referrals per referring doctor.")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only print the terminal event.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").strip().upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    service = get_referral_report_service()
    emitter = service.start_run()
    exit_code = 1
    for event in emitter.iter_events():
        if event.phase == "complete":
            exit_code = 0
        if args.quiet and event.phase not in {"complete", "error"}:
            continue
        print(event.model_dump_json(by_alias=True, exclude_none=True), flush=True)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
