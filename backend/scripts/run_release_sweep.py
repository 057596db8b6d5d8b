#!/usr/bin/env python3
"""
Held funds release job runner

Cron-friendly alternative to the in-process scheduler: runs one release sweep
and prints a one-line JSON summary.

Usage:
    # Release everything due now
    python -m scripts.run_release_sweep

    # Dry-run (simulation)
    python -m scripts.run_release_sweep --dry-run

    # Replay a past instant
    python -m scripts.run_release_sweep --as-of 2025-01-27T12:00:00+00:00

    # Cap the batch
    python -m scripts.run_release_sweep --max-transactions 100
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from escrow_core.infrastructure.database import SessionLocal
from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.infrastructure.settings import get_settings
from escrow_core.services.notifications import get_notification_publisher
from escrow_core.services.release_service import release_held_funds, ReleaseError

JOB_NAME = "release_held_funds"


def generate_trace_id(as_of: datetime) -> str:
    """
    Generate a unique trace_id for the job run.

    Format: job-release-YYYYMMDDHHMM-<shortuuid>
    """
    return f"job-release-{as_of.strftime('%Y%m%d%H%M')}-{str(uuid4())[:8]}"


def parse_as_of(as_of_str: Optional[str]) -> datetime:
    """
    Parse --as-of (ISO 8601) or default to now UTC.

    Naive values are taken as UTC.
    """
    if not as_of_str:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(as_of_str)
    except ValueError:
        raise ValueError(f"Invalid datetime format: {as_of_str}. Expected ISO 8601")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def main(argv=None):
    """Main entry point for the job runner"""
    parser = argparse.ArgumentParser(
        description='Release held escrow funds whose hold period has elapsed',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        '--as-of',
        type=str,
        default=None,
        help='Sweep clock (ISO 8601, default: now UTC)',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Simulate without committing (default: false)',
    )
    parser.add_argument(
        '--max-transactions',
        type=int,
        default=None,
        help='Maximum transactions examined in one run (default: RELEASE_SWEEP_BATCH_SIZE)',
    )
    args = parser.parse_args(argv)

    setup_logging(get_settings().LOG_LEVEL)

    try:
        as_of = parse_as_of(args.as_of)
    except ValueError as e:
        print(json.dumps({"job": JOB_NAME, "error": str(e), "exit_code": 1}), file=sys.stderr)
        sys.exit(1)

    trace_id = generate_trace_id(as_of)
    base_output = {
        "job": JOB_NAME,
        "trace_id": trace_id,
        "as_of": as_of.isoformat(),
        "dry_run": args.dry_run,
    }

    db = SessionLocal()
    try:
        summary = release_held_funds(
            db,
            now=as_of,
            dry_run=args.dry_run,
            trace_id=trace_id,
            max_transactions=args.max_transactions,
            publisher=None if args.dry_run else get_notification_publisher(),
        )
        exit_code = 0 if summary['errors_count'] == 0 and not summary['skipped'] else 1
        print(json.dumps({**base_output, "summary": summary, "exit_code": exit_code}))
        sys.exit(exit_code)

    except ReleaseError as e:
        print(json.dumps({**base_output, "error": str(e), "exit_code": 1}), file=sys.stderr)
        sys.exit(1)

    except Exception as e:
        print(json.dumps({
            **base_output,
            "error": f"Unexpected error: {type(e).__name__}: {str(e)}",
            "exit_code": 1,
        }), file=sys.stderr)
        sys.exit(1)

    finally:
        db.close()


if __name__ == "__main__":
    main()
