"""
Run Billing Job Script

Runs one of the scheduled billing jobs against the configured database and
prints its JSON report.

Usage:
    cd backend
    python scripts/run_billing_job.py reconcile --dry-run
    python scripts/run_billing_job.py reconcile --tenant <user-id>
    python scripts/run_billing_job.py expire
    python scripts/run_billing_job.py remind --days 3
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.api.dependencies import (
    get_expiry_sweep_service,
    get_reconciliation_service,
    get_reminder_sweep_service,
)
from app.infrastructure.db.database import close_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run_job(args: argparse.Namespace):
    try:
        if args.job == "reconcile":
            return await get_reconciliation_service().reconcile(
                tenant_id=args.tenant,
                dry_run=args.dry_run,
            )
        if args.job == "expire":
            return await get_expiry_sweep_service().run()
        return await get_reminder_sweep_service().sweep_reminders(window_days=args.days)
    finally:
        await close_db()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a billing job")
    jobs = parser.add_subparsers(dest="job", required=True)

    reconcile = jobs.add_parser("reconcile", help="Rebuild billing dates from payments")
    reconcile.add_argument("--tenant", help="Reconcile only this tenant (user id)")
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing",
    )

    jobs.add_parser("expire", help="Expire lapsed subscriptions")

    remind = jobs.add_parser("remind", help="Send expiration reminders")
    remind.add_argument(
        "--days",
        type=int,
        default=None,
        help="Days before expiration (default: REMINDER_DAYS_BEFORE)",
    )
    return parser


async def main():
    args = build_parser().parse_args()
    report = await run_job(args)
    print(report.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
