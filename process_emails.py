#!/usr/bin/env python3
"""
Run one scheduled email pass from the shell

    python process_emails.py process-scheduled [--dry-run]
    python process_emails.py send-scheduled [--dry-run]
"""

import argparse
import asyncio
import logging
import sys

from taxibook import models  # noqa: F401
from taxibook.database import SessionLocal
from taxibook.services.scheduled_emails import ScheduledEmailService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


async def run(command: str, dry_run: bool) -> dict:
    db = SessionLocal()
    try:
        service = ScheduledEmailService(db)
        if command == "process-scheduled":
            return await service.process_scheduled(dry_run=dry_run)
        return await service.send_scheduled(dry_run=dry_run)
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Run scheduled transactional emails")
    parser.add_argument("command", choices=["process-scheduled", "send-scheduled"])
    parser.add_argument(
        "--dry-run", action="store_true", help="List matching bookings without sending"
    )
    args = parser.parse_args()

    if args.dry_run:
        logger.info("🔍 Dry run: no emails will be sent")

    try:
        summary = asyncio.run(run(args.command, args.dry_run))
    except Exception as e:
        logger.error(f"❌ {args.command} failed: {e}")
        sys.exit(1)
    logger.info(f"⏰ {args.command} complete: {summary}")


if __name__ == "__main__":
    main()
