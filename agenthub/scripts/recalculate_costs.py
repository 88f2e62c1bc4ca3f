"""
Reprice stored usage logs at the configured model rates.

Run after changing PRICING_PER_1M (or when a past pricing bug left wrong
costs in the ledger). Only model-tier records change; voice records keep
their cost. Running it twice in a row updates nothing the second time.

Usage:
    python -m agenthub.scripts.recalculate_costs --dry-run
    python -m agenthub.scripts.recalculate_costs --user-id someone@example.com
"""

import argparse
import asyncio
import logging
from typing import Optional

from agenthub.db import async_session_maker, init_db
from agenthub.services.cost_calculator import format_cost
from agenthub.services.usage_ledger import RecalculationReport, UsageLedger

logger = logging.getLogger(__name__)


async def recalculate(user_id: Optional[str] = None, dry_run: bool = False) -> RecalculationReport:
    await init_db()
    async with async_session_maker() as db:
        return await UsageLedger(db).recalculate_costs(user_id=user_id, dry_run=dry_run)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate stored usage costs at current model rates")
    parser.add_argument("--user-id", help="Only reprice this user's records")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without saving them")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    report = asyncio.run(recalculate(args.user_id, args.dry_run))

    print(f"Logs scanned:   {report.total_logs}")
    print(f"Logs updated:   {report.updated_logs}")
    print(f"Old total cost: {format_cost(report.old_total_cost)}")
    print(f"New total cost: {format_cost(report.new_total_cost)}")
    print(f"Difference:     {format_cost(report.difference)}")
    if args.dry_run:
        print("Dry run: no changes were saved.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
