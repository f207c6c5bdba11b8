"""
Run the daily index jobs.

    mark-to-market  compute today's point for every index (after the close)
    screening       screen and rebalance every index (after mark-to-market)
    all             both, in that order

Runs are checkpointed per day: re-running resumes after the last
processed index and skips indices already done.

Usage:
    python scripts/run_daily_jobs.py all --fundamentals data/fundamentals.csv
    python scripts/run_daily_jobs.py mark-to-market --date 2026-10-16 --fundamentals data/fundamentals.csv
"""

import sys
import os
import argparse
import logging
from datetime import date

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db.config import DATABASE_URL
from src.db.session import SessionLocal, init_db
from src.index.service import IndexService
from src.jobs.config import JobConfig, MARK_TO_MARKET, SCREENING
from src.jobs.runner import JobRunner
from src.providers.calendar import B3Calendar
from src.providers.csv_fundamentals import CsvFundamentalsProvider
from src.providers.yahoo.client import YFinanceQuoteProvider
from src.rebalance.service import RebalanceService


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the daily index jobs")
    parser.add_argument("job", choices=[MARK_TO_MARKET, SCREENING, "all"])
    parser.add_argument("--fundamentals", required=True, help="CSV with the screening universe")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Run date (default: today in Brazil)")
    parser.add_argument("--no-progress", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print(f"Connecting to: {DATABASE_URL}")
    init_db()
    session = SessionLocal()
    config = JobConfig(show_progress=not args.no_progress)

    try:
        quotes = YFinanceQuoteProvider()
        fundamentals = CsvFundamentalsProvider(args.fundamentals)
        index_service = IndexService(
            session,
            quote_provider=quotes,
            calendar=B3Calendar(),
            dividend_provider=quotes,
            fundamentals_provider=fundamentals,
            suspicious_return=config.suspicious_return_threshold,
            consistency_tolerance=config.consistency_tolerance,
        )
        rebalance_service = RebalanceService(session, fundamentals, quotes)
        runner = JobRunner(session, index_service, rebalance_service, config)

        if args.job == MARK_TO_MARKET:
            reports = [runner.run_mark_to_market(args.date)]
        elif args.job == SCREENING:
            reports = [runner.run_screening(args.date)]
        else:
            reports = runner.run_all(args.date)

        failed = False
        for report in reports:
            print(f"\n📊 {report.job_type} ({report.run_date}):")
            print(f"   Succeeded: {report.success_count}")
            print(f"   Skipped:   {len(report.skipped)}")
            print(f"   Failed:    {report.failure_count}")
            for line in report.error_lines():
                print(f"   ❌ {line}")
            failed = failed or report.failure_count > 0

        if failed:
            sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
