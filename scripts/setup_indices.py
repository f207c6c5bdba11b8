"""
Create theoretical indices from a JSON file of index specs.

Each entry: {"ticker": ..., "name": ..., "description": ..., "methodology": {...}}.
Indices are created one at a time; an existing ticker is adopted, not duplicated.

Usage:
    python scripts/setup_indices.py config/indices.json --fundamentals data/fundamentals.csv
"""

import sys
import os
import json
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from src.db.config import DATABASE_URL
from src.db.session import SessionLocal, init_db
from src.index.setup import IndexSetupService, IndexSpec
from src.jobs.config import JobConfig
from src.providers.calendar import B3Calendar
from src.providers.csv_fundamentals import CsvFundamentalsProvider
from src.providers.yahoo.client import YFinanceQuoteProvider
from src.rebalance.service import RebalanceService


def load_specs(path: str) -> list:
    with open(path) as f:
        raw = json.load(f)
    return [IndexSpec.model_validate(item) for item in raw]


def main() -> None:
    parser = argparse.ArgumentParser(description="Create theoretical indices")
    parser.add_argument("specs", help="JSON file with the index specs")
    parser.add_argument("--fundamentals", required=True, help="CSV with the screening universe")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        specs = load_specs(args.specs)
    except ValidationError as e:
        print(f"❌ Invalid index spec:\n{e}")
        sys.exit(1)

    print(f"Connecting to: {DATABASE_URL}")
    init_db()
    session = SessionLocal()
    config = JobConfig()

    try:
        calendar = B3Calendar()
        rebalance_service = RebalanceService(
            session,
            fundamentals_provider=CsvFundamentalsProvider(args.fundamentals),
            quote_provider=YFinanceQuoteProvider(),
        )
        setup = IndexSetupService(
            session,
            calendar,
            rebalance_service=rebalance_service,
            retry_delay=config.setup_retry_delay,
            max_retries=config.setup_max_retries,
        )
        created = setup.setup_indices(specs)

        print(f"\n✅ {len(created)} indices ready:")
        for index in created:
            print(f"   {index.ticker}: {index.name} ({index.id})")
    finally:
        session.close()


if __name__ == "__main__":
    main()
