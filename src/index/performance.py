"""Per-asset performance reconstructed from stored composition snapshots."""

import logging
from typing import List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.history_repo import IndexHistoryRepository
from src.providers.base import QuoteProvider
from .models import AssetPerformance, AssetStatus

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = ["date", "ticker", "weight", "price", "entry_price", "entry_date"]


class AssetPerformanceService:
    """Entry/exit, holding period and return of every ticker an index held."""

    def __init__(self, session: Session, quote_provider: Optional[QuoteProvider] = None):
        self.history_repo = IndexHistoryRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.quotes = quote_provider

    def snapshot_frame(self, index_id: str) -> pd.DataFrame:
        """Long frame: one row per (date, ticker) present in a non-empty snapshot."""
        records = []
        for row in self.history_repo.get_points(index_id):
            for ticker, data in (row.composition_snapshot or {}).items():
                records.append({
                    "date": row.date,
                    "ticker": ticker,
                    "weight": data["weight"],
                    "price": data["price"],
                    "entry_price": data["entry_price"],
                    "entry_date": pd.Timestamp(data["entry_date"]).date(),
                })
        return pd.DataFrame(records, columns=SNAPSHOT_COLUMNS)

    def _current_price(self, ticker: str, fallback: float) -> float:
        if self.quotes is None:
            return fallback
        quote = self.quotes.get_latest_prices([ticker]).get(ticker)
        if quote is None:
            logger.warning(f"Could not fetch current price for {ticker}, using last snapshot")
            return fallback
        return quote.price

    def _performance(self, ticker: str, rows: pd.DataFrame, active: bool) -> AssetPerformance:
        rows = rows.sort_values("date")
        first = rows.iloc[0]
        last = rows.iloc[-1]

        entry_price = float(first["entry_price"])
        last_price = float(last["price"])
        price_for_return = self._current_price(ticker, last_price) if active else last_price
        total_return = (
            (price_for_return - entry_price) / entry_price * 100 if entry_price > 0 else None
        )

        return AssetPerformance(
            ticker=ticker,
            entry_date=first["entry_date"],
            exit_date=None if active else last["date"],
            entry_price=entry_price,
            exit_price=None if active else last_price,
            days_in_index=(last["date"] - first["date"]).days + 1,
            total_return=total_return,
            average_weight=float(rows["weight"].mean()),
            status=AssetStatus.ACTIVE if active else AssetStatus.EXITED,
            first_snapshot_date=first["date"],
            last_snapshot_date=last["date"],
        )

    def calculate_asset_performance(self, index_id: str, ticker: str) -> Optional[AssetPerformance]:
        """Performance of one ticker, None if the index never held it."""
        df = self.snapshot_frame(index_id)
        rows = df[df["ticker"] == ticker]
        if rows.empty:
            return None
        held = {c.asset_ticker for c in self.composition_repo.get_current(index_id)}
        return self._performance(ticker, rows, ticker in held)

    def list_asset_performance(self, index_id: str) -> List[AssetPerformance]:
        """Every ticker that passed through the index, newest entry first."""
        df = self.snapshot_frame(index_id)
        if df.empty:
            return []
        held = {c.asset_ticker for c in self.composition_repo.get_current(index_id)}
        performances = [
            self._performance(ticker, rows, ticker in held)
            for ticker, rows in df.groupby("ticker", sort=True)
        ]
        return sorted(performances, key=lambda p: (p.entry_date, p.ticker), reverse=True)
