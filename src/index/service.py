"""IndexService - computes and stores daily index levels."""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from src.db.models.index import IndexCompositionVersion
from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.history_repo import IndexHistoryRepository, to_domain
from src.db.repositories.index_repo import IndexRepository
from src.providers.base import (
    CalendarProvider,
    DividendProvider,
    FundamentalsProvider,
    QuoteProvider,
)
from .models import (
    AssetPosition,
    CompositionSnapshot,
    DailyIndexPoint,
    RecalculatedPoint,
    RecalculationResult,
)
from .returns import BASE_POINTS, SUSPICIOUS_RETURN, build_snapshot, compute_daily_point

logger = logging.getLogger(__name__)


class IndexService:
    """
    Mark-to-market for theoretical indices.

    This service:
    1. Re-prices the composition held overnight with the day's closing prices
    2. Computes the day's total return against the previous point's snapshot
    3. Stores one point per (index, date), embedding the snapshot used
    4. Back-fills gaps and recomputes stretches when dividends arrive late
    """

    def __init__(
        self,
        session: Session,
        quote_provider: QuoteProvider,
        calendar: CalendarProvider,
        dividend_provider: Optional[DividendProvider] = None,
        fundamentals_provider: Optional[FundamentalsProvider] = None,
        suspicious_return: float = SUSPICIOUS_RETURN,
        consistency_tolerance: float = 0.01,
    ):
        """
        Initialize IndexService with database session and collaborators.

        Args:
            session: SQLAlchemy session for database access
            quote_provider: Source of closing prices
            calendar: Trading-day authority
            dividend_provider: Source of dividends (none: price return only)
            fundamentals_provider: Source of dividend yields for current_yield
            suspicious_return: Absolute daily asset return that gets logged
            consistency_tolerance: Points difference under which an
                existing point is left untouched
        """
        self.session = session
        self.quotes = quote_provider
        self.calendar = calendar
        self.dividends = dividend_provider
        self.fundamentals = fundamentals_provider
        self.suspicious_return = suspicious_return
        self.consistency_tolerance = consistency_tolerance

        self.index_repo = IndexRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.history_repo = IndexHistoryRepository(session)

    def _prices_for(self, tickers: List[str], as_of: date) -> Dict[str, Optional[float]]:
        prices = self.quotes.get_prices_for_date(tickers, as_of)
        missing = [t for t in tickers if not prices.get(t)]
        if missing and as_of == self.calendar.get_today_in_brazil():
            for ticker, quote in self.quotes.get_latest_prices(missing).items():
                if quote.date == as_of:
                    prices[ticker] = quote.price
        return prices

    def _dividends_for(self, tickers: List[str], as_of: date) -> Dict[str, float]:
        if self.dividends is None:
            return {}
        return self.dividends.get_dividends_for_date(tickers, as_of)

    def compute_current_yield(self, positions: List[AssetPosition]) -> Optional[float]:
        """Target-weighted average dividend yield (percent) of the positions."""
        if self.fundamentals is None or not positions:
            return None
        yields = self.fundamentals.get_dividend_yields([p.ticker for p in positions])

        weighted = 0.0
        total_weight = 0.0
        for p in positions:
            dy = yields.get(p.ticker)
            if dy is None:
                continue
            weighted += p.weight * dy * 100
            total_weight += p.weight
        return weighted / total_weight if total_weight > 0 else None

    def calculate_current_yield(self, index_id: str) -> Optional[float]:
        return self.compute_current_yield(self.composition_repo.get_current_positions(index_id))

    def held_positions(
        self, index_id: str, as_of: date
    ) -> Tuple[Optional[IndexCompositionVersion], List[AssetPosition]]:
        """Composition version held overnight into ``as_of`` and its positions."""
        version = self.composition_repo.get_version_held_on(index_id, as_of)
        if version is None:
            return None, []
        positions = self.composition_repo.version_positions(version)
        return version, [positions[t] for t in sorted(positions)]

    def compute_point(self, index_id: str, as_of: date) -> DailyIndexPoint:
        """
        Compute (without storing) the point for ``as_of``.

        Raises:
            ValueError: If the index has no composition or no position could be priced
        """
        _, positions = self.held_positions(index_id, as_of)
        if not positions:
            raise ValueError(f"No composition found for index '{index_id}' before {as_of}")

        tickers = [p.ticker for p in positions]
        snapshot = build_snapshot(positions, self._prices_for(tickers, as_of))
        if not snapshot:
            raise ValueError(f"No valid prices for index '{index_id}' on {as_of}")

        previous_row = self.history_repo.get_previous_point(index_id, as_of)
        previous = to_domain(previous_row) if previous_row else None

        return compute_daily_point(
            previous_point=previous,
            today_snapshot=snapshot,
            today_dividends=self._dividends_for(list(snapshot), as_of),
            as_of=as_of,
            current_yield=self.compute_current_yield(positions),
            suspicious_return=self.suspicious_return,
        )

    def mark_to_market(self, index_id: str, as_of: date, force: bool = False) -> bool:
        """
        Compute and store the point for ``as_of``.

        Returns:
            True if a point exists for ``as_of`` afterwards, False if the
            market was closed

        Raises:
            ValueError: If the index is unknown or the point cannot be computed
        """
        if not self.index_repo.get_index(index_id):
            raise ValueError(f"Index '{index_id}' not found")

        if not self.calendar.is_trading_day(as_of):
            logger.info(f"Skipping {index_id} on {as_of}: market closed")
            return False

        existing = self.history_repo.get_point(index_id, as_of)
        if existing is not None and not existing.composition_snapshot:
            if self.history_repo.get_previous_point(index_id, as_of) is None:
                logger.info(f"{as_of} is the base date of {index_id}, nothing to compute")
                return True

        point = self.compute_point(index_id, as_of)

        if existing is not None and not force:
            diff = abs(existing.points - point.points)
            if diff < self.consistency_tolerance:
                logger.info(f"Point for {index_id} on {as_of} already consistent, skipping")
                return True
            logger.warning(
                f"Point for {index_id} on {as_of} differs by {diff:.4f}, updating"
            )

        if self.history_repo.get_previous_point(index_id, as_of) is None:
            self._write_base_point(index_id, as_of - timedelta(days=1))

        version, _ = self.held_positions(index_id, as_of)
        self.history_repo.upsert_point(
            index_id, point, composition_version_id=version.id if version else None
        )
        logger.info(
            f"Index {index_id} on {as_of}: {point.points:.4f} ({point.daily_change:+.4f}%)"
        )
        return True

    def _write_base_point(self, index_id: str, on: date) -> None:
        if self.history_repo.get_point(index_id, on) is not None:
            return
        self.history_repo.upsert_point(
            index_id,
            DailyIndexPoint(date=on, points=BASE_POINTS, daily_change=0.0),
        )
        logger.info(f"Created base point for {index_id} on {on}")

    def fill_missing_history(self, index_id: str, today: Optional[date] = None) -> int:
        """
        Compute every weekday between the last stored point and ``today``.

        Returns:
            Number of days filled
        """
        last = self.history_repo.get_last_point(index_id)
        if last is None:
            logger.warning(f"No history for index {index_id}, cannot fill gaps")
            return 0

        today = today or self.calendar.get_today_in_brazil()
        missing = [
            d.date()
            for d in pd.bdate_range(last.date + timedelta(days=1), today)
        ]
        if not missing:
            return 0

        logger.info(f"Found {len(missing)} missing days for index {index_id}")
        filled = 0
        for day in missing:
            try:
                if self.mark_to_market(index_id, day):
                    filled += 1
            except ValueError as e:
                logger.warning(f"Skipping {day} for {index_id}: {e}")

        logger.info(f"Filled {filled}/{len(missing)} missing days for index {index_id}")
        return filled

    def recalculate_from(
        self, index_id: str, start_date: Optional[date] = None
    ) -> RecalculationResult:
        """
        Recompute the points chain from ``start_date`` using the stored
        snapshots and freshly fetched dividends.
        """
        result = RecalculationResult(index_id=index_id)
        rows = self.history_repo.get_points(index_id)
        if not rows:
            result.errors.append("No historical points found for index")
            return result

        to_recalculate = [r for r in rows if start_date is None or r.date >= start_date]
        if not to_recalculate:
            return result

        first = rows.index(to_recalculate[0])
        previous = to_domain(rows[first - 1]) if first > 0 else None

        for row in to_recalculate:
            snapshot = to_domain(row).composition_snapshot
            if not snapshot:
                # base point: nothing to recompute, chain continues from it
                previous = to_domain(row)
                continue

            dividends = self._dividends_for(list(snapshot), row.date)
            result.dividends_found += len(dividends)
            point = compute_daily_point(
                previous_point=previous,
                today_snapshot=snapshot,
                today_dividends=dividends,
                as_of=row.date,
                current_yield=row.current_yield,
                suspicious_return=self.suspicious_return,
            )
            result.points.append(RecalculatedPoint(
                date=row.date, old_points=row.points, new_points=point.points
            ))
            self.history_repo.upsert_point(index_id, point, commit=False)
            previous = point
            result.recalculated += 1

        self.session.commit()
        logger.info(
            f"Recalculated {result.recalculated} points for {index_id} "
            f"({result.dividends_found} dividends)"
        )
        return result

    def get_last_snapshot(self, index_id: str) -> Optional[Tuple[date, CompositionSnapshot]]:
        """Date and content of the most recent non-empty snapshot."""
        row = self.history_repo.get_last_snapshot_point(index_id)
        if row is None:
            return None
        return row.date, to_domain(row).composition_snapshot

    def history_frame(self, index_id: str) -> pd.DataFrame:
        return self.history_repo.to_frame(index_id)
