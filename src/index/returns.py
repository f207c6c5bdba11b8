"""
Daily total-return calculation.

R_t = sum(w_{i,t-1} * r_{i,t}) where r_{i,t} uses price + dividend paid
on day t. Weights are carried from the previous snapshot; a position
with no previous snapshot entry is priced from its entry price only on
its entry day or the calendar day after.
"""

import logging
from datetime import date
from typing import Dict, Iterable, Optional

from .models import AssetPosition, CompositionSnapshot, DailyIndexPoint

logger = logging.getLogger(__name__)

BASE_POINTS = 100.0
SUSPICIOUS_RETURN = 0.5


def build_snapshot(
    positions: Iterable[AssetPosition],
    prices: Dict[str, Optional[float]],
) -> CompositionSnapshot:
    """
    Re-price held positions for a new day.

    Tickers with a missing or non-positive price are left out of the
    snapshot; remaining weights are renormalized to sum to 1.
    """
    snapshot: CompositionSnapshot = {}
    for position in positions:
        price = prices.get(position.ticker)
        if price is None or price <= 0:
            logger.warning(
                f"Excluding {position.ticker} from snapshot: invalid price {price}"
            )
            continue
        snapshot[position.ticker] = position.model_copy(update={"price": float(price)})

    total_weight = sum(p.weight for p in snapshot.values())
    if snapshot and total_weight > 0 and abs(total_weight - 1.0) > 1e-4:
        snapshot = {
            t: p.model_copy(update={"weight": p.weight / total_weight})
            for t, p in snapshot.items()
        }
    return snapshot


def compute_daily_point(
    previous_point: Optional[DailyIndexPoint],
    today_snapshot: CompositionSnapshot,
    today_dividends: Optional[Dict[str, float]],
    as_of: date,
    current_yield: Optional[float] = None,
    suspicious_return: float = SUSPICIOUS_RETURN,
) -> DailyIndexPoint:
    """
    Compute the index level for ``as_of`` from the previous point.

    Args:
        previous_point: Last computed point before ``as_of`` (None on the first day)
        today_snapshot: Held positions priced at today's close
        today_dividends: Cash dividend per share paid today, by ticker
        as_of: Date being computed
        current_yield: Weighted dividend yield to record on the point
        suspicious_return: Absolute asset return above which a warning is logged

    Returns:
        DailyIndexPoint embedding ``today_snapshot``
    """
    today_dividends = today_dividends or {}
    previous_snapshot = previous_point.composition_snapshot if previous_point else {}
    previous_points = previous_point.points if previous_point else BASE_POINTS

    total_return = 0.0
    dividend_return = 0.0
    dividends_by_ticker: Dict[str, float] = {}

    for ticker in sorted(today_snapshot):
        position = today_snapshot[ticker]
        dividend = float(today_dividends.get(ticker, 0.0) or 0.0)
        adj_price = position.price + dividend

        prev = previous_snapshot.get(ticker)
        if prev is not None and prev.price > 0:
            base_price = prev.price
            used_weight = prev.weight
        else:
            days_since_entry = (as_of - position.entry_date).days
            if days_since_entry > 1:
                logger.warning(
                    f"{ticker} missing from previous snapshot {days_since_entry} days "
                    f"after entry, no contribution on {as_of}"
                )
                continue
            base_price = position.entry_price
            used_weight = position.weight

        if base_price <= 0:
            logger.warning(f"Skipping {ticker}: non-positive base price {base_price}")
            continue

        asset_return = adj_price / base_price - 1.0
        if abs(asset_return) > suspicious_return:
            logger.warning(
                f"Suspicious return for {ticker} on {as_of}: {asset_return:.2%} "
                f"(base {base_price:.4f}, adjusted {adj_price:.4f})"
            )

        total_return += used_weight * asset_return
        if dividend > 0:
            dividends_by_ticker[ticker] = dividend
            dividend_return += used_weight * dividend / base_price

    daily_change = total_return * 100.0
    return DailyIndexPoint(
        date=as_of,
        points=previous_points * (1.0 + daily_change / 100.0),
        daily_change=daily_change,
        composition_snapshot=today_snapshot,
        dividends_by_ticker=dividends_by_ticker,
        dividends_received=previous_points * dividend_return,
        current_yield=current_yield,
    )
