import logging
from typing import Dict, List, Optional
from datetime import date, timedelta

import yfinance as yf
import pandas as pd

from ..base import DividendProvider, Quote, QuoteProvider
from ..rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

B3_SUFFIX = ".SA"


def to_yahoo_symbol(ticker: str) -> str:
    """PETR4 -> PETR4.SA; symbols that already carry a suffix pass through."""
    return ticker if "." in ticker else f"{ticker}{B3_SUFFIX}"


class YFinanceQuoteProvider(QuoteProvider, DividendProvider):
    """yfinance implementation of the quote and dividend interfaces."""

    def __init__(self, rate_limit_delay: float = 0.25):
        self.limiter = RateLimiter(min_interval=rate_limit_delay)

    def _history(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        self.limiter.wait_if_needed()
        try:
            return yf.Ticker(to_yahoo_symbol(ticker)).history(
                start=start.strftime("%Y-%m-%d"),
                end=end.strftime("%Y-%m-%d"),
                auto_adjust=False,
                actions=True,
            )
        except Exception as e:
            # yfinance raises a wide range of network/parse errors
            logger.warning(f"History request failed for {ticker}: {e}")
            return pd.DataFrame()

    @staticmethod
    def _row_for(hist: pd.DataFrame, target_date: date) -> Optional[pd.Series]:
        if hist.empty:
            return None
        dates = pd.DatetimeIndex(hist.index).date
        matches = hist[dates == target_date]
        if matches.empty:
            return None
        return matches.iloc[0]

    def get_latest_prices(self, tickers: List[str]) -> Dict[str, Quote]:
        today = date.today()
        quotes: Dict[str, Quote] = {}
        for ticker in tickers:
            hist = self._history(ticker, today - timedelta(days=7), today + timedelta(days=1))
            if hist.empty:
                logger.warning(f"No recent prices for {ticker}")
                continue
            last = hist.iloc[-1]
            quotes[ticker] = Quote(
                price=float(last["Close"]),
                date=pd.Timestamp(hist.index[-1]).date(),
            )
        return quotes

    def get_prices_for_date(
        self, tickers: List[str], target_date: date
    ) -> Dict[str, Optional[float]]:
        prices: Dict[str, Optional[float]] = {}
        for ticker in tickers:
            hist = self._history(ticker, target_date, target_date + timedelta(days=1))
            row = self._row_for(hist, target_date)
            prices[ticker] = float(row["Close"]) if row is not None else None
        return prices

    def get_dividends_for_date(
        self, tickers: List[str], target_date: date
    ) -> Dict[str, float]:
        dividends: Dict[str, float] = {}
        for ticker in tickers:
            hist = self._history(ticker, target_date, target_date + timedelta(days=1))
            row = self._row_for(hist, target_date)
            if row is None or "Dividends" not in row:
                continue
            amount = float(row["Dividends"])
            if amount > 0:
                dividends[ticker] = amount
        return dividends
