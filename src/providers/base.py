from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from datetime import date

from pydantic import BaseModel

from src.index.models import Candidate


class Quote(BaseModel):
    price: float
    date: date


class QuoteProvider(ABC):
    """Abstract base for price sources."""

    @abstractmethod
    def get_latest_prices(self, tickers: List[str]) -> Dict[str, Quote]:
        """Latest known price per ticker; tickers without a price are omitted."""
        pass

    @abstractmethod
    def get_prices_for_date(
        self, tickers: List[str], target_date: date
    ) -> Dict[str, Optional[float]]:
        """Closing price per ticker on ``target_date`` (None when unavailable)."""
        pass


class DividendProvider(ABC):
    """Abstract base for cash dividend sources."""

    @abstractmethod
    def get_dividends_for_date(
        self, tickers: List[str], target_date: date
    ) -> Dict[str, float]:
        """Dividend per share going ex on ``target_date``, only for payers."""
        pass


class CalendarProvider(ABC):
    """Trading-day and timezone authority for the B3 market."""

    @abstractmethod
    def get_today_in_brazil(self) -> date:
        """Current date in America/Sao_Paulo."""
        pass

    @abstractmethod
    def is_trading_day(self, target_date: date) -> bool:
        """Whether the exchange held a session on ``target_date``."""
        pass


class FundamentalsProvider(ABC):
    """Abstract base for scored fundamentals feeding the screening engine."""

    @abstractmethod
    def get_universe(self) -> List[Candidate]:
        """Every asset eligible for screening, with its latest metrics."""
        pass

    def get_dividend_yields(self, tickers: List[str]) -> Dict[str, float]:
        """Latest dividend yield (fraction) per ticker."""
        wanted = set(tickers)
        return {
            c.ticker: c.dividend_yield
            for c in self.get_universe()
            if c.ticker in wanted and c.dividend_yield is not None
        }
