from datetime import date
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.db.models import Base
from src.db.models.index import IndexDefinition
from src.index.methodology import Methodology
from src.index.models import Candidate
from src.providers.base import (
    CalendarProvider,
    DividendProvider,
    FundamentalsProvider,
    Quote,
    QuoteProvider,
)


class FakeQuotes(QuoteProvider, DividendProvider):
    """Closing prices and dividends keyed by date."""

    def __init__(self):
        self.prices: Dict[date, Dict[str, float]] = {}
        self.dividends: Dict[date, Dict[str, float]] = {}
        self.fail_for: set = set()

    def _check(self, tickers):
        broken = self.fail_for.intersection(tickers)
        if broken:
            raise RuntimeError(f"quote feed down for {sorted(broken)}")

    def get_latest_prices(self, tickers: List[str]) -> Dict[str, Quote]:
        self._check(tickers)
        quotes = {}
        for ticker in tickers:
            for day in sorted(self.prices, reverse=True):
                if ticker in self.prices[day]:
                    quotes[ticker] = Quote(price=self.prices[day][ticker], date=day)
                    break
        return quotes

    def get_prices_for_date(self, tickers, target_date):
        self._check(tickers)
        day = self.prices.get(target_date, {})
        return {t: day.get(t) for t in tickers}

    def get_dividends_for_date(self, tickers, target_date):
        day = self.dividends.get(target_date, {})
        return {t: day[t] for t in tickers if t in day}


class FakeCalendar(CalendarProvider):
    def __init__(self, today: date):
        self.today = today
        self.holidays = set()

    def get_today_in_brazil(self) -> date:
        return self.today

    def is_trading_day(self, target_date: date) -> bool:
        return target_date.weekday() < 5 and target_date not in self.holidays


class FakeFundamentals(FundamentalsProvider):
    def __init__(self):
        self.universe: List[Candidate] = []

    def get_universe(self) -> List[Candidate]:
        return list(self.universe)


@pytest.fixture
def session():
    """Fresh in-memory database per test."""
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def quotes():
    return FakeQuotes()


@pytest.fixture
def calendar():
    # Wednesday; tests move it as needed
    return FakeCalendar(date(2024, 12, 4))


@pytest.fixture
def fundamentals():
    return FakeFundamentals()


@pytest.fixture
def make_index(session):
    def _make(ticker: str = "IDX", methodology: Optional[Methodology] = None) -> IndexDefinition:
        index = IndexDefinition(
            ticker=ticker,
            name=f"Index {ticker}",
            methodology=(methodology or Methodology()).to_json(),
        )
        session.add(index)
        session.commit()
        return index
    return _make
