from datetime import date

import pytest

from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.history_repo import IndexHistoryRepository
from src.index.models import AssetPosition, DailyIndexPoint
from src.index.performance import AssetPerformanceService

D0 = date(2024, 12, 2)
D1 = date(2024, 12, 3)
D2 = date(2024, 12, 4)


def pos(ticker, weight, price, entry_price, entry_date=D0):
    return AssetPosition(ticker=ticker, weight=weight, price=price, entry_price=entry_price, entry_date=entry_date)


@pytest.fixture
def index(session, make_index):
    index = make_index()
    history = IndexHistoryRepository(session)
    history.upsert_point(index.id, DailyIndexPoint(date=D0, points=100.0, daily_change=0.0))
    history.upsert_point(index.id, DailyIndexPoint(
        date=D1, points=105.0, daily_change=5.0,
        composition_snapshot={"AAA3": pos("AAA3", 0.5, 11.0, 10.0), "BBB3": pos("BBB3", 0.5, 20.0, 20.0)},
    ))
    history.upsert_point(index.id, DailyIndexPoint(
        date=D2, points=110.25, daily_change=5.0,
        composition_snapshot={"AAA3": pos("AAA3", 0.4, 12.0, 10.0), "BBB3": pos("BBB3", 0.6, 22.0, 20.0)},
    ))
    # BBB3 left the index after D2
    CompositionRepository(session).replace_composition(
        index.id, {"AAA3": pos("AAA3", 1.0, 12.0, 10.0)}, effective_date=D2
    )
    return index


def test_active_asset(session, index):
    perf = AssetPerformanceService(session).calculate_asset_performance(index.id, "AAA3")

    assert perf.status == "ACTIVE"
    assert perf.entry_date == D0
    assert perf.exit_date is None
    assert perf.total_return == pytest.approx(20.0)
    assert perf.days_in_index == 2
    assert perf.average_weight == pytest.approx(0.45)


def test_exited_asset(session, index):
    perf = AssetPerformanceService(session).calculate_asset_performance(index.id, "BBB3")

    assert perf.status == "EXITED"
    assert perf.exit_date == D2
    assert perf.exit_price == 22.0
    assert perf.total_return == pytest.approx(10.0)


def test_active_asset_uses_live_quote(session, index, quotes):
    quotes.prices = {D2: {"AAA3": 15.0}}
    perf = AssetPerformanceService(session, quotes).calculate_asset_performance(index.id, "AAA3")
    assert perf.total_return == pytest.approx(50.0)


def test_list_all_and_unknown_ticker(session, index):
    service = AssetPerformanceService(session)
    assert [p.ticker for p in service.list_asset_performance(index.id)] == ["BBB3", "AAA3"]
    assert service.calculate_asset_performance(index.id, "ZZZZ3") is None
    assert list(service.snapshot_frame(index.id)["ticker"]) == ["AAA3", "BBB3", "AAA3", "BBB3"]
