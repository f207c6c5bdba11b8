from datetime import date

import pytest

from src.db.repositories.checkpoint_repo import CheckpointRepository
from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.history_repo import IndexHistoryRepository
from src.index.models import AssetPosition, Candidate, DailyIndexPoint
from src.index.service import IndexService
from src.jobs.config import JobConfig, MARK_TO_MARKET, SCREENING
from src.jobs.runner import JobRunner
from src.rebalance.service import RebalanceService

D0 = date(2024, 12, 2)
D1 = date(2024, 12, 3)
SATURDAY = date(2024, 12, 7)


@pytest.fixture
def indices(session, make_index):
    """AAA holds a ticker whose quotes blow up, BBB is healthy, CCC has no composition."""
    history = IndexHistoryRepository(session)
    compositions = CompositionRepository(session)
    created = {}
    for ticker, held in [("AAA", "FAIL3"), ("BBB", "GOOD3"), ("CCC", None)]:
        index = make_index(ticker)
        history.upsert_point(index.id, DailyIndexPoint(date=D0, points=100.0, daily_change=0.0))
        if held:
            compositions.replace_composition(
                index.id,
                {held: AssetPosition(ticker=held, weight=1.0, price=10.0, entry_price=10.0, entry_date=D0)},
                effective_date=D0,
            )
        created[ticker] = index
    return created


@pytest.fixture
def runner(session, quotes, calendar, fundamentals):
    calendar.today = D1
    quotes.prices = {D1: {"FAIL3": 10.0, "GOOD3": 11.0}}
    quotes.fail_for = {"FAIL3"}
    index_service = IndexService(session, quotes, calendar, dividend_provider=quotes)
    rebalance_service = RebalanceService(session, fundamentals, quotes)
    return JobRunner(session, index_service, rebalance_service, JobConfig(show_progress=False))


def test_one_failing_index_does_not_stop_the_batch(session, indices, runner):
    report = runner.run_mark_to_market(D1)

    assert report.attempted == [indices["AAA"].id, indices["BBB"].id, indices["CCC"].id]
    assert list(report.failures) == [indices["AAA"].id]
    assert list(report.successes) == [indices["BBB"].id]
    assert list(report.skipped) == [indices["CCC"].id]

    point = IndexHistoryRepository(session).get_point(indices["BBB"].id, D1)
    assert point.points == pytest.approx(110.0)

    checkpoints = CheckpointRepository(session)
    overall = checkpoints.get(MARK_TO_MARKET, "__GLOBAL__")
    assert overall.completed_at is not None
    assert overall.processed_count == 3
    assert overall.total_count == 3
    assert overall.errors == ["AAA: quote feed down for ['FAIL3']"]
    assert checkpoints.is_complete(MARK_TO_MARKET, indices["BBB"].id, D1)
    assert not checkpoints.is_complete(MARK_TO_MARKET, indices["AAA"].id, D1)


def test_completed_day_is_not_rerun(indices, runner):
    runner.run_mark_to_market(D1)
    again = runner.run_mark_to_market(D1)
    assert again.attempted == []


def test_interrupted_run_resumes_after_last_index(session, indices, runner):
    CheckpointRepository(session).upsert(
        MARK_TO_MARKET, "__GLOBAL__", D1,
        last_processed_index_id=indices["AAA"].id,
        processed_count=1,
        total_count=3,
    )
    report = runner.run_mark_to_market(D1)

    assert report.resumed_after == indices["AAA"].id
    assert report.attempted == [indices["BBB"].id, indices["CCC"].id]
    assert report.failure_count == 0
    assert CheckpointRepository(session).get(MARK_TO_MARKET, "__GLOBAL__").processed_count == 3


def test_index_already_done_today_is_skipped(session, indices, runner):
    CheckpointRepository(session).upsert(MARK_TO_MARKET, indices["BBB"].id, D1, completed=True)
    report = runner.run_mark_to_market(D1)

    assert report.skipped[indices["BBB"].id] == "already processed"
    assert indices["BBB"].id not in report.attempted


def test_closed_market(indices, runner):
    runner.config = JobConfig(show_progress=False, fill_gaps=False)
    report = runner.run_mark_to_market(SATURDAY)
    assert report.successes == {
        indices["AAA"].id: "market closed",
        indices["BBB"].id: "market closed",
        indices["CCC"].id: "market closed",
    }


def test_screening_job_rebalances_each_index(session, indices, runner, quotes, fundamentals):
    quotes.fail_for = set()
    fundamentals.universe = [Candidate(ticker="NEWW3", upside=30.0, current_price=5.0)]
    report = runner.run_screening(D1)

    assert report.failure_count == 0
    assert report.success_count == 3
    for index in indices.values():
        held = CompositionRepository(session).get_current(index.id)
        assert "NEWW3" in [row.asset_ticker for row in held]
    assert CheckpointRepository(session).is_complete(SCREENING, "__GLOBAL__", D1)


def test_run_all_orders_jobs(indices, runner):
    reports = runner.run_all(D1)
    assert [r.job_type for r in reports] == [MARK_TO_MARKET, SCREENING]


def test_default_config_is_not_shared(session, runner):
    first = JobRunner(session, runner.index_service, runner.rebalance_service)
    second = JobRunner(session, runner.index_service, runner.rebalance_service)

    first.config.show_progress = False
    assert second.config.show_progress is True
    assert first.config is not second.config
