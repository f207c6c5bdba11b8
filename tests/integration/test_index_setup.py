from datetime import date
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from src.db.models.history import IndexHistoryPoint
from src.db.models.index import IndexDefinition
from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.index_repo import IndexRepository
from src.index.models import Candidate
from src.index.setup import IndexSetupService, IndexSpec
from src.rebalance.service import RebalanceService

D0 = date(2024, 12, 2)


@pytest.fixture
def spec():
    return IndexSpec.model_validate({
        "ticker": "IVAL",
        "name": "Valor",
        "methodology": {"selection": {"top_n": 2}},
    })


@pytest.fixture
def setup_service(session, calendar, quotes, fundamentals):
    quotes.prices = {D0: {"AAA3": 10.0, "BBB3": 20.0}}
    fundamentals.universe = [
        Candidate(ticker="AAA3", upside=30.0),
        Candidate(ticker="BBB3", upside=20.0),
    ]
    return IndexSetupService(
        session,
        calendar,
        rebalance_service=RebalanceService(session, fundamentals, quotes),
        sleep=MagicMock(),
    )


def test_create_index_writes_base_point_and_composition(session, spec, setup_service):
    index = setup_service.create_index(spec, D0)

    assert index.ticker == "IVAL"
    points = session.query(IndexHistoryPoint).filter_by(index_id=index.id).all()
    assert [(p.date, p.points) for p in points] == [(D0, 100.0)]
    assert not points[0].composition_snapshot

    held = CompositionRepository(session).get_current_positions(index.id)
    assert sorted(p.ticker for p in held) == ["AAA3", "BBB3"]
    assert all(p.entry_date == D0 for p in held)


def test_create_is_idempotent(session, spec, setup_service):
    first = setup_service.create_index(spec, D0)
    second = setup_service.create_index(spec, D0)

    assert first.id == second.id
    assert session.query(IndexDefinition).count() == 1
    assert session.query(IndexHistoryPoint).count() == 1
    assert len(CompositionRepository(session).get_versions(first.id)) == 1


def test_setup_indices_runs_sequentially(session, spec, setup_service):
    other = spec.model_copy(update={"ticker": "IOTR", "name": "Outro"})
    created = setup_service.setup_indices([spec, other], D0)

    assert [i.ticker for i in created] == ["IVAL", "IOTR"]
    assert session.query(IndexDefinition).count() == 2


def test_without_rebalance_service_index_starts_empty(session, spec, calendar):
    index = IndexSetupService(session, calendar).create_index(spec)

    assert session.query(IndexHistoryPoint).filter_by(date=calendar.today).count() == 1
    assert CompositionRepository(session).get_current(index.id) == []


def test_concurrent_create_reconciles_to_existing_row(session, make_index):
    winner = make_index("RACE")
    sleep = MagicMock()
    repo = IndexRepository(session, retry_delay=1.0, max_retries=1, sleep=sleep)

    # the competing insert is not visible on the first two reads
    real_get = repo.get_by_ticker
    calls = []

    def lagging_get(ticker):
        calls.append(ticker)
        return None if len(calls) <= 2 else real_get(ticker)

    repo.get_by_ticker = lagging_get
    result = repo.create_or_get(IndexDefinition(ticker="RACE", name="Loser", methodology={}))

    assert result.id == winner.id
    assert result.name == winner.name
    sleep.assert_called_once_with(1.0)
    assert session.query(IndexDefinition).count() == 1


def test_concurrent_create_gives_up_after_bounded_retries(session, make_index):
    make_index("GONE")
    sleep = MagicMock()
    repo = IndexRepository(session, max_retries=1, sleep=sleep)
    repo.get_by_ticker = lambda ticker: None

    with pytest.raises(ValueError):
        repo.create_or_get(IndexDefinition(ticker="GONE", name="Loser", methodology={}))
    assert sleep.call_count == 1


def test_invalid_methodology_fails_at_setup():
    with pytest.raises(ValidationError):
        IndexSpec.model_validate({
            "ticker": "BAD",
            "name": "Bad",
            "methodology": {"weighting": {"type": "overall_score", "min_weight": 0.5, "max_weight": 0.1}},
        })
