from datetime import date

import pytest

from src.db.models.rebalance_log import IndexRebalanceLog
from src.db.repositories.composition_repo import CompositionRepository
from src.index.methodology import Methodology
from src.index.models import Candidate
from src.rebalance.service import RebalanceService

D0 = date(2024, 12, 2)
D1 = date(2024, 12, 3)


def c(ticker, upside, sector="Financeiro", **kwargs):
    return Candidate(ticker=ticker, upside=upside, sector=sector, **kwargs)


@pytest.fixture
def index(make_index):
    return make_index(methodology=Methodology.model_validate({
        "require_positive_upside": True,
        "selection": {"top_n": 2},
        "rebalance": {"threshold": 0.05},
    }))


@pytest.fixture
def service(session, quotes, fundamentals):
    quotes.prices = {D0: {"AAA3": 10.0, "BBB3": 20.0, "CCC3": 30.0}}
    fundamentals.universe = [c("AAA3", 30.0), c("BBB3", 25.0), c("CCC3", 10.0)]
    return RebalanceService(session, fundamentals, quotes)


def composition(session, index_id):
    return {
        p.ticker: p for p in CompositionRepository(session).get_current_positions(index_id)
    }


def logs(session, index_id):
    return (
        session.query(IndexRebalanceLog)
        .filter_by(index_id=index_id)
        .order_by(IndexRebalanceLog.id)
        .all()
    )


def test_initial_run_fills_vacant_slots(session, index, service):
    outcome = service.run(index.id, D0)

    assert outcome.rebalanced
    assert outcome.version == 1
    assert outcome.reason == "Rebalance required: 2 asset(s) added to the composition"

    held = composition(session, index.id)
    assert set(held) == {"AAA3", "BBB3"}
    assert held["AAA3"].weight == pytest.approx(0.5)
    assert held["BBB3"].entry_price == pytest.approx(20.0)
    assert held["BBB3"].entry_date == D0

    rows = logs(session, index.id)
    assert [(r.action, r.ticker) for r in rows] == [
        ("REBALANCE", "SYSTEM"), ("ENTRY", "AAA3"), ("ENTRY", "BBB3"),
    ]


def test_unchanged_screening_keeps_composition(session, index, service):
    service.run(index.id, D0)
    outcome = service.run(index.id, D1)

    assert not outcome.rebalanced
    assert len(CompositionRepository(session).get_versions(index.id)) == 1
    assert len(logs(session, index.id)) == 3


def test_displacement_writes_new_version(session, index, service, quotes, fundamentals):
    service.run(index.id, D0)

    quotes.prices[D1] = {"CCC3": 31.0}
    fundamentals.universe = [c("AAA3", 30.0), c("BBB3", 25.0), c("CCC3", 40.0)]
    outcome = service.run(index.id, D1)

    assert outcome.rebalanced
    assert outcome.version == 2
    assert [(ch.action, ch.ticker) for ch in outcome.changes] == [("EXIT", "BBB3"), ("ENTRY", "CCC3")]

    held = composition(session, index.id)
    assert set(held) == {"AAA3", "CCC3"}
    # incumbents keep their entry
    assert held["AAA3"].entry_price == pytest.approx(10.0)
    assert held["AAA3"].entry_date == D0
    assert held["CCC3"].entry_price == pytest.approx(31.0)
    assert held["CCC3"].entry_date == D1

    repo = CompositionRepository(session)
    versions = repo.get_versions(index.id)
    assert [v.version for v in versions] == [1, 2]
    assert set(repo.version_positions(versions[0])) == {"AAA3", "BBB3"}
    assert repo.get_version_held_on(index.id, D0) is None
    assert repo.get_version_held_on(index.id, D1).version == 1
    assert repo.get_version_held_on(index.id, date(2024, 12, 4)).version == 2


def test_marginal_improvement_is_ignored(session, index, service, fundamentals):
    service.run(index.id, D0)

    fundamentals.universe = [c("AAA3", 30.0), c("BBB3", 25.0), c("CCC3", 27.0)]
    assert not service.run(index.id, D1).rebalanced
    assert set(composition(session, index.id)) == {"AAA3", "BBB3"}


def test_empty_screening_keeps_last_composition(session, index, service, fundamentals):
    service.run(index.id, D0)

    fundamentals.universe = [c("AAA3", -5.0), c("BBB3", -1.0)]
    outcome = service.run(index.id, D1)

    assert not outcome.rebalanced
    assert set(composition(session, index.id)) == {"AAA3", "BBB3"}


def test_entry_without_price_is_left_out(session, index, service, fundamentals):
    service.run(index.id, D0)

    fundamentals.universe = [c("AAA3", 30.0), c("BBB3", 25.0), c("DDDD3", 50.0)]
    outcome = service.run(index.id, D1)

    held = composition(session, index.id)
    assert set(held) == {"AAA3"}
    assert held["AAA3"].weight == pytest.approx(1.0)
    assert "DDDD3" not in [ch.ticker for ch in outcome.changes]


def test_screen_unknown_index(service):
    with pytest.raises(ValueError):
        service.screen("missing")
