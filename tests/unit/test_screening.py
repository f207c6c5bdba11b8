import random

import pytest

from src.index.methodology import Methodology
from src.index.models import Candidate
from src.screening.engine import ScreeningEngine, run_screening
from src.screening.ranking import candidates_to_frame, company_base, rank_frame
from src.screening.strategies import magic_formula_score


def c(ticker, upside=None, sector=None, **kwargs):
    return Candidate(ticker=ticker, upside=upside, sector=sector, **kwargs)


@pytest.fixture
def universe():
    return [
        c("ITUB4", 50.0, "Financeiro", overall_score=70),
        c("BBDC4", 45.0, "Financeiro", overall_score=65),
        c("BBAS3", 40.0, "Financeiro", overall_score=80),
        c("PETR4", 35.0, "Petroleo", overall_score=75),
        c("SANB11", 30.0, "Financeiro", overall_score=60),
        c("EGIE3", 25.0, "Utilidade", overall_score=85),
        c("WEGE3", 25.0, "Industrial", overall_score=90),
        c("MGLU3", None, "Varejo", overall_score=20),
    ]


def test_rank_is_deterministic_regardless_of_input_order(universe):
    methodology = Methodology.model_validate({"selection": {"top_n": 5}})
    first = run_screening(methodology, universe)

    shuffled = list(universe)
    random.Random(7).shuffle(shuffled)
    second = run_screening(methodology, shuffled)

    assert [x.ticker for x in first] == [x.ticker for x in second]
    assert [x.ticker for x in first] == ["ITUB4", "BBDC4", "BBAS3", "PETR4", "SANB11"]


def test_ties_broken_by_ticker(universe):
    methodology = Methodology.model_validate({"selection": {"top_n": 7}})
    tickers = [x.ticker for x in run_screening(methodology, universe)]
    # EGIE3 and WEGE3 share 25% upside
    assert tickers[-2:] == ["EGIE3", "WEGE3"]


def test_nulls_rank_last_in_both_directions(universe):
    df = candidates_to_frame(universe)
    assert rank_frame(df, "upside", descending=True)["ticker"].iloc[-1] == "MGLU3"
    assert rank_frame(df, "upside", descending=False)["ticker"].iloc[-1] == "MGLU3"


def test_ascending_order_by_score(universe):
    methodology = Methodology.model_validate({
        "selection": {"top_n": 2, "order_by": "overall_score", "order_direction": "asc"},
    })
    assert [x.ticker for x in run_screening(methodology, universe)] == ["MGLU3", "SANB11"]


def test_sector_cap_backfills_lower_ranked(universe):
    methodology = Methodology.model_validate({
        "selection": {"top_n": 4},
        "diversification": {"type": "max_count", "default_max_count": 2},
    })
    result = ScreeningEngine().run(methodology, universe)

    assert result.tickers == ["ITUB4", "BBDC4", "PETR4", "EGIE3"]
    assert result.removed_by_diversification == ["BBAS3", "SANB11"]
    sectors = [x.sector for x in result.candidates]
    assert sectors.count("Financeiro") <= 2


def test_sector_specific_limit(universe):
    methodology = Methodology.model_validate({
        "selection": {"top_n": 3},
        "diversification": {"type": "max_count", "max_count_per_sector": {"Financeiro": 1}},
    })
    result = ScreeningEngine().run(methodology, universe)
    # only Financeiro is capped when limits are listed per sector
    assert result.tickers == ["ITUB4", "PETR4", "EGIE3"]


def test_allocation_reserves_slots_for_sector(universe):
    methodology = Methodology.model_validate({
        "selection": {"top_n": 2},
        "diversification": {"type": "allocation", "sector_allocation": {"Petroleo": 0.5}},
    })
    assert [x.ticker for x in run_screening(methodology, universe)] == ["ITUB4", "PETR4"]


def test_score_bands_cap_low_band_first():
    candidates = [
        c("LOWA3", 50.0, overall_score=30),
        c("LOWB3", 45.0, overall_score=40),
        c("HIGA3", 40.0, overall_score=80),
        c("HIGB3", 30.0, overall_score=90),
        c("HIGC3", 20.0, overall_score=70),
    ]
    methodology = Methodology.model_validate({
        "selection": {
            "top_n": 3,
            "score_bands": [
                {"min": 50, "max": 100, "max_count": 10},
                {"min": 0, "max": 49.99, "max_count": 1},
            ],
        },
    })
    assert [x.ticker for x in run_screening(methodology, candidates)] == ["LOWA3", "HIGA3", "HIGB3"]


def test_full_band_overflow_fills_remaining_slots():
    candidates = [c(f"T{i}A3", 50.0 - i, overall_score=60) for i in range(5)]
    methodology = Methodology.model_validate({
        "selection": {
            "top_n": 5,
            "score_bands": [{"min": 0, "max": 100, "max_count": 2}],
        },
    })
    selected = run_screening(methodology, candidates)
    assert [x.ticker for x in selected] == ["T0A3", "T1A3", "T2A3", "T3A3", "T4A3"]


def test_band_overflow_comes_after_capped_bands():
    candidates = [
        c("LOWA3", 50.0, overall_score=30),
        c("LOWB3", 45.0, overall_score=40),
        c("HIGA3", 40.0, overall_score=80),
    ]
    methodology = Methodology.model_validate({
        "selection": {
            "top_n": 3,
            "score_bands": [
                {"min": 0, "max": 49.99, "max_count": 1},
                {"min": 50, "max": 100, "max_count": 1},
            ],
        },
    })
    assert [x.ticker for x in run_screening(methodology, candidates)] == ["LOWA3", "LOWB3", "HIGA3"]


def test_band_overflow_with_sector_allocation():
    candidates = [c(f"T{i}A3", 50.0 - i, "Financeiro", overall_score=60) for i in range(4)]
    methodology = Methodology.model_validate({
        "selection": {
            "top_n": 4,
            "score_bands": [{"min": 0, "max": 100, "max_count": 1}],
        },
        "diversification": {"type": "allocation", "sector_allocation": {"Financeiro": 0.5}},
    })
    assert len(run_screening(methodology, candidates)) == 4


def test_dedupe_keeps_best_share_class():
    candidates = [c("PETR3", 30.0), c("PETR4", 40.0), c("VALE3", 20.0)]
    methodology = Methodology.model_validate({"selection": {"top_n": 3}})
    assert [x.ticker for x in run_screening(methodology, candidates)] == ["PETR4", "VALE3"]

    methodology = Methodology.model_validate({"selection": {"top_n": 3, "dedupe_by_company": False}})
    assert len(run_screening(methodology, candidates)) == 3


def test_dedupe_records_superseded_share_class():
    candidates = [c("PETR3", 30.0), c("PETR4", 40.0), c("VALE3", 20.0)]
    methodology = Methodology.model_validate({"selection": {"top_n": 3}})
    result = ScreeningEngine().run(methodology, candidates)

    assert result.superseded == {"PETR3": "PETR4"}
    assert "PETR3" not in [x.ticker for x in result.ranked]


def test_company_base():
    assert company_base("PETR4") == "PETR"
    assert company_base("sapr11") == "SAPR"


def test_filters_report_rejections(universe):
    methodology = Methodology.model_validate({"require_positive_upside": True})
    result = ScreeningEngine().run(methodology, universe)

    assert result.rejected == {"MGLU3": "positive_upside"}
    assert [x.ticker for x in result.ranked][-1] == "WEGE3"
    assert result.filter_summary["final_count"] == 7


def test_empty_universe():
    result = ScreeningEngine().run(Methodology(), [])
    assert result.candidates == []
    assert result.ranked == []


def test_magic_formula_score():
    strong = c("AAA3", roic=0.6, earnings_yield=0.3, roe=0.2, margem_liquida=0.1,
               crescimento_receitas=0.1)
    assert magic_formula_score(strong) == 100.0

    plain = c("BBB3", roic=0.2, earnings_yield=0.1, roe=0.1, margem_liquida=0.1,
              crescimento_receitas=-0.05)
    assert magic_formula_score(plain) == pytest.approx(50.0)

    assert magic_formula_score(c("CCC3", roic=0.2)) is None


def test_magic_formula_replaces_rank_key():
    candidates = [
        c("AAA3", upside=90.0, roic=0.05, earnings_yield=0.02, crescimento_receitas=-0.05),
        c("BBB3", upside=10.0, roic=0.30, earnings_yield=0.15, crescimento_receitas=-0.05),
        c("CCC3", upside=50.0, roic=None, earnings_yield=0.20),
    ]
    methodology = Methodology.model_validate({
        "strategy": {"type": "magic_formula"},
        "selection": {"top_n": 3},
    })
    result = ScreeningEngine().run(methodology, candidates)

    assert result.tickers == ["BBB3", "AAA3"]
    assert result.candidates[0].magic_score == pytest.approx(60.0)
