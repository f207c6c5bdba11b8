"""ScreeningEngine - turns a candidate universe into an ideal composition."""

import logging
from typing import Dict, List

from pydantic import BaseModel, Field

from src.filters.config import build_screening_filter
from src.index.methodology import Methodology, MagicFormulaStrategy
from src.index.models import Candidate
from .ranking import (
    ORDER_COLUMNS,
    candidates_to_frame,
    company_base,
    dedupe_by_company,
    frame_to_candidates,
    rank_frame,
    select_candidates,
)
from .strategies import magic_formula_score

logger = logging.getLogger(__name__)


class ScreeningResult(BaseModel):
    """Ideal composition plus the context needed to explain it."""

    candidates: List[Candidate] = Field(description="Selected, in rank order")
    ranked: List[Candidate] = Field(
        default_factory=list, description="Every candidate that passed the filters, ranked"
    )
    superseded: Dict[str, str] = Field(
        default_factory=dict,
        description="Share class dropped by company dedupe -> the class kept in its place",
    )
    rejected: Dict[str, str] = Field(
        default_factory=dict, description="Ticker -> first filter that dropped it"
    )
    removed_by_diversification: List[str] = Field(default_factory=list)
    filter_summary: dict = Field(default_factory=dict)

    @property
    def tickers(self) -> List[str]:
        return [c.ticker for c in self.candidates]


class ScreeningEngine:
    """
    Apply a methodology to a universe of candidates.

    Pipeline: filters (universe, liquidity, upside, quality, technical,
    strategy) -> strategy scoring -> ranking -> company dedupe ->
    score bands / top N / diversification.
    """

    def run(self, methodology: Methodology, universe: List[Candidate]) -> ScreeningResult:
        universe = [self._enrich(c, methodology) for c in universe]
        lookup = {c.ticker: c for c in universe}
        if len(lookup) != len(universe):
            logger.warning("Duplicate tickers in universe, keeping the last occurrence")

        df = candidates_to_frame(list(lookup.values()))
        pipeline = build_screening_filter(methodology)
        summary = pipeline.summary(df)
        rejected = pipeline.rejections(df)
        filtered = pipeline.apply(df)

        logger.info(
            f"Screening: {summary['original_count']} candidates, "
            f"{summary['final_count']} passed filters"
        )

        order_column, descending = self._rank_key(methodology)
        ranked = frame_to_candidates(rank_frame(filtered, order_column, descending), lookup)

        superseded = {}
        if methodology.selection.dedupe_by_company:
            deduped = dedupe_by_company(ranked)
            kept = {company_base(c.ticker): c.ticker for c in deduped}
            kept_tickers = set(kept.values())
            superseded = {
                c.ticker: kept[company_base(c.ticker)]
                for c in ranked
                if c.ticker not in kept_tickers
            }
            ranked = deduped

        selected, removed = select_candidates(
            ranked, methodology.selection, methodology.diversification
        )
        if removed:
            logger.info(f"Removed by diversification: {removed}")

        return ScreeningResult(
            candidates=selected,
            ranked=ranked,
            superseded=superseded,
            rejected=rejected,
            removed_by_diversification=removed,
            filter_summary=summary,
        )

    def _enrich(self, candidate: Candidate, methodology: Methodology) -> Candidate:
        """Fill derived fields: technical margin and strategy score."""
        update = {}
        if (
            candidate.technical_margin is None
            and candidate.current_price is not None
            and candidate.technical_fair_price
        ):
            fair = candidate.technical_fair_price
            update["technical_margin"] = (candidate.current_price - fair) / fair * 100
        if isinstance(methodology.strategy, MagicFormulaStrategy):
            update["magic_score"] = magic_formula_score(candidate)
        return candidate.model_copy(update=update) if update else candidate

    def _rank_key(self, methodology: Methodology):
        if isinstance(methodology.strategy, MagicFormulaStrategy):
            return "magic_score", True
        selection = methodology.selection
        return ORDER_COLUMNS[selection.order_by], selection.order_direction == "desc"


def run_screening(methodology: Methodology, universe: List[Candidate]) -> List[Candidate]:
    """Ideal composition for ``universe``, ranked and truncated."""
    return ScreeningEngine().run(methodology, universe).candidates
