"""RebalanceService - screening run plus composition update for one index."""

import logging
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.index_repo import IndexRepository
from src.db.repositories.rebalance_log_repo import RebalanceLogRepository
from src.index.methodology import Methodology
from src.index.models import (
    AssetPosition,
    Candidate,
    CompositionSnapshot,
    RebalanceAction,
    RebalanceChange,
)
from src.index.weights import allocate_weights
from src.providers.base import FundamentalsProvider, QuoteProvider
from src.screening.engine import ScreeningEngine, ScreeningResult
from .engine import decide_rebalance, generate_rebalance_reason

logger = logging.getLogger(__name__)

SYSTEM_TICKER = "SYSTEM"


class RebalanceOutcome(BaseModel):
    index_id: str
    date: date
    rebalanced: bool = False
    changes: List[RebalanceChange] = Field(default_factory=list)
    version: Optional[int] = None
    reason: Optional[str] = None


def apply_changes(current: List[str], changes: List[RebalanceChange]) -> List[str]:
    """Membership after applying ENTRY/EXIT actions in order."""
    members = list(current)
    for change in changes:
        if change.action == RebalanceAction.EXIT and change.ticker in members:
            members.remove(change.ticker)
        elif change.action == RebalanceAction.ENTRY and change.ticker not in members:
            members.append(change.ticker)
    return members


class RebalanceService:
    """
    Re-run screening for an index and, when the decision engine asks
    for it, write a new composition version and the audit log.
    """

    def __init__(
        self,
        session: Session,
        fundamentals_provider: FundamentalsProvider,
        quote_provider: QuoteProvider,
        screening_engine: Optional[ScreeningEngine] = None,
    ):
        self.session = session
        self.fundamentals = fundamentals_provider
        self.quotes = quote_provider
        self.screening = screening_engine or ScreeningEngine()

        self.index_repo = IndexRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.log_repo = RebalanceLogRepository(session)

    def load_methodology(self, index_id: str) -> Methodology:
        index = self.index_repo.get_index(index_id)
        if not index:
            raise ValueError(f"Index '{index_id}' not found")
        return Methodology.from_json(index.methodology)

    def screen(self, index_id: str) -> ScreeningResult:
        methodology = self.load_methodology(index_id)
        return self.screening.run(methodology, self.fundamentals.get_universe())

    def run(self, index_id: str, today: date) -> RebalanceOutcome:
        """
        Screen, decide, and apply a rebalance effective ``today``.

        An empty screening result keeps the current composition.
        """
        outcome = RebalanceOutcome(index_id=index_id, date=today)
        methodology = self.load_methodology(index_id)
        universe = self.fundamentals.get_universe()
        result = self.screening.run(methodology, universe)

        if not result.candidates:
            logger.warning(f"Screening returned no candidates for {index_id}, keeping composition")
            return outcome

        current = {p.ticker: p for p in self.composition_repo.get_current_positions(index_id)}
        changes = decide_rebalance(
            list(current),
            result.candidates,
            methodology,
            ranked=result.ranked,
            superseded=result.superseded,
        )
        if not changes:
            logger.info(f"No rebalance needed for {index_id}")
            return outcome

        by_ticker = {c.ticker: c for c in universe}
        by_ticker.update({c.ticker: c for c in result.ranked})
        members = apply_changes(sorted(current), changes)
        positions = self._build_positions(members, current, by_ticker, methodology, today)

        dropped = [t for t in members if t not in positions]
        if dropped:
            changes = [c for c in changes if c.ticker not in dropped or c.action == RebalanceAction.EXIT]

        reason = generate_rebalance_reason(
            changes, methodology, result.removed_by_diversification
        )
        version = self.composition_repo.replace_composition(
            index_id, positions, effective_date=today, reason=reason, commit=False
        )
        summary = RebalanceChange(
            action=RebalanceAction.REBALANCE, ticker=SYSTEM_TICKER, reason=reason
        )
        self.log_repo.append(index_id, today, [summary] + changes, commit=False)
        self.session.commit()

        logger.info(f"Rebalanced {index_id}: {reason}")
        outcome.rebalanced = True
        outcome.changes = changes
        outcome.version = version.version
        outcome.reason = reason
        return outcome

    def _build_positions(
        self,
        members: List[str],
        current: Dict[str, AssetPosition],
        by_ticker: Dict[str, Candidate],
        methodology: Methodology,
        today: date,
    ) -> CompositionSnapshot:
        """
        Weight the new membership; incumbents keep entry price and date,
        entries get today's price. Entries without a price are dropped.
        """
        quotes = self.quotes.get_latest_prices(members)
        prices: Dict[str, float] = {}
        for ticker in members:
            quote = quotes.get(ticker)
            candidate = by_ticker.get(ticker)
            if quote is not None and quote.price > 0:
                prices[ticker] = quote.price
            elif candidate is not None and candidate.current_price:
                prices[ticker] = candidate.current_price
            elif ticker in current:
                prices[ticker] = current[ticker].price
            else:
                logger.warning(f"No price for new entry {ticker}, leaving it out")

        priced = [t for t in members if t in prices]
        candidates = [by_ticker.get(t) or Candidate(ticker=t) for t in priced]
        weights = allocate_weights(candidates, methodology.weighting)

        positions: CompositionSnapshot = {}
        for ticker in priced:
            incumbent = current.get(ticker)
            positions[ticker] = AssetPosition(
                ticker=ticker,
                weight=weights.get(ticker, 0.0),
                price=prices[ticker],
                entry_price=incumbent.entry_price if incumbent else prices[ticker],
                entry_date=incumbent.entry_date if incumbent else today,
            )
        return positions
