"""
RebalanceDecisionEngine - diff current membership against the ideal one.

Incumbents leave when they fail the quality screen (check_quality) or
when a challenger beats the weakest incumbent by more than the
threshold. Challengers enter into vacant slots or by displacement.
Marginal improvements never cause a swap.
"""

import logging
from typing import Collection, Dict, List, Optional

from src.index.methodology import (
    DiversificationRule,
    MaxCountDiversification,
    Methodology,
    RebalanceRule,
    UNKNOWN_SECTOR,
)
from src.index.models import Candidate, RebalanceAction, RebalanceChange

logger = logging.getLogger(__name__)

UPSIDE_MODELS = ("graham", "fcd", "gordon", "barsi", "technical")
UPSIDE_LABELS = {"fcd": "FCD", "technical": "technical analysis"}


def upside_for_rebalance(candidate: Candidate, upside_type: str = "best") -> Optional[float]:
    """
    Upside used to compare challengers with incumbents.

    "best" takes the highest model upside available; a specific model
    falls back to the default upside when that model has no value.
    """
    if not candidate.upsides:
        return candidate.upside

    if upside_type == "best":
        available = [
            candidate.upsides[m] for m in UPSIDE_MODELS
            if candidate.upsides.get(m) is not None
        ]
        return max(available) if available else candidate.upside

    value = candidate.upsides.get(upside_type)
    return value if value is not None else candidate.upside


def _format(value: Optional[float], fmt: str) -> str:
    return format(value, fmt) if value is not None else "n/a"


class RebalanceDecisionEngine:
    """Decide ENTRY/EXIT actions for one index."""

    def __init__(self, rule: Optional[RebalanceRule] = None):
        self.rule = rule or RebalanceRule()

    @property
    def threshold_pct(self) -> float:
        return self.rule.threshold * 100

    def decide(
        self,
        current: Collection[str],
        ideal: List[Candidate],
        target_size: Optional[int] = None,
        universe: Optional[Dict[str, Candidate]] = None,
        diversification: Optional[DiversificationRule] = None,
        eligible: Optional[Collection[str]] = None,
        superseded: Optional[Dict[str, str]] = None,
    ) -> List[RebalanceChange]:
        """
        Ordered ENTRY/EXIT actions turning ``current`` into the new membership.

        Args:
            current: Tickers held today
            ideal: Screening output in rank order
            target_size: Slots in the index (defaults to len(ideal))
            universe: Candidate data for incumbents outside ``ideal``
                (typically every candidate that passed the filters)
            diversification: Sector caps re-checked on the final membership
            eligible: Tickers that passed the filters; an incumbent outside
                it fails the quality check (defaults to ``ideal``)
            superseded: Share class dropped by company dedupe -> class kept;
                an incumbent listed here exits in favour of that class
        """
        target_size = target_size if target_size is not None else len(ideal)
        ideal_by_ticker = {c.ticker: c for c in ideal}
        universe = universe or {}
        superseded = superseded or {}
        eligible = set(eligible) if eligible is not None else set(ideal_by_ticker)
        held = sorted(current)
        changes: List[RebalanceChange] = []

        if self.rule.check_quality:
            for ticker in held:
                if ticker in eligible:
                    continue
                if ticker in superseded:
                    reason = (
                        f"Removed: {ticker} superseded by {superseded[ticker]}, "
                        f"a better-ranked share class of the same company"
                    )
                else:
                    reason = f"Removed: {ticker} no longer passes the screening filters"
                changes.append(RebalanceChange(
                    action=RebalanceAction.EXIT, ticker=ticker, reason=reason
                ))
            held = [t for t in held if t in eligible]

        def incumbent_upside(ticker: str) -> Optional[float]:
            candidate = ideal_by_ticker.get(ticker) or universe.get(ticker)
            return upside_for_rebalance(candidate, self.rule.upside_type) if candidate else None

        position = {c.ticker: i + 1 for i, c in enumerate(ideal)}
        for challenger in ideal:
            if challenger.ticker in held:
                continue

            if len(held) < target_size:
                held.append(challenger.ticker)
                changes.append(RebalanceChange(
                    action=RebalanceAction.ENTRY,
                    ticker=challenger.ticker,
                    reason=self._entry_reason(challenger, position, len(ideal), None),
                ))
                continue

            weakest = self._weakest(held, incumbent_upside)
            if weakest is None:
                continue
            challenger_upside = upside_for_rebalance(challenger, self.rule.upside_type)
            weakest_upside = incumbent_upside(weakest)
            if challenger_upside is None:
                continue
            if weakest_upside is not None and challenger_upside - weakest_upside <= self.threshold_pct:
                logger.debug(
                    f"{challenger.ticker} ({challenger_upside:.1f}%) does not clear threshold "
                    f"over {weakest} ({weakest_upside:.1f}%)"
                )
                continue

            held.remove(weakest)
            held.append(challenger.ticker)
            diff = None if weakest_upside is None else challenger_upside - weakest_upside
            changes.append(RebalanceChange(
                action=RebalanceAction.EXIT,
                ticker=weakest,
                reason=(
                    f"Removed: displaced by {challenger.ticker} "
                    f"(upside {_format(challenger_upside, '.1f')}% vs "
                    f"{_format(weakest_upside, '.1f')}%, threshold {self.threshold_pct:.0f}%)"
                ),
            ))
            changes.append(RebalanceChange(
                action=RebalanceAction.ENTRY,
                ticker=challenger.ticker,
                reason=self._entry_reason(challenger, position, len(ideal), diff),
            ))

        if isinstance(diversification, MaxCountDiversification):
            changes.extend(self._enforce_sector_caps(
                held, diversification, ideal_by_ticker, universe, incumbent_upside
            ))

        return changes

    def _enforce_sector_caps(
        self,
        held: List[str],
        rule: MaxCountDiversification,
        ideal_by_ticker: Dict[str, Candidate],
        universe: Dict[str, Candidate],
        upside_of,
    ) -> List[RebalanceChange]:
        """Exit the weakest holdings of any sector above its cap."""
        def sector_of(ticker: str) -> str:
            candidate = ideal_by_ticker.get(ticker) or universe.get(ticker)
            return (candidate.sector if candidate else None) or UNKNOWN_SECTOR

        changes = []
        by_sector: Dict[str, List[str]] = {}
        for ticker in held:
            by_sector.setdefault(sector_of(ticker), []).append(ticker)

        for sector in sorted(by_sector):
            limit = rule.limit_for(sector)
            members = by_sector[sector]
            while limit is not None and len(members) > limit:
                weakest = self._weakest(members, upside_of)
                members.remove(weakest)
                held.remove(weakest)
                changes.append(RebalanceChange(
                    action=RebalanceAction.EXIT,
                    ticker=weakest,
                    reason=f"Removed: sector \"{sector}\" above its limit of {limit} assets",
                ))
        return changes

    def _weakest(self, held: List[str], upside_of) -> Optional[str]:
        """Incumbent with the lowest upside; unknown upside counts as weakest."""
        if not held:
            return None
        return min(
            held,
            key=lambda t: (
                upside_of(t) is not None,
                upside_of(t) if upside_of(t) is not None else 0.0,
                t,
            ),
        )

    def _entry_reason(
        self,
        candidate: Candidate,
        position: Dict[str, int],
        ideal_size: int,
        threshold_diff: Optional[float],
    ) -> str:
        details = [f"rank {position[candidate.ticker]}/{ideal_size}"]
        if candidate.upside is not None:
            details.append(f"upside {candidate.upside:.1f}%")
        if candidate.overall_score is not None:
            details.append(f"score {candidate.overall_score:.0f}")
        if candidate.technical_margin is not None:
            details.append(f"technical margin {candidate.technical_margin:.1f}%")
        reason = f"Added: selected by screening ({', '.join(details)})"
        if threshold_diff is not None:
            reason += f" - beats weakest holding by {threshold_diff:.1f}%"
        return reason


def decide_rebalance(
    current: Collection[str],
    ideal: List[Candidate],
    methodology: Methodology,
    ranked: Optional[List[Candidate]] = None,
    superseded: Optional[Dict[str, str]] = None,
) -> List[RebalanceChange]:
    """
    Decide membership changes under ``methodology``.

    ``ranked`` is every candidate that passed the filters; incumbents in
    it but outside ``ideal`` are kept unless displaced. ``superseded``
    maps share classes dropped by company dedupe to the class kept.
    """
    engine = RebalanceDecisionEngine(methodology.rebalance)
    universe = {c.ticker: c for c in ranked} if ranked is not None else None
    return engine.decide(
        current,
        ideal,
        target_size=methodology.selection.top_n,
        universe=universe,
        diversification=methodology.diversification,
        eligible=universe.keys() if universe is not None else None,
        superseded=superseded,
    )


def should_rebalance(
    current: Collection[str],
    ideal: List[Candidate],
    methodology: Methodology,
    ranked: Optional[List[Candidate]] = None,
    superseded: Optional[Dict[str, str]] = None,
) -> bool:
    """True when ``decide_rebalance`` would change the membership."""
    return bool(decide_rebalance(current, ideal, methodology, ranked, superseded))


def generate_rebalance_reason(
    changes: List[RebalanceChange],
    methodology: Methodology,
    removed_by_diversification: Optional[List[str]] = None,
) -> str:
    """Human-readable summary for the overall REBALANCE log row."""
    exits = [c for c in changes if c.action == RebalanceAction.EXIT]
    entries = [c for c in changes if c.action == RebalanceAction.ENTRY]

    reasons = []
    if exits and entries:
        reasons.append(f"{len(exits)} asset(s) removed and {len(entries)} added")
    elif exits:
        reasons.append(f"{len(exits)} asset(s) removed from the composition")
    elif entries:
        reasons.append(f"{len(entries)} asset(s) added to the composition")

    displaced = [c for c in exits if c.reason.startswith("Removed: displaced")]
    if displaced:
        upside_type = methodology.rebalance.upside_type
        label = ""
        if upside_type != "best":
            label = f" ({UPSIDE_LABELS.get(upside_type, upside_type.capitalize())})"
        reasons.append(
            f"{len(displaced)} holding(s) displaced by upside{label} above the "
            f"{methodology.rebalance.threshold * 100:.0f}% threshold"
        )

    quality_exits = [c for c in exits if "screening filters" in c.reason]
    if quality_exits:
        reasons.append(f"{len(quality_exits)} asset(s) failed the quality screen")

    superseded = [c for c in exits if "superseded by" in c.reason]
    if superseded:
        reasons.append(f"{len(superseded)} share class(es) replaced by a better-ranked class")

    exited = {c.ticker for c in exits}
    sector_exits = [c for c in exits if "above its limit" in c.reason]
    if sector_exits or (
        removed_by_diversification and exited & set(removed_by_diversification)
    ):
        reasons.append("some assets removed by diversification rules")

    if not reasons:
        return "Rebalance executed after screening"
    return f"Rebalance required: {', '.join(reasons)}"
