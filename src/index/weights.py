"""Weighting scheme implementations for index composition."""

import logging
from typing import Dict, List, Optional

from .methodology import (
    WeightingRule,
    EqualWeighting,
    ScoreWeighting,
    MarketCapWeighting,
    CustomWeighting,
)
from .models import Candidate

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-4


def compute_equal_weights(tickers: List[str]) -> Dict[str, float]:
    """
    Compute equal weights for all tickers.

    Each ticker gets weight = 1/N.
    """
    n = len(tickers)
    if n == 0:
        return {}
    weight = 1.0 / n
    return {ticker: weight for ticker in tickers}


def compute_score_weights(
    candidates: List[Candidate],
    min_weight: float = 0.02,
    max_weight: float = 0.15,
) -> Dict[str, float]:
    """
    Compute overall-score-proportional weights clamped to [min_weight, max_weight].

    Clamping happens before any redistribution:
    1. raw weight = score / sum(scores), clamped
    2. clamped sum > 1: scale all down by 1/sum, score-less tickers get 0
    3. otherwise the remainder goes equally to score-less tickers, or
       the scored set is scaled up when every ticker has a score
    4. one corrective rescale if the total is still off by > 1e-4

    Falls back to equal weights when no candidate has a score or the
    scores sum to zero.
    """
    tickers = [c.ticker for c in candidates]
    scored = [c for c in candidates if c.overall_score is not None]
    unscored = [c for c in candidates if c.overall_score is None]

    if not scored:
        return compute_equal_weights(tickers)

    total_score = sum(c.overall_score for c in scored)
    if total_score == 0:
        return compute_equal_weights(tickers)

    weights: Dict[str, float] = {}
    for c in scored:
        raw = c.overall_score / total_score
        weights[c.ticker] = min(max(raw, min_weight), max_weight)

    clamped_sum = sum(weights.values())
    if clamped_sum > 1.0:
        weights = {t: w / clamped_sum for t, w in weights.items()}
        for c in unscored:
            weights[c.ticker] = 0.0
    elif unscored:
        share = (1.0 - clamped_sum) / len(unscored)
        for c in unscored:
            weights[c.ticker] = share
    elif clamped_sum > 0:
        weights = {t: w / clamped_sum for t, w in weights.items()}

    return _rescale_if_needed(weights)


def compute_market_cap_weights(candidates: List[Candidate]) -> Dict[str, float]:
    """
    Compute market-cap-weighted weights.

    Weight = market_cap_i / sum(market_cap).
    Larger companies have more influence on the index.
    """
    total_mcap = sum(c.market_cap for c in candidates if c.market_cap)

    if total_mcap == 0:
        # Fallback to equal weight if no market cap data
        return compute_equal_weights([c.ticker for c in candidates])

    return {
        c.ticker: (c.market_cap or 0.0) / total_mcap
        for c in candidates
    }


def normalize_custom_weights(
    custom_weights: Dict[str, float],
    tickers: List[str],
) -> Dict[str, float]:
    """
    Normalize custom weights over the given tickers.

    Args:
        custom_weights: User-provided weights (don't need to sum to 1)
        tickers: Members to weight; tickers missing from custom_weights
            share whatever the explicit weights leave over

    Returns:
        Weights for every ticker, summing to 1.0
    """
    explicit = {t: custom_weights[t] for t in tickers if t in custom_weights}
    implicit = [t for t in tickers if t not in custom_weights]

    total = sum(explicit.values())
    if total == 0:
        return compute_equal_weights(tickers)

    if total > 1.0 or not implicit:
        weights = {t: w / total for t, w in explicit.items()}
        weights.update({t: 0.0 for t in implicit})
        return weights

    weights = dict(explicit)
    share = (1.0 - total) / len(implicit)
    weights.update({t: share for t in implicit})
    return weights


def _rescale_if_needed(weights: Dict[str, float]) -> Dict[str, float]:
    total = sum(weights.values())
    if total > 0 and abs(total - 1.0) > WEIGHT_TOLERANCE:
        logger.warning(f"Weights sum to {total:.6f}, rescaling")
        return {t: w / total for t, w in weights.items()}
    return weights


def allocate_weights(
    candidates: List[Candidate],
    rule: Optional[WeightingRule] = None,
) -> Dict[str, float]:
    """Convert a ranked candidate list into target weights summing to 1."""
    rule = rule or EqualWeighting()
    tickers = [c.ticker for c in candidates]

    if isinstance(rule, EqualWeighting):
        weights = compute_equal_weights(tickers)
    elif isinstance(rule, ScoreWeighting):
        weights = compute_score_weights(candidates, rule.min_weight, rule.max_weight)
    elif isinstance(rule, MarketCapWeighting):
        weights = compute_market_cap_weights(candidates)
    elif isinstance(rule, CustomWeighting):
        weights = normalize_custom_weights(rule.weights, tickers)
    else:
        raise ValueError(f"Unknown weighting rule: {rule}")

    return _rescale_if_needed(weights)
