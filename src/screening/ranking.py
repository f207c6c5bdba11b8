"""Ranking and capped selection of screened candidates."""

import math
import re
from collections import Counter
from typing import Dict, List, Optional, Tuple

import pandas as pd

from src.index.methodology import (
    AllocationDiversification,
    DiversificationRule,
    MaxCountDiversification,
    ScoreBand,
    SelectionRule,
    UNKNOWN_SECTOR,
)
from src.index.models import Candidate

ORDER_COLUMNS = {
    "upside": "upside",
    "dy": "dividend_yield",
    "overall_score": "overall_score",
    "market_cap": "market_cap",
    "technical_margin": "technical_margin",
}


def candidates_to_frame(candidates: List[Candidate]) -> pd.DataFrame:
    """One row per candidate, columns named after Candidate fields."""
    columns = list(Candidate.model_fields)
    if not candidates:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([c.model_dump() for c in candidates], columns=columns)


def frame_to_candidates(df: pd.DataFrame, lookup: Dict[str, Candidate]) -> List[Candidate]:
    return [lookup[t] for t in df["ticker"]]


def rank_frame(
    df: pd.DataFrame,
    order_column: str,
    descending: bool = True,
) -> pd.DataFrame:
    """
    Sort by the rank key, nulls last in either direction, ties broken
    by ticker ascending. Stable so equal inputs give equal output.
    """
    if df.empty:
        return df
    ranked = df.assign(_key=pd.to_numeric(df[order_column], errors="coerce"))
    ranked = ranked.sort_values(
        by=["_key", "ticker"],
        ascending=[not descending, True],
        na_position="last",
        kind="mergesort",
    )
    return ranked.drop(columns="_key").reset_index(drop=True)


def company_base(ticker: str) -> str:
    """PETR3/PETR4 -> PETR, SAPR11 -> SAPR."""
    return re.sub(r"\d+$", "", ticker.upper())


def dedupe_by_company(ranked: List[Candidate]) -> List[Candidate]:
    """Keep the best-ranked share class per company."""
    seen = set()
    result = []
    for candidate in ranked:
        base = company_base(candidate.ticker)
        if base in seen:
            continue
        seen.add(base)
        result.append(candidate)
    return result


def _band_of(candidate: Candidate, bands: List[ScoreBand]) -> Optional[int]:
    for i, band in enumerate(bands):
        if band.contains(candidate.overall_score):
            return i
    return None


def _scan_order(ranked: List[Candidate], bands: List[ScoreBand]) -> List[int]:
    """
    Positions in ``ranked`` in admission priority: each score band from
    the lowest upward, then every candidate outside all bands.
    """
    if not bands:
        return list(range(len(ranked)))
    order = []
    for band_index in range(len(bands)):
        order.extend(
            i for i, c in enumerate(ranked) if _band_of(c, bands) == band_index
        )
    order.extend(i for i, c in enumerate(ranked) if _band_of(c, bands) is None)
    return order


def select_candidates(
    ranked: List[Candidate],
    selection: SelectionRule,
    diversification: Optional[DiversificationRule] = None,
) -> Tuple[List[Candidate], List[str]]:
    """
    Pick up to ``top_n`` candidates honoring score bands and sector caps.

    Candidates skipped by a cap are passed over and lower-ranked ones
    backfill. Output keeps rank order.

    Returns:
        (selected, tickers removed by diversification)
    """
    bands = sorted(selection.score_bands, key=lambda b: (b.min, b.max))
    order = _scan_order(ranked, bands)
    band_of = {i: _band_of(ranked[i], bands) for i in order} if bands else {}

    taken: List[int] = []
    band_counts: Counter = Counter()
    sector_counts: Counter = Counter()
    capped_out = set()

    def sector_of(i: int) -> str:
        return ranked[i].sector or UNKNOWN_SECTOR

    def band_full(i: int) -> bool:
        band = band_of.get(i)
        return band is not None and band_counts[band] >= bands[band].max_count

    def take(i: int) -> None:
        taken.append(i)
        sector_counts[sector_of(i)] += 1
        band = band_of.get(i)
        if band is not None:
            band_counts[band] += 1

    if isinstance(diversification, AllocationDiversification):
        quotas = {
            sector: math.ceil(selection.top_n * share)
            for sector, share in diversification.sector_allocation.items()
        }
        # quota pass, then a fill pass within band caps, then band overflow
        for i in order:
            if len(taken) >= selection.top_n:
                break
            sector = sector_of(i)
            if sector in quotas and sector_counts[sector] < quotas[sector] and not band_full(i):
                take(i)
        for respect_bands in (True, False):
            for i in order:
                if len(taken) >= selection.top_n:
                    break
                if i in taken or (respect_bands and band_full(i)):
                    continue
                take(i)
    else:
        def sector_full(i: int) -> bool:
            if not isinstance(diversification, MaxCountDiversification):
                return False
            sector = sector_of(i)
            limit = diversification.limit_for(sector)
            return limit is not None and sector_counts[sector] >= limit

        # band caps bound the first pass only; leftover slots take band overflow
        for respect_bands in (True, False):
            for i in order:
                if len(taken) >= selection.top_n:
                    break
                if i in taken or (respect_bands and band_full(i)):
                    continue
                if sector_full(i):
                    capped_out.add(i)
                    continue
                take(i)

    taken_set = set(taken)
    removed = [ranked[i].ticker for i in sorted(capped_out) if i not in taken_set]
    return [ranked[i] for i in sorted(taken)], removed
