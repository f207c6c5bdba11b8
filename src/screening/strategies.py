"""Strategy-specific scoring used to replace the default rank key."""

from typing import Optional

from src.index.models import Candidate

MAGIC_SCORE_CAP = 100.0


def _value(x: Optional[float]) -> float:
    return x if x is not None else 0.0


def magic_formula_score(candidate: Candidate) -> Optional[float]:
    """
    Combined ROIC / earnings-yield score in [0, 100].

    Each component is capped so a single outlier ratio cannot dominate:
    ROIC at 50%, earnings yield at 25%, ROE and net margin at 30%.
    Revenue growth adds a bonus above -5%. Returns None when either
    ROIC or earnings yield is unknown.
    """
    if candidate.roic is None or candidate.earnings_yield is None:
        return None

    score = (
        min(candidate.roic, 0.5) * 100
        + min(candidate.earnings_yield, 0.25) * 200
        + min(_value(candidate.roe), 0.3) * 50
        + min(_value(candidate.margem_liquida), 0.3) * 50
        + max(0.0, _value(candidate.crescimento_receitas) + 0.05) * 80
    )
    return min(score, MAGIC_SCORE_CAP)
