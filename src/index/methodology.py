"""
Declarative index methodology.

Weighting, strategy and diversification rules are tagged unions keyed
by ``type`` so a stored JSON blob always round-trips to exactly one
rule class. Validation happens once, when an index is set up.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator


QUALITY_METRICS = {
    "roe",
    "roic",
    "earnings_yield",
    "margem_liquida",
    "divida_liquida_ebitda",
    "payout",
    "market_cap",
    "pl",
    "pvp",
    "overall_score",
    "dividend_yield",
}

UNKNOWN_SECTOR = "Outros"


class UniverseFilter(BaseModel):
    asset_types: List[str] = Field(default_factory=lambda: ["STOCK"])
    excluded_tickers: List[str] = Field(default_factory=list)
    excluded_ticker_patterns: List[str] = Field(
        default_factory=list, description='Glob-style: "*5" suffix, "PET*" prefix'
    )


class LiquidityFilter(BaseModel):
    min_average_daily_volume: Optional[float] = None


class MetricBound(BaseModel):
    """Inclusive bound on one fundamental metric."""

    gte: Optional[float] = None
    lte: Optional[float] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "MetricBound":
        if self.gte is None and self.lte is None:
            raise ValueError("Metric bound needs at least one of gte/lte")
        if self.gte is not None and self.lte is not None and self.gte > self.lte:
            raise ValueError(f"Metric bound gte={self.gte} exceeds lte={self.lte}")
        return self


class TechnicalFairValueFilter(BaseModel):
    require_below_fair_price: bool = False
    require_above_min_price: bool = False


class MagicFormulaStrategy(BaseModel):
    """Greenblatt-style ROIC + earnings yield screen."""

    type: Literal["magic_formula"] = "magic_formula"
    min_roic: float = 0.0
    min_earnings_yield: float = 0.0


# Only one strategy so far; the literal ``type`` keeps stored JSON tagged.
StrategyRule = MagicFormulaStrategy


class ScoreBand(BaseModel):
    """Enrollment cap for candidates whose overall score falls in [min, max]."""

    min: float
    max: float
    max_count: int = Field(ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "ScoreBand":
        if self.min > self.max:
            raise ValueError(f"Score band min={self.min} exceeds max={self.max}")
        return self

    def contains(self, score: Optional[float]) -> bool:
        return score is not None and self.min <= score <= self.max


class SelectionRule(BaseModel):
    top_n: int = Field(default=10, gt=0)
    order_by: Literal[
        "upside", "dy", "overall_score", "market_cap", "technical_margin"
    ] = "upside"
    order_direction: Literal["asc", "desc"] = "desc"
    score_bands: List[ScoreBand] = Field(default_factory=list)
    dedupe_by_company: bool = True


class EqualWeighting(BaseModel):
    type: Literal["equal"] = "equal"


class ScoreWeighting(BaseModel):
    """Weights proportional to overall score, clamped to [min_weight, max_weight]."""

    type: Literal["overall_score"] = "overall_score"
    min_weight: float = Field(default=0.02, ge=0.0, le=1.0)
    max_weight: float = Field(default=0.15, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_bounds(self) -> "ScoreWeighting":
        if self.min_weight > self.max_weight:
            raise ValueError(
                f"min_weight={self.min_weight} exceeds max_weight={self.max_weight}"
            )
        return self


class MarketCapWeighting(BaseModel):
    type: Literal["market_cap"] = "market_cap"


class CustomWeighting(BaseModel):
    type: Literal["custom"] = "custom"
    weights: Dict[str, float]

    @field_validator("weights")
    @classmethod
    def check_non_negative(cls, v: Dict[str, float]) -> Dict[str, float]:
        negative = [t for t, w in v.items() if w < 0]
        if negative:
            raise ValueError(f"Negative custom weights for {negative}")
        return v


WeightingRule = Annotated[
    Union[EqualWeighting, ScoreWeighting, MarketCapWeighting, CustomWeighting],
    Field(discriminator="type"),
]


class RebalanceRule(BaseModel):
    threshold: float = Field(
        default=0.05, ge=0.0, description="Minimum upside advantage, as a fraction"
    )
    upside_type: Literal["graham", "fcd", "gordon", "barsi", "technical", "best"] = "best"
    check_quality: bool = True


class MaxCountDiversification(BaseModel):
    type: Literal["max_count"] = "max_count"
    max_count_per_sector: Dict[str, int] = Field(default_factory=dict)
    default_max_count: int = Field(default=4, gt=0)

    def limit_for(self, sector: str) -> Optional[int]:
        """Cap for a sector; an empty mapping caps every sector at the default."""
        if sector in self.max_count_per_sector:
            return self.max_count_per_sector[sector]
        if not self.max_count_per_sector:
            return self.default_max_count
        return None


class AllocationDiversification(BaseModel):
    type: Literal["allocation"] = "allocation"
    sector_allocation: Dict[str, float]

    @field_validator("sector_allocation")
    @classmethod
    def check_shares(cls, v: Dict[str, float]) -> Dict[str, float]:
        if any(share < 0 or share > 1 for share in v.values()):
            raise ValueError("Sector allocation shares must be within [0, 1]")
        return v


DiversificationRule = Annotated[
    Union[MaxCountDiversification, AllocationDiversification],
    Field(discriminator="type"),
]


class Methodology(BaseModel):
    """Complete methodology of a theoretical index."""

    universe: UniverseFilter = Field(default_factory=UniverseFilter)
    liquidity: LiquidityFilter = Field(default_factory=LiquidityFilter)
    quality: Dict[str, MetricBound] = Field(default_factory=dict)
    require_positive_upside: bool = False
    min_upside: Optional[float] = None
    technical: Optional[TechnicalFairValueFilter] = None
    strategy: Optional[StrategyRule] = None
    selection: SelectionRule = Field(default_factory=SelectionRule)
    weighting: WeightingRule = Field(default_factory=EqualWeighting)
    rebalance: RebalanceRule = Field(default_factory=RebalanceRule)
    diversification: Optional[DiversificationRule] = None

    @field_validator("quality")
    @classmethod
    def check_metrics(cls, v: Dict[str, MetricBound]) -> Dict[str, MetricBound]:
        unknown = sorted(set(v) - QUALITY_METRICS)
        if unknown:
            raise ValueError(f"Unknown quality metrics: {unknown}")
        return v

    def to_json(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: dict) -> "Methodology":
        return cls.model_validate(data)
