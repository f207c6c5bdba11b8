"""Pydantic models for the Index module."""

from enum import Enum
from typing import Dict, List, Optional
from datetime import date
from pydantic import BaseModel, Field


class RebalanceAction(str, Enum):
    """Actions recorded in the rebalance log."""

    ENTRY = "ENTRY"
    EXIT = "EXIT"
    REBALANCE = "REBALANCE"


class AssetStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXITED = "EXITED"


class AssetPosition(BaseModel):
    """A held ticker inside a composition snapshot."""

    ticker: str
    weight: float = Field(ge=0.0, le=1.0)
    price: float = Field(description="Last known price as of the snapshot date")
    entry_price: float = Field(description="Price at first inclusion, fixed while held")
    entry_date: date

    def to_json(self) -> dict:
        return {
            "weight": self.weight,
            "price": self.price,
            "entry_price": self.entry_price,
            "entry_date": self.entry_date.isoformat(),
        }

    @classmethod
    def from_json(cls, ticker: str, data: dict) -> "AssetPosition":
        return cls(
            ticker=ticker,
            weight=data["weight"],
            price=data["price"],
            entry_price=data["entry_price"],
            entry_date=date.fromisoformat(data["entry_date"]),
        )


CompositionSnapshot = Dict[str, AssetPosition]


def snapshot_to_json(snapshot: CompositionSnapshot) -> dict:
    """Serialize a snapshot for JSON columns (sorted for stable output)."""
    return {ticker: snapshot[ticker].to_json() for ticker in sorted(snapshot)}


def snapshot_from_json(data: Optional[dict]) -> CompositionSnapshot:
    if not data:
        return {}
    return {ticker: AssetPosition.from_json(ticker, row) for ticker, row in data.items()}


class DailyIndexPoint(BaseModel):
    """Index level for one trading day."""

    date: date
    points: float
    daily_change: float = Field(description="Percent change versus the previous point")
    composition_snapshot: Dict[str, AssetPosition] = Field(default_factory=dict)
    dividends_by_ticker: Dict[str, float] = Field(default_factory=dict)
    dividends_received: float = Field(
        default=0.0, description="Index points attributable to dividends"
    )
    current_yield: Optional[float] = None


class Candidate(BaseModel):
    """
    Screening candidate, produced fresh on every screening run.

    Fundamental ratios are fractions (roe=0.15 means 15%); upside and
    technical_margin are percentages.
    """

    ticker: str
    name: Optional[str] = None
    sector: Optional[str] = None
    asset_type: str = "STOCK"
    current_price: Optional[float] = None

    overall_score: Optional[float] = None
    upside: Optional[float] = None
    upsides: Dict[str, Optional[float]] = Field(
        default_factory=dict,
        description="Upside per fair value model: graham, fcd, gordon, barsi, technical",
    )
    technical_margin: Optional[float] = None
    technical_fair_price: Optional[float] = None
    technical_min_price: Optional[float] = None

    dividend_yield: Optional[float] = None
    market_cap: Optional[float] = None
    average_daily_volume: Optional[float] = None

    roe: Optional[float] = None
    roic: Optional[float] = None
    earnings_yield: Optional[float] = None
    margem_liquida: Optional[float] = None
    divida_liquida_ebitda: Optional[float] = None
    payout: Optional[float] = None
    pl: Optional[float] = None
    pvp: Optional[float] = None
    crescimento_receitas: Optional[float] = None

    magic_score: Optional[float] = None


class RebalanceChange(BaseModel):
    """One decided membership change."""

    action: RebalanceAction
    ticker: str
    reason: str

    class Config:
        """Pydantic config."""

        use_enum_values = True


class AssetPerformance(BaseModel):
    """Performance of one ticker while it was held by an index."""

    ticker: str
    entry_date: date
    exit_date: Optional[date] = None
    entry_price: float
    exit_price: Optional[float] = None
    days_in_index: int
    total_return: Optional[float] = Field(
        default=None, description="Percent return from entry to last known price"
    )
    average_weight: float
    status: AssetStatus
    first_snapshot_date: date
    last_snapshot_date: date

    class Config:
        """Pydantic config."""

        use_enum_values = True


class RecalculatedPoint(BaseModel):
    date: date
    old_points: float
    new_points: float


class RecalculationResult(BaseModel):
    """Outcome of recomputing a stretch of the points chain."""

    index_id: str
    recalculated: int = 0
    dividends_found: int = 0
    points: List[RecalculatedPoint] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors
