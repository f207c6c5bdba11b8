from src.index.methodology import Methodology, MagicFormulaStrategy
from .predicates import (
    asset_types,
    exclude_tickers,
    exclude_ticker_patterns,
    min_average_volume,
    positive_upside,
    min_upside,
    metric_gte,
    metric_lte,
    below_fair_price,
    above_min_price,
)
from .composer import DatasetFilter


def build_screening_filter(methodology: Methodology) -> DatasetFilter:
    """
    Translate a methodology into the ordered filter pipeline:
    universe -> liquidity -> upside -> quality -> technical -> strategy.
    """
    pipeline = DatasetFilter()

    # === UNIVERSE ===
    universe = methodology.universe
    if universe.asset_types:
        pipeline.add(asset_types(universe.asset_types))
    if universe.excluded_tickers:
        pipeline.add(exclude_tickers(universe.excluded_tickers))
    if universe.excluded_ticker_patterns:
        pipeline.add(exclude_ticker_patterns(universe.excluded_ticker_patterns))

    # === LIQUIDITY ===
    if methodology.liquidity.min_average_daily_volume is not None:
        pipeline.add(min_average_volume(methodology.liquidity.min_average_daily_volume))

    # === UPSIDE ===
    if methodology.require_positive_upside:
        pipeline.add(positive_upside())
    if methodology.min_upside is not None:
        pipeline.add(min_upside(methodology.min_upside))

    # === QUALITY GATES ===
    for metric in sorted(methodology.quality):
        bound = methodology.quality[metric]
        if bound.gte is not None:
            pipeline.add(metric_gte(metric, bound.gte))
        if bound.lte is not None:
            pipeline.add(metric_lte(metric, bound.lte))

    # === TECHNICAL FAIR VALUE ===
    if methodology.technical is not None:
        if methodology.technical.require_below_fair_price:
            pipeline.add(below_fair_price())
        if methodology.technical.require_above_min_price:
            pipeline.add(above_min_price())

    # === STRATEGY ===
    if isinstance(methodology.strategy, MagicFormulaStrategy):
        pipeline.add(metric_gte("roic", methodology.strategy.min_roic))
        pipeline.add(metric_gte("earnings_yield", methodology.strategy.min_earnings_yield))

    return pipeline
