from typing import Callable, List
import pandas as pd
import numpy as np

# Type alias for filter functions
FilterPredicate = Callable[[pd.DataFrame], pd.Series]


def _named(predicate: FilterPredicate, name: str) -> FilterPredicate:
    predicate.__name__ = name
    return predicate


def _column(df: pd.DataFrame, column: str) -> pd.Series:
    """Numeric view of a column; absent columns read as all-NaN."""
    if column not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype=float)
    return pd.to_numeric(df[column], errors="coerce")


def asset_types(types: List[str]) -> FilterPredicate:
    """Keep candidates whose asset_type is in the allowed list."""
    allowed = {t.upper() for t in types}

    def predicate(df: pd.DataFrame) -> pd.Series:
        return df["asset_type"].fillna("STOCK").str.upper().isin(allowed)
    return _named(predicate, f"asset_types({sorted(allowed)})")


def exclude_tickers(tickers: List[str]) -> FilterPredicate:
    """Drop an explicit list of tickers."""
    excluded = {t.upper() for t in tickers}

    def predicate(df: pd.DataFrame) -> pd.Series:
        return ~df["ticker"].str.upper().isin(excluded)
    return _named(predicate, "exclude_tickers")


def matches_ticker_pattern(ticker: str, pattern: str) -> bool:
    """
    Glob-style match used for ticker exclusions.

    "*5" matches tickers ending in 5, "PET*" tickers starting with PET,
    anything else must match exactly. Case-insensitive.
    """
    ticker = ticker.upper()
    pattern = pattern.upper()
    if pattern.startswith("*"):
        return ticker.endswith(pattern[1:])
    if pattern.endswith("*"):
        return ticker.startswith(pattern[:-1])
    return ticker == pattern


def exclude_ticker_patterns(patterns: List[str]) -> FilterPredicate:
    """Drop tickers matching any glob-style pattern."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        matched = df["ticker"].apply(
            lambda t: any(matches_ticker_pattern(t, p) for p in patterns)
        )
        return ~matched.astype(bool)
    return _named(predicate, f"exclude_ticker_patterns({patterns})")


def min_average_volume(min_volume: float) -> FilterPredicate:
    """Liquidity floor on average daily traded volume."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, "average_daily_volume") >= min_volume
    return _named(predicate, f"min_average_volume({min_volume})")


def positive_upside() -> FilterPredicate:
    """Keep candidates with a strictly positive fair-value upside."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, "upside") > 0
    return _named(predicate, "positive_upside")


def min_upside(threshold: float) -> FilterPredicate:
    """Keep candidates whose upside (percent) is at least threshold."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, "upside") >= threshold
    return _named(predicate, f"min_upside({threshold})")


def metric_gte(metric: str, bound: float) -> FilterPredicate:
    """metric >= bound; a missing metric fails."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, metric) >= bound
    return _named(predicate, f"{metric}>={bound}")


def metric_lte(metric: str, bound: float) -> FilterPredicate:
    """metric <= bound; a missing metric fails."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, metric) <= bound
    return _named(predicate, f"{metric}<={bound}")


def below_fair_price() -> FilterPredicate:
    """Price at or under the technical fair price."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, "current_price") <= _column(df, "technical_fair_price")
    return _named(predicate, "below_fair_price")


def above_min_price() -> FilterPredicate:
    """Price at or over the technical minimum price."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        return _column(df, "current_price") >= _column(df, "technical_min_price")
    return _named(predicate, "above_min_price")
