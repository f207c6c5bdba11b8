from typing import List, Optional
import pandas as pd
from .predicates import FilterPredicate


class DatasetFilter:
    """
    Compose multiple filter predicates.
    Applies all filters with AND logic (intersection), in insertion order.
    """

    def __init__(self, predicates: Optional[List[FilterPredicate]] = None):
        self.predicates = predicates or []

    def __len__(self) -> int:
        return len(self.predicates)

    def add(self, predicate: FilterPredicate) -> "DatasetFilter":
        """Add a filter predicate. Returns self for chaining."""
        self.predicates.append(predicate)
        return self

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply all filters to dataframe.
        Returns filtered dataframe.
        """
        if not self.predicates or df.empty:
            return df.copy()

        mask = pd.Series(True, index=df.index)
        for predicate in self.predicates:
            mask &= predicate(df).fillna(False).astype(bool)

        return df[mask].copy()

    def rejections(self, df: pd.DataFrame) -> dict:
        """
        Map each dropped ticker to the first predicate that rejected it.
        """
        rejected = {}
        alive = pd.Series(True, index=df.index)
        for predicate in self.predicates:
            mask = predicate(df).fillna(False).astype(bool)
            newly_dropped = alive & ~mask
            for ticker in df.loc[newly_dropped, "ticker"]:
                rejected[ticker] = _predicate_name(predicate)
            alive &= mask
        return rejected

    def summary(self, df: pd.DataFrame) -> dict:
        """
        Get filtering summary without actually filtering.
        Useful for debugging/logging.
        """
        original_count = len(df)
        final_mask = pd.Series(True, index=df.index)

        step_counts = []
        for i, predicate in enumerate(self.predicates):
            mask = predicate(df).fillna(False).astype(bool)
            remaining = int((final_mask & mask).sum())
            step_counts.append({
                "step": i + 1,
                "predicate": _predicate_name(predicate),
                "remaining": remaining,
                "dropped": int(final_mask.sum()) - remaining,
            })
            final_mask &= mask

        final_count = int(final_mask.sum())
        return {
            "original_count": original_count,
            "final_count": final_count,
            "total_dropped": original_count - final_count,
            "steps": step_counts,
        }


def _predicate_name(predicate: FilterPredicate) -> str:
    return predicate.__name__ if hasattr(predicate, "__name__") else str(predicate)
