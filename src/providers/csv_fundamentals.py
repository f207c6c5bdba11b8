import logging
import os
from typing import List, Optional

import pandas as pd

from src.index.models import Candidate
from .base import FundamentalsProvider

logger = logging.getLogger(__name__)

UPSIDE_COLUMNS = {
    "upside_graham": "graham",
    "upside_fcd": "fcd",
    "upside_gordon": "gordon",
    "upside_barsi": "barsi",
    "upside_technical": "technical",
}


def _clean(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


class CsvFundamentalsProvider(FundamentalsProvider):
    """
    Read the screening universe from a CSV export.

    Columns are named after Candidate fields; per-model upsides come in
    as upside_graham, upside_fcd, upside_gordon, upside_barsi and
    upside_technical.
    """

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._universe: Optional[List[Candidate]] = None

    def get_universe(self) -> List[Candidate]:
        if self._universe is None:
            self._universe = self._load()
        return self._universe

    def _load(self) -> List[Candidate]:
        if not os.path.exists(self.csv_path):
            raise ValueError(f"Fundamentals file not found: {self.csv_path}")

        df = pd.read_csv(self.csv_path)
        # Clean column names (strip spaces)
        df.columns = df.columns.str.strip()

        fields = set(Candidate.model_fields) - {"upsides", "magic_score"}
        text_fields = {"ticker", "name", "sector", "asset_type"}
        candidates = []
        for _, row in df.iterrows():
            data = {}
            for column in df.columns:
                if column in text_fields:
                    value = row[column]
                    if not pd.isna(value):
                        data[column] = str(value).strip()
                elif column in fields:
                    data[column] = _clean(row[column])
            data["upsides"] = {
                model: _clean(row[column])
                for column, model in UPSIDE_COLUMNS.items()
                if column in df.columns
            }
            if "ticker" not in data:
                logger.warning(f"Skipping row without ticker: {dict(row)}")
                continue
            data["ticker"] = data["ticker"].upper()
            candidates.append(Candidate(**data))

        logger.info(f"Loaded {len(candidates)} candidates from {self.csv_path}")
        return candidates
