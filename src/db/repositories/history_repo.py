"""Repository for IndexHistoryPoint operations."""

from datetime import date
from typing import List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from src.db.models.history import IndexHistoryPoint
from src.index.models import DailyIndexPoint, snapshot_to_json, snapshot_from_json
from .base import BaseRepository


def to_domain(row: IndexHistoryPoint) -> DailyIndexPoint:
    return DailyIndexPoint(
        date=row.date,
        points=row.points,
        daily_change=row.daily_change or 0.0,
        composition_snapshot=snapshot_from_json(row.composition_snapshot),
        dividends_by_ticker=row.dividends_by_ticker or {},
        dividends_received=row.dividends_received or 0.0,
        current_yield=row.current_yield,
    )


class IndexHistoryRepository(BaseRepository[IndexHistoryPoint]):
    """Points store: one row per (index_id, date)."""

    def __init__(self, session: Session):
        super().__init__(session, IndexHistoryPoint)

    def get_point(self, index_id: str, on: date) -> Optional[IndexHistoryPoint]:
        return (
            self.session.query(IndexHistoryPoint)
            .filter_by(index_id=index_id, date=on)
            .first()
        )

    def get_previous_point(self, index_id: str, before: date) -> Optional[IndexHistoryPoint]:
        """Latest point strictly before ``before``."""
        return (
            self.session.query(IndexHistoryPoint)
            .filter(IndexHistoryPoint.index_id == index_id, IndexHistoryPoint.date < before)
            .order_by(IndexHistoryPoint.date.desc())
            .first()
        )

    def get_last_point(self, index_id: str) -> Optional[IndexHistoryPoint]:
        return (
            self.session.query(IndexHistoryPoint)
            .filter(IndexHistoryPoint.index_id == index_id)
            .order_by(IndexHistoryPoint.date.desc())
            .first()
        )

    def get_points(
        self,
        index_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[IndexHistoryPoint]:
        query = self.session.query(IndexHistoryPoint).filter(
            IndexHistoryPoint.index_id == index_id
        )
        if start:
            query = query.filter(IndexHistoryPoint.date >= start)
        if end:
            query = query.filter(IndexHistoryPoint.date <= end)
        return query.order_by(IndexHistoryPoint.date).all()

    def get_last_snapshot_point(self, index_id: str) -> Optional[IndexHistoryPoint]:
        """Most recent point carrying a non-empty composition snapshot."""
        for row in (
            self.session.query(IndexHistoryPoint)
            .filter(IndexHistoryPoint.index_id == index_id)
            .order_by(IndexHistoryPoint.date.desc())
        ):
            if row.composition_snapshot:
                return row
        return None

    def upsert_point(
        self,
        index_id: str,
        point: DailyIndexPoint,
        composition_version_id: Optional[int] = None,
        commit: bool = True,
    ) -> IndexHistoryPoint:
        """Create or update the point for (index_id, point.date)."""
        row = self.get_point(index_id, point.date)
        if row is None:
            row = IndexHistoryPoint(index_id=index_id, date=point.date)
            self.session.add(row)

        row.points = point.points
        row.daily_change = point.daily_change
        row.current_yield = point.current_yield
        row.dividends_received = point.dividends_received or None
        row.composition_snapshot = snapshot_to_json(point.composition_snapshot)
        row.dividends_by_ticker = point.dividends_by_ticker or None
        if composition_version_id is not None:
            row.composition_version_id = composition_version_id

        if commit:
            self.session.commit()
            self.session.refresh(row)
        else:
            self.session.flush()
        return row

    def to_frame(self, index_id: str) -> pd.DataFrame:
        """Point history as a date-indexed DataFrame."""
        rows = self.get_points(index_id)
        df = pd.DataFrame(
            [
                {
                    "date": r.date,
                    "points": r.points,
                    "daily_change": r.daily_change,
                    "dividends_received": r.dividends_received or 0.0,
                    "current_yield": r.current_yield,
                    "n_assets": len(r.composition_snapshot or {}),
                }
                for r in rows
            ],
            columns=[
                "date", "points", "daily_change",
                "dividends_received", "current_yield", "n_assets",
            ],
        )
        return df.set_index("date")
