"""Append-only access to the rebalance log."""

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from src.db.models.rebalance_log import IndexRebalanceLog
from src.index.models import RebalanceChange


class RebalanceLogRepository:
    """Rows are only ever inserted; there is no update or delete."""

    def __init__(self, session: Session):
        self.session = session

    def append(
        self,
        index_id: str,
        on: date,
        changes: List[RebalanceChange],
        commit: bool = True,
    ) -> int:
        for change in changes:
            self.session.add(IndexRebalanceLog(
                index_id=index_id,
                date=on,
                action=change.action,
                ticker=change.ticker,
                reason=change.reason,
            ))
        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return len(changes)

    def get_logs(
        self, index_id: str, on: Optional[date] = None
    ) -> List[IndexRebalanceLog]:
        query = self.session.query(IndexRebalanceLog).filter(
            IndexRebalanceLog.index_id == index_id
        )
        if on:
            query = query.filter(IndexRebalanceLog.date == on)
        return query.order_by(IndexRebalanceLog.date, IndexRebalanceLog.id).all()
