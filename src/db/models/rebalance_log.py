"""Append-only rebalance audit log."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    Text,
    ForeignKey,
    Index as SQLIndex,
    func,
)
from .base import Base


class IndexRebalanceLog(Base):
    __tablename__ = "index_rebalance_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(String(36), ForeignKey("index_definitions.id"), nullable=False)
    date = Column(Date, nullable=False)
    action = Column(String(10), nullable=False)  # 'ENTRY' | 'EXIT' | 'REBALANCE'
    ticker = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        SQLIndex("idx_rebalance_log_index_date", "index_id", "date"),
    )
