"""Daily index level SQLAlchemy model."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    Float,
    JSON,
    ForeignKey,
    UniqueConstraint,
    func,
)
from .base import Base


class IndexHistoryPoint(Base):
    """
    One computed level per trading day per index.

    The embedded composition snapshot is what the next day's return
    is computed against, so it is stored verbatim.
    """

    __tablename__ = "index_history_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(String(36), ForeignKey("index_definitions.id"), nullable=False)
    date = Column(Date, nullable=False)
    points = Column(Float, nullable=False)
    daily_change = Column(Float, nullable=False, default=0.0)  # percent
    current_yield = Column(Float)
    dividends_received = Column(Float)
    composition_snapshot = Column(JSON)  # empty on the creation date
    dividends_by_ticker = Column(JSON)
    composition_version_id = Column(Integer, ForeignKey("index_composition_versions.id"))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("index_id", "date", name="uq_history_index_date"),
    )
