"""Index definition and composition SQLAlchemy models."""

import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    Float,
    Numeric,
    Text,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index as SQLIndex,
    func,
)
from .base import Base


class IndexDefinition(Base):
    """Theoretical index - identity plus its (validated) methodology JSON."""

    __tablename__ = "index_definitions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ticker = Column(String(20), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    methodology = Column(JSON, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class IndexComposition(Base):
    """
    Live membership of an index: one row per held ticker.

    Rows mirror the newest IndexCompositionVersion and are replaced
    as a whole on every rebalance.
    """

    __tablename__ = "index_compositions"

    index_id = Column(
        String(36), ForeignKey("index_definitions.id"), primary_key=True, nullable=False
    )
    asset_ticker = Column(String(20), primary_key=True, nullable=False)
    target_weight = Column(Float, nullable=False)
    entry_price = Column(Numeric(18, 6), nullable=False)
    entry_date = Column(Date, nullable=False)
    version_id = Column(Integer, ForeignKey("index_composition_versions.id"))

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class IndexCompositionVersion(Base):
    """
    Immutable composition snapshot with an effective date.

    Rebalances append a new version; nothing is mutated in place.
    """

    __tablename__ = "index_composition_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(String(36), ForeignKey("index_definitions.id"), nullable=False)
    version = Column(Integer, nullable=False)
    effective_date = Column(Date, nullable=False)
    positions = Column(JSON, nullable=False)  # {ticker: {weight, price, entry_price, entry_date}}
    reason = Column(Text)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("index_id", "version", name="uq_composition_version"),
        SQLIndex("idx_composition_version_date", "index_id", "effective_date"),
    )
