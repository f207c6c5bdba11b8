"""Resumability marker for the daily batch jobs."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    JSON,
    UniqueConstraint,
    func,
)
from .base import Base


class IndexCronCheckpoint(Base):
    """
    Progress of one job type, either for the whole batch
    (index_id == "__GLOBAL__") or for a single index.
    """

    __tablename__ = "index_cron_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(String(30), nullable=False)  # 'mark-to-market' | 'screening'
    index_id = Column(String(36), nullable=False)
    last_run_date = Column(Date)
    last_processed_index_id = Column(String(36))
    processed_count = Column(Integer, default=0)
    total_count = Column(Integer, default=0)
    errors = Column(JSON)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("job_type", "index_id", name="uq_checkpoint_job_index"),
    )
