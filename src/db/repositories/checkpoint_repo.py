"""Repository for batch job checkpoints."""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from src.db.models.checkpoint import IndexCronCheckpoint


class CheckpointRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, job_type: str, index_id: str) -> Optional[IndexCronCheckpoint]:
        return (
            self.session.query(IndexCronCheckpoint)
            .filter_by(job_type=job_type, index_id=index_id)
            .first()
        )

    def upsert(
        self,
        job_type: str,
        index_id: str,
        last_run_date: date,
        last_processed_index_id: Optional[str] = None,
        processed_count: Optional[int] = None,
        total_count: Optional[int] = None,
        errors: Optional[List[str]] = None,
        completed: bool = False,
        commit: bool = True,
    ) -> IndexCronCheckpoint:
        """
        Create or update the checkpoint for (job_type, index_id).

        A new run date resets progress; passing ``completed`` stamps
        ``completed_at``.
        """
        checkpoint = self.get(job_type, index_id)
        if checkpoint is None:
            checkpoint = IndexCronCheckpoint(job_type=job_type, index_id=index_id)
            self.session.add(checkpoint)

        if checkpoint.last_run_date != last_run_date:
            checkpoint.started_at = datetime.now()
            checkpoint.completed_at = None
            checkpoint.last_processed_index_id = None
            checkpoint.processed_count = 0
            checkpoint.errors = None

        checkpoint.last_run_date = last_run_date
        if last_processed_index_id is not None:
            checkpoint.last_processed_index_id = last_processed_index_id
        if processed_count is not None:
            checkpoint.processed_count = processed_count
        if total_count is not None:
            checkpoint.total_count = total_count
        if errors is not None:
            checkpoint.errors = list(errors)
        if completed:
            checkpoint.completed_at = datetime.now()

        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return checkpoint

    def is_complete(self, job_type: str, index_id: str, run_date: date) -> bool:
        checkpoint = self.get(job_type, index_id)
        return (
            checkpoint is not None
            and checkpoint.last_run_date == run_date
            and checkpoint.completed_at is not None
        )
