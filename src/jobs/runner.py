"""
Daily batch jobs.

mark-to-market computes today's point for every index; screening runs
later the same day and rebalances. Each index is processed on its own:
a failure is recorded and the batch moves on.
"""

import logging
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from tqdm import tqdm

from src.db.models.index import IndexDefinition
from src.db.repositories.checkpoint_repo import CheckpointRepository
from src.db.repositories.index_repo import IndexRepository
from src.index.service import IndexService
from src.rebalance.service import RebalanceService
from .config import JobConfig, MARK_TO_MARKET, SCREENING
from .report import JobReport

logger = logging.getLogger(__name__)


class JobRunner:
    def __init__(
        self,
        session: Session,
        index_service: IndexService,
        rebalance_service: RebalanceService,
        config: Optional[JobConfig] = None,
    ):
        self.session = session
        self.index_service = index_service
        self.rebalance_service = rebalance_service
        self.config = config or JobConfig()
        self.index_repo = IndexRepository(session)
        self.checkpoints = CheckpointRepository(session)

    def _pending(self, job_type: str, run_date: date, report: JobReport) -> List[IndexDefinition]:
        """Indices still to process today, resuming after the last checkpointed one."""
        indices = self.index_repo.get_all_indices()
        checkpoint = self.checkpoints.get(job_type, self.config.global_checkpoint_id)
        if (
            checkpoint is not None
            and checkpoint.last_run_date == run_date
            and checkpoint.completed_at is None
            and checkpoint.last_processed_index_id
        ):
            ids = [i.id for i in indices]
            if checkpoint.last_processed_index_id in ids:
                position = ids.index(checkpoint.last_processed_index_id)
                report.resumed_after = checkpoint.last_processed_index_id
                logger.info(f"Resuming {job_type} after index {checkpoint.last_processed_index_id}")
                return indices[position + 1:]
        return indices

    def _run(
        self,
        job_type: str,
        run_date: date,
        process: Callable[[IndexDefinition], str],
    ) -> JobReport:
        report = JobReport(job_type=job_type, run_date=run_date)
        global_id = self.config.global_checkpoint_id

        if self.checkpoints.is_complete(job_type, global_id, run_date):
            logger.info(f"{job_type} already completed for {run_date}")
            return report

        total = len(self.index_repo.get_all_indices())
        pending = self._pending(job_type, run_date, report)
        checkpoint = self.checkpoints.upsert(job_type, global_id, run_date, total_count=total)
        processed = checkpoint.processed_count or 0
        errors = list(checkpoint.errors or [])

        iterator = tqdm(pending, desc=job_type, disable=not self.config.show_progress)
        for index in iterator:
            if self.checkpoints.is_complete(job_type, index.id, run_date):
                report.add_skip(index.id, "already processed")
                continue
            report.add_attempt(index.id)
            try:
                detail = process(index)
                report.add_success(index.id, detail)
                self.checkpoints.upsert(job_type, index.id, run_date, completed=True)
            except ValueError as e:
                self.session.rollback()
                logger.warning(f"Skipping index {index.ticker}: {e}")
                report.add_skip(index.id, str(e))
            except Exception as e:
                self.session.rollback()
                logger.error(f"{job_type} failed for index {index.ticker} on {run_date}: {e}")
                report.add_failure(index.id, str(e))
                errors.append(f"{index.ticker}: {e}")

            processed += 1
            self.checkpoints.upsert(
                job_type,
                global_id,
                run_date,
                last_processed_index_id=index.id,
                processed_count=processed,
                errors=errors,
            )

        self.checkpoints.upsert(job_type, global_id, run_date, errors=errors, completed=True)
        logger.info(
            f"{job_type} finished: {report.success_count} ok, {len(report.skipped)} skipped, "
            f"{report.failure_count} failed"
        )
        return report

    def run_mark_to_market(self, run_date: Optional[date] = None) -> JobReport:
        run_date = run_date or self.index_service.calendar.get_today_in_brazil()

        def process(index: IndexDefinition) -> str:
            if self.config.fill_gaps:
                filled = self.index_service.fill_missing_history(index.id, run_date)
                if self.index_service.history_repo.get_point(index.id, run_date) is not None:
                    return f"filled {filled} day(s)"
            if self.index_service.mark_to_market(index.id, run_date):
                return "point stored"
            return "market closed"

        return self._run(MARK_TO_MARKET, run_date, process)

    def run_screening(self, run_date: Optional[date] = None) -> JobReport:
        run_date = run_date or self.index_service.calendar.get_today_in_brazil()

        def process(index: IndexDefinition) -> str:
            outcome = self.rebalance_service.run(index.id, run_date)
            if outcome.rebalanced:
                return f"rebalanced to version {outcome.version}"
            return "composition unchanged"

        return self._run(SCREENING, run_date, process)

    def run_all(self, run_date: Optional[date] = None) -> List[JobReport]:
        """Mark-to-market first, so it always prices yesterday's membership."""
        return [self.run_mark_to_market(run_date), self.run_screening(run_date)]
