"""Repository for IndexDefinition operations."""

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.db.models.index import IndexDefinition
from .base import BaseRepository

logger = logging.getLogger(__name__)


class IndexRepository(BaseRepository[IndexDefinition]):
    """Repository for IndexDefinition CRUD operations."""

    def __init__(
        self,
        session: Session,
        retry_delay: float = 1.0,
        max_retries: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(session, IndexDefinition)
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self._sleep = sleep

    def get_index(self, index_id: str) -> Optional[IndexDefinition]:
        """Get index definition by ID."""
        return self.get(index_id)

    def get_by_ticker(self, ticker: str) -> Optional[IndexDefinition]:
        return (
            self.session.query(IndexDefinition)
            .filter(IndexDefinition.ticker == ticker)
            .first()
        )

    def get_all_indices(self) -> List[IndexDefinition]:
        """Get all index definitions, oldest first (stable batch order)."""
        return (
            self.session.query(IndexDefinition)
            .order_by(IndexDefinition.created_at, IndexDefinition.ticker)
            .all()
        )

    def create_or_get(self, index: IndexDefinition) -> IndexDefinition:
        """
        Optimistic create-then-reconcile keyed on the unique ticker.

        Attempt the insert; on a uniqueness violation roll back and
        re-read the existing row, which is returned as if created.
        If the row is not visible yet, wait ``retry_delay`` and re-read
        at most ``max_retries`` times before giving up.
        """
        existing = self.get_by_ticker(index.ticker)
        if existing:
            logger.info(f"Index {index.ticker} already exists ({existing.id})")
            return existing

        try:
            self.session.add(index)
            self.session.commit()
            self.session.refresh(index)
            logger.info(f"Created index {index.ticker} ({index.id})")
            return index
        except IntegrityError:
            self.session.rollback()
            logger.warning(f"Index {index.ticker} created concurrently, re-fetching")

        for attempt in range(self.max_retries + 1):
            existing = self.get_by_ticker(index.ticker)
            if existing:
                return existing
            if attempt < self.max_retries:
                self._sleep(self.retry_delay)

        raise ValueError(
            f"Index '{index.ticker}' conflicted on create but could not be re-read"
        )
