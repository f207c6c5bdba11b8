"""Index creation: definition, base point and initial composition."""

import logging
import time
from datetime import date
from typing import Callable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.db.models.index import IndexDefinition
from src.db.repositories.composition_repo import CompositionRepository
from src.db.repositories.history_repo import IndexHistoryRepository
from src.db.repositories.index_repo import IndexRepository
from src.providers.base import CalendarProvider
from .methodology import Methodology
from .models import DailyIndexPoint
from .returns import BASE_POINTS

logger = logging.getLogger(__name__)


class IndexSpec(BaseModel):
    """What it takes to create one index."""

    ticker: str
    name: str
    description: Optional[str] = None
    methodology: Methodology = Field(default_factory=Methodology)


class IndexSetupService:
    """
    Create indices one at a time.

    Methodology errors surface here as pydantic ValidationError, never
    during daily runs.
    """

    def __init__(
        self,
        session: Session,
        calendar: CalendarProvider,
        rebalance_service=None,
        retry_delay: float = 1.0,
        max_retries: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.calendar = calendar
        self.rebalance_service = rebalance_service
        self.index_repo = IndexRepository(
            session, retry_delay=retry_delay, max_retries=max_retries, sleep=sleep
        )
        self.history_repo = IndexHistoryRepository(session)
        self.composition_repo = CompositionRepository(session)

    def create_index(self, spec: IndexSpec, creation_date: Optional[date] = None) -> IndexDefinition:
        """
        Create (or adopt an existing) index and bring it to a usable state.

        Args:
            spec: Ticker, name and validated methodology
            creation_date: Base date with 100 points (default: today in Brazil)

        Returns:
            The stored IndexDefinition
        """
        creation_date = creation_date or self.calendar.get_today_in_brazil()
        index = self.index_repo.create_or_get(IndexDefinition(
            ticker=spec.ticker,
            name=spec.name,
            description=spec.description,
            methodology=spec.methodology.to_json(),
        ))

        if self.history_repo.get_last_point(index.id) is None:
            self.history_repo.upsert_point(
                index.id,
                DailyIndexPoint(date=creation_date, points=BASE_POINTS, daily_change=0.0),
            )
            logger.info(f"Base point {BASE_POINTS} for {index.ticker} on {creation_date}")

        if not self.composition_repo.get_current(index.id):
            if self.rebalance_service is None:
                logger.warning(f"No rebalance service, {index.ticker} starts without composition")
            else:
                outcome = self.rebalance_service.run(index.id, creation_date)
                if not outcome.rebalanced:
                    logger.warning(f"Initial screening for {index.ticker} selected nothing")

        return index

    def setup_indices(
        self, specs: List[IndexSpec], creation_date: Optional[date] = None
    ) -> List[IndexDefinition]:
        """Create indices sequentially so tickers never race each other."""
        created = []
        for spec in specs:
            created.append(self.create_index(spec, creation_date))
        return created
