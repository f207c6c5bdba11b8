"""Repository for live compositions and their immutable versions."""

from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.db.models.index import IndexComposition, IndexCompositionVersion
from src.index.models import AssetPosition, CompositionSnapshot, snapshot_to_json, snapshot_from_json


class CompositionRepository:
    """
    Composition store.

    Every change appends an IndexCompositionVersion; the live
    IndexComposition rows are rewritten to mirror the newest version.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_current(self, index_id: str) -> List[IndexComposition]:
        return (
            self.session.query(IndexComposition)
            .filter(IndexComposition.index_id == index_id)
            .order_by(IndexComposition.asset_ticker)
            .all()
        )

    def get_current_positions(self, index_id: str) -> List[AssetPosition]:
        """Live rows as positions; price is the entry price until re-priced."""
        return [
            AssetPosition(
                ticker=row.asset_ticker,
                weight=row.target_weight,
                price=float(row.entry_price),
                entry_price=float(row.entry_price),
                entry_date=row.entry_date,
            )
            for row in self.get_current(index_id)
        ]

    def get_version_held_on(
        self, index_id: str, as_of: date
    ) -> Optional[IndexCompositionVersion]:
        """
        Version held overnight into ``as_of``: the newest one effective
        strictly before it. A rebalance on ``as_of`` only counts from the
        next day on.
        """
        return (
            self.session.query(IndexCompositionVersion)
            .filter(
                IndexCompositionVersion.index_id == index_id,
                IndexCompositionVersion.effective_date < as_of,
            )
            .order_by(IndexCompositionVersion.version.desc())
            .first()
        )

    def get_versions(self, index_id: str) -> List[IndexCompositionVersion]:
        return (
            self.session.query(IndexCompositionVersion)
            .filter(IndexCompositionVersion.index_id == index_id)
            .order_by(IndexCompositionVersion.version)
            .all()
        )

    def version_positions(self, version: IndexCompositionVersion) -> CompositionSnapshot:
        return snapshot_from_json(version.positions)

    def replace_composition(
        self,
        index_id: str,
        positions: CompositionSnapshot,
        effective_date: date,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> IndexCompositionVersion:
        """
        Write a new composition version and make it the live composition.

        Args:
            index_id: The index ID
            positions: Ticker -> position (weights should sum to 1)
            effective_date: Rebalance date; days after it are priced with this version
            reason: Why the composition changed
            commit: Whether to commit the transaction
        """
        current_max = (
            self.session.query(func.max(IndexCompositionVersion.version))
            .filter(IndexCompositionVersion.index_id == index_id)
            .scalar()
        )
        version = IndexCompositionVersion(
            index_id=index_id,
            version=(current_max or 0) + 1,
            effective_date=effective_date,
            positions=snapshot_to_json(positions),
            reason=reason,
        )
        self.session.add(version)
        self.session.flush()

        self.session.query(IndexComposition).filter(
            IndexComposition.index_id == index_id
        ).delete(synchronize_session=False)

        for ticker in sorted(positions):
            position = positions[ticker]
            self.session.add(IndexComposition(
                index_id=index_id,
                asset_ticker=ticker,
                target_weight=position.weight,
                entry_price=position.entry_price,
                entry_date=position.entry_date,
                version_id=version.id,
            ))

        if commit:
            self.session.commit()
        else:
            self.session.flush()

        return version
