"""
Candidate Selector - streams archive-eligible source rows.

Rows are fetched in bounded keyset batches (``id > last ORDER BY id``),
each batch in its own short-lived session, so a run never holds a
connection across packaging and committing, and iteration can resume
from any id.
"""

from datetime import date, timedelta
from typing import AsyncIterator, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from archival.errors import SelectionError
from archival.kinds import ArchiveKindPlugin
from archival.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 20


class CandidateSelector:
    """
    Lazy, ordered, restartable sequence of archive candidates.

    Usage:
        selector = CandidateSelector(session_maker, batch_size=20)
        async for enrollment in selector.iter_candidates(EnrollmentKind(), timedelta(days=365)):
            ...
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.session_maker = session_maker
        self.batch_size = batch_size

    @staticmethod
    def cutoff(retention: timedelta, today: Optional[date] = None) -> date:
        """Threshold dates must be strictly before this day."""
        return (today or date.today()) - retention

    async def iter_candidates(
        self,
        kind: ArchiveKindPlugin,
        retention: timedelta,
        *,
        today: Optional[date] = None,
        after_id: Optional[int] = None,
    ) -> AsyncIterator:
        """
        Yield eligible rows of ``kind`` in ascending id order.

        Args:
            kind: Record kind to select
            retention: Minimum age of the kind's threshold date
            today: Reference day (defaults to the current date)
            after_id: Resume after this id

        Raises:
            SelectionError: a batch query failed; nothing is skipped
        """
        model = kind.source_model
        criteria = kind.selection_criteria(self.cutoff(retention, today))
        last_id = after_id

        while True:
            query = select(model).where(criteria)
            if last_id is not None:
                query = query.where(model.id > last_id)
            query = query.order_by(model.id).limit(self.batch_size)

            try:
                async with self.session_maker() as session:
                    result = await session.execute(query)
                    batch = list(result.scalars().all())
            except SQLAlchemyError as e:
                logger.error(
                    "Candidate query failed",
                    extra={"kind": kind.name, "after_id": last_id},
                )
                raise SelectionError(f"Candidate query failed: {e}", kind=kind.name) from e

            logger.debug(
                "Fetched candidate batch",
                extra={"kind": kind.name, "after_id": last_id, "rows": len(batch)},
            )
            for row in batch:
                yield row

            if len(batch) < self.batch_size:
                return
            last_id = batch[-1].id

    async def count_candidates(
        self,
        kind: ArchiveKindPlugin,
        retention: timedelta,
        *,
        today: Optional[date] = None,
    ) -> int:
        """Number of rows currently eligible for ``kind``."""
        model = kind.source_model
        query = select(func.count(model.id)).where(
            kind.selection_criteria(self.cutoff(retention, today))
        )
        try:
            async with self.session_maker() as session:
                result = await session.execute(query)
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise SelectionError(f"Candidate count failed: {e}", kind=kind.name) from e
