"""
Archive audit trail service.

One immutable entry per successfully archived record. Entries are only
ever added inside the committer's transaction; this module never updates
or deletes them.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Set

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from archival.models import ArchiveAuditTrail
from archival.schemas import ArchiveBundle

_IN_CLAUSE_LIMIT = 500


class AuditTrail:
    """
    Service for the append-only archive audit trail.

    Usage:
        audit = AuditTrail(session)
        audit.record(bundle, entity_type="ENROLLMENT")
        await session.commit()
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(self, bundle: ArchiveBundle, entity_type: Optional[str] = None) -> ArchiveAuditTrail:
        """
        Add an audit entry for a bundle to the current transaction.

        The caller owns flush/commit so the entry shares the fate of the
        archive record and the flag update.
        """
        entry = ArchiveAuditTrail(
            entity_type=entity_type or bundle.kind.upper(),
            entity_id=bundle.original_id,
            archive_location=bundle.target_location,
            archived_by=bundle.archived_by,
            archived_date=bundle.archived_date,
            uncompressed_size=bundle.uncompressed_size,
            compressed_size=bundle.compressed_size,
        )
        self.session.add(entry)
        return entry

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: int,
    ) -> List[ArchiveAuditTrail]:
        """All audit entries for one record, newest first."""
        query = (
            select(ArchiveAuditTrail)
            .where(
                ArchiveAuditTrail.entity_type == entity_type,
                ArchiveAuditTrail.entity_id == entity_id,
            )
            .order_by(desc(ArchiveAuditTrail.archived_date), desc(ArchiveAuditTrail.id))
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_entries(
        self,
        entity_type: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ArchiveAuditTrail]:
        """Audit entries in archival order, optionally filtered."""
        query = select(ArchiveAuditTrail)
        if entity_type:
            query = query.where(ArchiveAuditTrail.entity_type == entity_type)
        if since:
            query = query.where(ArchiveAuditTrail.archived_date >= since)
        if until:
            query = query.where(ArchiveAuditTrail.archived_date <= until)
        query = query.order_by(ArchiveAuditTrail.id).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> int:
        query = select(func.count(ArchiveAuditTrail.id))
        if entity_type:
            query = query.where(ArchiveAuditTrail.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(ArchiveAuditTrail.entity_id == entity_id)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def committed_locations(self, locations: Sequence[str]) -> Set[str]:
        """The subset of ``locations`` that a committed archival refers to."""
        found: Set[str] = set()
        locations = list(locations)
        for start in range(0, len(locations), _IN_CLAUSE_LIMIT):
            batch = locations[start:start + _IN_CLAUSE_LIMIT]
            result = await self.session.execute(
                select(ArchiveAuditTrail.archive_location).where(
                    ArchiveAuditTrail.archive_location.in_(batch)
                )
            )
            found.update(result.scalars().all())
        return found

    async def total_bytes_saved(self, entity_type: Optional[str] = None) -> int:
        """Σ (uncompressed − compressed) over the trail."""
        query = select(
            func.coalesce(
                func.sum(ArchiveAuditTrail.uncompressed_size - ArchiveAuditTrail.compressed_size),
                0,
            )
        )
        if entity_type:
            query = query.where(ArchiveAuditTrail.entity_type == entity_type)
        result = await self.session.execute(query)
        return int(result.scalar() or 0)
