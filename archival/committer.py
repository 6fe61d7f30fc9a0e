"""
Committer - persists bundles and retires their source rows.

Per bundle, in one relational transaction:
1. Insert the archive row
2. Stage the encrypted payload at ``{target}.pending``
3. Insert the audit trail entry
4. Compare-and-set the source row's ``archived`` flag

After the transaction commits, the staged file is renamed to its final
location and the original documents are deleted (best effort).

Bundles are committed one at a time, each in its own transaction, so a
failing bundle never rolls back another. A staged file left by a failed
transaction, or by a failed rename after commit, is not handled here;
``archival.restore.reclaim_orphans`` deletes the former and finalizes
the latter.
"""

import asyncio
import os
from typing import List, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from archival.audit import AuditTrail
from archival.errors import ArchivalError, CleanupError, CommitError
from archival.kinds import ArchiveKindPlugin, get_kind
from archival.logging_config import get_logger
from archival.schemas import ArchiveBundle, BundleState, CommitOutcome

logger = get_logger(__name__)

PENDING_SUFFIX = ".pending"


def staged_path(target_location: str) -> str:
    return target_location + PENDING_SUFFIX


def write_staged(target_location: str, payload: bytes) -> str:
    """Create-or-overwrite the staged bundle file; returns its path."""
    path = staged_path(target_location)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(payload)
        fh.flush()
        os.fsync(fh.fileno())
    return path


def finalize_staged(target_location: str) -> None:
    """Atomically move the staged file to its final name."""
    os.replace(staged_path(target_location), target_location)


class Committer:
    """
    Commits chunks of bundles with per-bundle transactions.

    Usage:
        committer = Committer(session_maker)
        outcomes = await committer.commit(chunk)
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def commit(self, chunk: Sequence[ArchiveBundle]) -> List[CommitOutcome]:
        """Commit each bundle independently, in order. Never raises for one item."""
        return [await self.commit_one(bundle) for bundle in chunk]

    async def commit_one(self, bundle: ArchiveBundle) -> CommitOutcome:
        outcome = CommitOutcome(
            kind=bundle.kind,
            entity_id=bundle.original_id,
            archive_location=bundle.target_location,
        )
        logger.info("Writing archive bundle for %s %s", bundle.kind, bundle.original_id)

        try:
            kind = get_kind(bundle.kind)
            await self._commit_records(kind, bundle, outcome)
        except KeyError as e:
            return self._abort(outcome, CommitError(str(e), kind=bundle.kind, entity_id=bundle.original_id))
        except ArchivalError as e:
            return self._abort(outcome, e)
        except (SQLAlchemyError, OSError) as e:
            return self._abort(
                outcome,
                CommitError(f"{type(e).__name__}: {e}", kind=bundle.kind, entity_id=bundle.original_id),
            )
        outcome.state = BundleState.RECORD_COMMITTED

        try:
            await asyncio.to_thread(finalize_staged, bundle.target_location)
        except OSError as e:
            # Records are durable; only the bundle name is wrong.
            outcome.state = BundleState.PARTIAL
            outcome.error = f"Bundle left at {staged_path(bundle.target_location)}: {e}"
            logger.error(
                "Failed to finalize bundle for %s %s: %s", bundle.kind, bundle.original_id, e,
            )
            return outcome
        outcome.state = BundleState.FLAGGED

        await asyncio.to_thread(self._purge, bundle, outcome)
        outcome.state = BundleState.PARTIAL if outcome.cleanup_errors else BundleState.PURGED

        logger.info(
            "Archived %s %s (%d bytes compressed, %d bytes saved)",
            bundle.kind,
            bundle.original_id,
            bundle.compressed_size,
            bundle.uncompressed_size - bundle.compressed_size,
        )
        return outcome

    async def _commit_records(
        self,
        kind: ArchiveKindPlugin,
        bundle: ArchiveBundle,
        outcome: CommitOutcome,
    ) -> None:
        """Steps 1-4; leaving the ``begin()`` block with an error rolls back 1/3/4."""
        async with self.session_maker() as session:
            async with session.begin():
                session.add(
                    kind.build_archive_row(
                        bundle.snapshot,
                        archived_date=bundle.archived_date,
                        archived_by=bundle.archived_by,
                        archive_location=bundle.target_location,
                    )
                )
                await session.flush()

                await asyncio.to_thread(write_staged, bundle.target_location, bundle.encrypted_payload)
                outcome.state = BundleState.BUNDLE_WRITTEN

                AuditTrail(session).record(bundle, entity_type=kind.audit_entity_type)
                await session.flush()

                await self._flag_source(session, kind, bundle.original_id)

    async def _flag_source(self, session: AsyncSession, kind: ArchiveKindPlugin, entity_id: int) -> None:
        """Set ``archived`` only if no other run got there first."""
        model = kind.source_model
        stmt = (
            update(model)
            .where(model.id == entity_id, kind.not_archived())
            .values(archived=True)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise CommitError(
                "Source row missing or already archived",
                kind=kind.name,
                entity_id=entity_id,
            )

    def _abort(self, outcome: CommitOutcome, error: ArchivalError) -> CommitOutcome:
        logger.error(
            "Failed to archive %s %s: %s",
            outcome.kind,
            outcome.entity_id,
            error.message,
            exc_info=error.__cause__ or error,
        )
        outcome.state = BundleState.ABORTED
        outcome.error = error.message
        return outcome

    def _purge(self, bundle: ArchiveBundle, outcome: CommitOutcome) -> None:
        """Delete each original independently; failures are recorded, not raised."""
        for path in bundle.original_file_paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                logger.warning("Document not found for deletion: %s", path)
                continue
            except OSError as e:
                error = CleanupError(
                    f"Failed to delete document {path}: {e}",
                    path=path,
                    kind=bundle.kind,
                    entity_id=bundle.original_id,
                )
                logger.error(error.message)
                outcome.cleanup_errors.append(error.message)
                continue
            outcome.files_deleted += 1
            logger.debug("Deleted original document: %s", path)

        logger.info(
            "Deleted %d/%d original documents for %s %s (%d failed)",
            outcome.files_deleted,
            len(bundle.original_file_paths),
            bundle.kind,
            bundle.original_id,
            len(outcome.cleanup_errors),
        )
