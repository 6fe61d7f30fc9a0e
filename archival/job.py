"""
Archive job - one pipeline run.

Selector -> Packager -> Committer, one record at a time, with packaged
bundles handed to the committer in bounded chunks. A stop request is
honoured between chunks only; an in-flight chunk always completes.
"""

import asyncio
from contextlib import aclosing
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from archival.committer import Committer
from archival.errors import PackagingError
from archival.kinds import KINDS, ArchiveKindPlugin, get_kind
from archival.logging_config import get_logger, run_id_var
from archival.packager import Packager
from archival.schemas import ArchiveBundle, BundleState, ItemError, RunSummary
from archival.selector import CandidateSelector

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 20


class ArchiveJob:
    """
    Runs the archival pipeline over every configured kind.

    Usage:
        job = ArchiveJob(selector, packager, committer, settings.retention_by_kind())
        summary = await job.run()
    """

    def __init__(
        self,
        selector: CandidateSelector,
        packager: Packager,
        committer: Committer,
        retention_by_kind: Dict[str, timedelta],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_failures: Optional[int] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.selector = selector
        self.packager = packager
        self.committer = committer
        self.retention_by_kind = retention_by_kind
        self.chunk_size = chunk_size
        self.max_failures = max_failures

    async def run(
        self,
        kinds: Optional[Iterable[str]] = None,
        stop_event: Optional[asyncio.Event] = None,
        today: Optional[date] = None,
    ) -> RunSummary:
        """
        Archive every eligible record of the requested kinds.

        Per-item failures are counted in the summary; only a
        SelectionError escapes.
        """
        plugins = [get_kind(k) for k in kinds] if kinds else list(KINDS)
        summary = RunSummary(started_at=datetime.now(timezone.utc))
        token = run_id_var.set(str(summary.run_id))
        logger.info("Archive run started", extra={"kinds": [p.name for p in plugins]})

        try:
            for plugin in plugins:
                if self._should_stop(stop_event, summary):
                    summary.stopped_early = True
                    break
                completed = await self._run_kind(plugin, summary, stop_event, today)
                if not completed:
                    summary.stopped_early = True
                    break
        finally:
            summary.finished_at = datetime.now(timezone.utc)
            self._log_summary(summary)
            run_id_var.reset(token)

        return summary

    async def _run_kind(
        self,
        plugin: ArchiveKindPlugin,
        summary: RunSummary,
        stop_event: Optional[asyncio.Event],
        today: Optional[date],
    ) -> bool:
        """Archive one kind. Returns False if the run was told to stop."""
        retention = self.retention_by_kind[plugin.name]
        expected = await self.selector.count_candidates(plugin, retention, today=today)
        logger.info(
            "Archiving %d eligible %s records", expected, plugin.name,
            extra={"kind": plugin.name, "expected": expected},
        )
        chunk: List[ArchiveBundle] = []
        candidates = self.selector.iter_candidates(plugin, retention, today=today)

        async with aclosing(candidates):
            async for candidate in candidates:
                summary.selected += 1
                bundle = await self._package(candidate, plugin, summary)
                if bundle is None:
                    if self._failure_limit_reached(summary):
                        break
                    continue
                chunk.append(bundle)

                if len(chunk) >= self.chunk_size:
                    await self._commit_chunk(chunk, summary)
                    chunk = []
                    if self._should_stop(stop_event, summary):
                        return False

        # Bundles already packaged are committed even when stopping
        if chunk:
            await self._commit_chunk(chunk, summary)
        return not self._failure_limit_reached(summary)

    async def _package(
        self,
        candidate,
        plugin: ArchiveKindPlugin,
        summary: RunSummary,
    ) -> Optional[ArchiveBundle]:
        # Packaging is file and CPU bound; keep it off the event loop.
        try:
            bundle = await asyncio.to_thread(self.packager.package, candidate)
        except PackagingError as e:
            logger.error("Skipping %s %s: %s", plugin.name, candidate.id, e.message)
            summary.failed += 1
            summary.errors.append(
                ItemError(kind=plugin.name, entity_id=candidate.id, stage=e.stage, reason=e.message)
            )
            return None

        if bundle is None:
            summary.skipped += 1
            return None
        summary.packaged += 1
        return bundle

    async def _commit_chunk(self, chunk: List[ArchiveBundle], summary: RunSummary) -> None:
        outcomes = await self.committer.commit(chunk)
        for bundle, outcome in zip(chunk, outcomes):
            if not outcome.archived:
                summary.failed += 1
                summary.errors.append(
                    ItemError(
                        kind=outcome.kind,
                        entity_id=outcome.entity_id,
                        stage="commit",
                        reason=outcome.error or outcome.state.value,
                    )
                )
                continue

            summary.committed += 1
            summary.archived_by_kind[outcome.kind] = summary.archived_by_kind.get(outcome.kind, 0) + 1
            summary.bytes_saved += bundle.uncompressed_size - bundle.compressed_size
            if outcome.state == BundleState.PURGED:
                summary.purged += 1
            summary.cleanup_failures += len(outcome.cleanup_errors)
            for reason in outcome.cleanup_errors:
                summary.errors.append(
                    ItemError(kind=outcome.kind, entity_id=outcome.entity_id, stage="cleanup", reason=reason)
                )
            if outcome.error:
                summary.errors.append(
                    ItemError(kind=outcome.kind, entity_id=outcome.entity_id, stage="finalize", reason=outcome.error)
                )

    def _should_stop(self, stop_event: Optional[asyncio.Event], summary: RunSummary) -> bool:
        if stop_event is not None and stop_event.is_set():
            logger.info("Stop requested, ending run between chunks")
            return True
        return self._failure_limit_reached(summary)

    def _failure_limit_reached(self, summary: RunSummary) -> bool:
        if self.max_failures is not None and summary.failed >= self.max_failures:
            logger.warning("Failure limit reached (%d), ending run", self.max_failures)
            return True
        return False

    def _log_summary(self, summary: RunSummary) -> None:
        duration = (summary.finished_at - summary.started_at).total_seconds()
        logger.info(
            "Archive run finished in %.1fs: %d selected, %d packaged, %d committed, "
            "%d purged, %d failed, %d skipped, %d MB saved",
            duration,
            summary.selected,
            summary.packaged,
            summary.committed,
            summary.purged,
            summary.failed,
            summary.skipped,
            summary.bytes_saved // (1024 * 1024),
            extra={"archived_by_kind": summary.archived_by_kind, "stopped_early": summary.stopped_early},
        )
