"""
Command-line entry point.

    python -m archival                       # archive every kind
    python -m archival --kind enrollment     # one kind only
    python -m archival --init-db             # create tables first
    python -m archival --reclaim-orphans     # sweep stale .pending bundles

Prints the run summary as JSON on stdout. Exit status is 0 on a clean
run, 1 when any item failed, 2 when the run could not proceed.
"""

import argparse
import asyncio
import signal
import sys
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from archival.committer import Committer
from archival.config import Settings, get_settings
from archival.crypto import AesGcmCipher
from archival.database import close_db, create_engine, create_session_maker, init_db
from archival.errors import SelectionError
from archival.job import ArchiveJob
from archival.kinds import KINDS
from archival.logging_config import configure_logging, get_logger
from archival.packager import Packager
from archival.restore import reclaim_orphans
from archival.selector import CandidateSelector

logger = get_logger("archival")

EXIT_OK = 0
EXIT_ITEM_FAILURES = 1
EXIT_FATAL = 2


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="archival", description="Archive aged academic records.")
    parser.add_argument(
        "--kind",
        action="append",
        choices=[k.name for k in KINDS],
        help="Record kind to archive (repeatable; default: all)",
    )
    parser.add_argument("--init-db", action="store_true", help="Create missing tables before running")
    parser.add_argument(
        "--reclaim-orphans",
        action="store_true",
        help="Sweep staged bundles older than PENDING_GRACE_HOURS and exit",
    )
    return parser.parse_args(argv)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C falls back to KeyboardInterrupt
            pass


async def _reclaim(settings: Settings, session_maker) -> int:
    try:
        report = await reclaim_orphans(
            settings.archive_root,
            timedelta(hours=settings.pending_grace_hours),
            session_maker,
        )
    except SQLAlchemyError as e:
        logger.error("Cannot check staged bundles against the audit trail: %s", e)
        return EXIT_FATAL
    print(report.model_dump_json(indent=2))
    return EXIT_OK


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    cipher = None
    if not args.reclaim_orphans:
        try:
            cipher = AesGcmCipher.from_base64(settings.archive_encryption_key)
        except ValueError as e:
            logger.error("Cannot start archive run: %s", e)
            return EXIT_FATAL

    engine = create_engine(settings.database_url, echo=settings.debug)
    try:
        if args.init_db:
            await init_db(engine)
            logger.info("Database initialized")

        session_maker = create_session_maker(engine)
        if args.reclaim_orphans:
            return await _reclaim(settings, session_maker)

        job = ArchiveJob(
            selector=CandidateSelector(session_maker, batch_size=settings.selector_batch_size),
            packager=Packager(
                settings.uploads_root,
                settings.archive_root,
                cipher,
                archived_by=settings.archived_by,
            ),
            committer=Committer(session_maker),
            retention_by_kind=settings.retention_by_kind(),
            chunk_size=settings.chunk_size,
            max_failures=settings.max_failures,
        )

        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)

        try:
            summary = await job.run(kinds=args.kind, stop_event=stop_event)
        except SelectionError as e:
            logger.error("Archive run aborted: %s", e)
            return EXIT_FATAL
    finally:
        await close_db(engine)
        logger.info("Database connections closed")

    print(summary.model_dump_json(indent=2))
    return EXIT_ITEM_FAILURES if summary.failed else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )
    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
