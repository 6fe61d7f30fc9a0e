"""
Reading committed bundles back, and sweeping staged bundles left behind
by interrupted runs.
"""

import asyncio
import io
import os
import time
import zipfile
from datetime import timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from archival.audit import AuditTrail
from archival.committer import PENDING_SUFFIX
from archival.crypto import EncryptionProvider
from archival.errors import PackagingError
from archival.logging_config import get_logger
from archival.schemas import ReclaimReport

logger = get_logger(__name__)


def open_payload(payload: bytes, cipher: EncryptionProvider) -> Dict[str, bytes]:
    """Decrypt and unzip an in-memory bundle payload into {file name: bytes}."""
    zip_data = cipher.decrypt(payload)
    try:
        with zipfile.ZipFile(io.BytesIO(zip_data)) as zf:
            return {name: zf.read(name) for name in zf.namelist()}
    except zipfile.BadZipFile as e:
        raise PackagingError(f"Bundle is not a valid ZIP container: {e}") from e


def read_bundle(path: str, cipher: EncryptionProvider) -> Dict[str, bytes]:
    """Read a bundle file from the archive store."""
    with open(path, "rb") as fh:
        payload = fh.read()
    return open_payload(payload, cipher)


def find_pending(archive_root: str) -> List[str]:
    """All staged bundle files under the archive root."""
    found = []
    for dirpath, _dirnames, filenames in os.walk(archive_root):
        for filename in filenames:
            if filename.endswith(PENDING_SUFFIX):
                found.append(os.path.join(dirpath, filename))
    return sorted(found)


def _stale_pending(archive_root: str, cutoff: float) -> List[str]:
    stale = []
    for path in find_pending(archive_root):
        try:
            if os.path.getmtime(path) <= cutoff:
                stale.append(path)
        except FileNotFoundError:
            continue
    return stale


def _sweep(stale: List[str], committed: Set[str]) -> ReclaimReport:
    report = ReclaimReport()
    for path in stale:
        target = path[: -len(PENDING_SUFFIX)]
        try:
            if target in committed:
                os.replace(path, target)
            else:
                os.remove(path)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.error("Failed to reclaim staged bundle %s: %s", path, e)
            continue

        if target in committed:
            report.finalized.append(target)
            # The purge step never ran for this bundle
            logger.warning(
                "Finalized committed bundle %s, its original documents were kept", target
            )
        else:
            report.removed.append(path)
            logger.info("Reclaimed orphaned bundle %s", path)
    return report


async def reclaim_orphans(
    archive_root: str,
    older_than: timedelta,
    session_maker: async_sessionmaker[AsyncSession],
    now: Optional[float] = None,
) -> ReclaimReport:
    """
    Sweep staged bundles left behind by interrupted runs.

    A staged file whose target location appears in the audit trail belongs
    to a committed archival whose final rename failed; it is renamed into
    place. Any other staged file belongs to a rolled-back transaction and
    is deleted. Only files older than ``older_than`` are touched, so
    bundles being committed by a live run are left alone.
    """
    cutoff = (now if now is not None else time.time()) - older_than.total_seconds()
    stale = await asyncio.to_thread(_stale_pending, archive_root, cutoff)
    if not stale:
        return ReclaimReport()

    async with session_maker() as session:
        committed = await AuditTrail(session).committed_locations(
            [path[: -len(PENDING_SUFFIX)] for path in stale]
        )
    return await asyncio.to_thread(_sweep, stale, committed)
