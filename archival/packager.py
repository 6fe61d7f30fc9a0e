"""
Packager - turns one source row into a self-contained archive bundle.

Processing steps:
1. Copy the row's archivable fields into an immutable snapshot
2. Resolve the row's documents under the uploads root
3. Compress the documents into a single ZIP (by base file name)
4. Encrypt the ZIP with the deployment-wide key
5. Derive the bundle location from kind, id and timestamp

Packaging never touches the database; the only reads of the source row
happen while taking the snapshot and resolving documents.
"""

import io
import os
import zipfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from archival.crypto import EncryptionProvider
from archival.errors import PackagingError
from archival.kinds import ArchiveKindPlugin, kind_for
from archival.logging_config import get_logger
from archival.schemas import ArchiveBundle

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BUNDLE_SUFFIX = ".zip.enc"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bundle_location(archive_root: str, kind: str, entity_id: int, when: datetime) -> str:
    """``{archive_root}/{yyyy}/{MM}/{kind}_{id}_{yyyyMMdd_HHmmss}.zip.enc``"""
    filename = f"{kind}_{entity_id}_{when.strftime(TIMESTAMP_FORMAT)}{BUNDLE_SUFFIX}"
    return os.path.join(archive_root, when.strftime("%Y"), when.strftime("%m"), filename)


class Packager:
    """
    Builds ArchiveBundles.

    Usage:
        packager = Packager(uploads_root, archive_root, AesGcmCipher(key))
        bundle = packager.package(enrollment)   # None for unknown types
    """

    def __init__(
        self,
        uploads_root: str,
        archive_root: str,
        cipher: EncryptionProvider,
        archived_by: str = "SYSTEM",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.uploads_root = uploads_root
        self.archive_root = archive_root
        self.cipher = cipher
        self.archived_by = archived_by
        self.clock = clock or _utcnow

    def package(self, candidate: Any) -> Optional[ArchiveBundle]:
        """
        Package one candidate.

        Returns:
            The bundle, or None when the candidate's type is not archivable

        Raises:
            PackagingError: snapshot, file read, compression or encryption failed
        """
        kind = kind_for(candidate)
        if kind is None:
            logger.error(
                "Unknown item type for archiving: %s", type(candidate).__name__
            )
            return None
        return self.package_as(kind, candidate)

    def package_as(self, kind: ArchiveKindPlugin, candidate: Any) -> ArchiveBundle:
        """Package a candidate whose kind is already known."""
        entity_id = candidate.id
        logger.info("Packaging %s %s for archiving", kind.name, entity_id)

        try:
            snapshot = kind.snapshot(candidate)
        except ValidationError as e:
            raise PackagingError(
                f"Record cannot be snapshotted: {e}", kind=kind.name, entity_id=entity_id
            ) from e

        document_paths = kind.document_paths(candidate, self.uploads_root)
        zip_data, included, uncompressed_size = self._compress(kind, entity_id, document_paths)

        if document_paths and not included:
            # Stale stored paths must not keep the record eligible forever
            logger.warning(
                "None of %d expected documents exist for %s %s, archiving snapshot only",
                len(document_paths), kind.name, entity_id,
            )

        try:
            encrypted = self.cipher.encrypt(zip_data)
        except Exception as e:
            raise PackagingError(
                f"Encryption failed: {e}", kind=kind.name, entity_id=entity_id
            ) from e

        now = self.clock()
        return ArchiveBundle(
            kind=kind.name,
            original_id=entity_id,
            snapshot=snapshot,
            encrypted_payload=encrypted,
            target_location=bundle_location(self.archive_root, kind.name, entity_id, now),
            original_file_paths=included,
            archived_by=self.archived_by,
            archived_date=now,
            uncompressed_size=uncompressed_size,
            compressed_size=len(encrypted),
        )

    def _compress(
        self,
        kind: ArchiveKindPlugin,
        entity_id: int,
        document_paths: List[str],
    ) -> Tuple[bytes, List[str], int]:
        """
        ZIP the documents that exist.

        Returns (zip bytes, paths actually included, sum of their sizes).
        Entries are keyed by base name; a later file with the same name
        replaces an earlier one.
        """
        entries: Dict[str, Tuple[str, bytes]] = {}

        for path in document_paths:
            try:
                with open(path, "rb") as fh:
                    content = fh.read()
            except FileNotFoundError:
                logger.warning(
                    "Document not found: %s", path,
                    extra={"kind": kind.name, "entity_id": entity_id},
                )
                continue
            except OSError as e:
                raise PackagingError(
                    f"Cannot read document {path}: {e}", kind=kind.name, entity_id=entity_id
                ) from e

            name = os.path.basename(path)
            if name in entries:
                logger.warning(
                    "Duplicate entry name %s in bundle, keeping %s", name, path,
                    extra={"kind": kind.name, "entity_id": entity_id},
                )
            entries[name] = (path, content)
            logger.debug("Added %s to ZIP (%d bytes)", name, len(content))

        buf = io.BytesIO()
        try:
            with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
                for name, (_path, content) in entries.items():
                    zf.writestr(name, content)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise PackagingError(
                f"Compression failed: {e}", kind=kind.name, entity_id=entity_id
            ) from e

        zip_data = buf.getvalue()
        included = [path for path, _content in entries.values()]
        total_size = sum(len(content) for _path, content in entries.values())
        logger.info(
            "Created ZIP for %s_%s with %d files (%d bytes)",
            kind.name, entity_id, len(entries), len(zip_data),
        )
        return zip_data, included, total_size
