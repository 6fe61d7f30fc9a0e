"""
Base Archive Kind - Abstract interface for every archivable record kind.
"""

import os
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, List, Type

from sqlalchemy import ColumnElement, or_

from archival.models.base import Base
from archival.schemas import Snapshot


def list_files(directory: str) -> List[str]:
    """Absolute paths of the regular files directly inside ``directory``."""
    if not os.path.isdir(directory):
        return []
    with os.scandir(directory) as entries:
        return sorted(
            os.path.abspath(entry.path)
            for entry in entries
            if entry.is_file()
        )


def dedupe(paths: List[str]) -> List[str]:
    """Drop repeated paths, keeping first occurrence order."""
    return list(dict.fromkeys(paths))


class ArchiveKindPlugin(ABC):
    """
    Abstract base class for an archivable record kind.

    Each kind defines:
    - Which source rows are eligible (SQL predicate)
    - Which fields are copied into the archive snapshot
    - Where the record's documents live under the uploads root
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Lower-case kind name used in bundle file names."""
        pass

    @property
    @abstractmethod
    def source_model(self) -> Type[Base]:
        """Live source table."""
        pass

    @property
    @abstractmethod
    def archive_model(self) -> Type[Base]:
        """Archive table; primary key equals the source id."""
        pass

    @property
    @abstractmethod
    def snapshot_model(self) -> Type[Snapshot]:
        pass

    @abstractmethod
    def eligibility(self, cutoff: date) -> ColumnElement[bool]:
        """Status/date predicate; rows with a NULL threshold date never match."""
        pass

    @abstractmethod
    def document_paths(self, candidate: Any, uploads_root: str) -> List[str]:
        """Absolute, de-duplicated document paths for a candidate."""
        pass

    @property
    def audit_entity_type(self) -> str:
        return self.name.upper()

    def not_archived(self) -> ColumnElement[bool]:
        archived = self.source_model.archived
        return or_(archived.is_(None), archived.is_(False))

    def selection_criteria(self, cutoff: date) -> ColumnElement[bool]:
        """Full selection predicate: eligible and not yet archived."""
        return self.eligibility(cutoff) & self.not_archived()

    def snapshot(self, candidate: Any) -> Snapshot:
        """Copy every archivable field into an immutable snapshot."""
        return self.snapshot_model.model_validate(candidate)

    def build_archive_row(
        self,
        snapshot: Snapshot,
        archived_date: datetime,
        archived_by: str,
        archive_location: str,
    ) -> Base:
        return self.archive_model(
            **snapshot.model_dump(),
            archived_date=archived_date,
            archived_by=archived_by,
            archive_location=archive_location,
        )
