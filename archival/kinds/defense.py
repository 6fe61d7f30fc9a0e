"""
Defense kind.

Completed defenses with a signed PV, held before the retention cutoff.
Documents are the stored PV / report paths plus anything in
``{uploads}/defenses/{id}/``.
"""

import os
from datetime import date
from typing import List

from sqlalchemy import ColumnElement, and_

from archival.kinds.base import ArchiveKindPlugin, dedupe, list_files
from archival.models import Defense, DefenseArchive, DefenseStatus
from archival.schemas import DefenseSnapshot


class DefenseKind(ArchiveKindPlugin):
    """Archive plugin for thesis defenses."""

    @property
    def name(self) -> str:
        return "defense"

    @property
    def source_model(self):
        return Defense

    @property
    def archive_model(self):
        return DefenseArchive

    @property
    def snapshot_model(self):
        return DefenseSnapshot

    def eligibility(self, cutoff: date) -> ColumnElement[bool]:
        return and_(
            Defense.status == DefenseStatus.COMPLETED.value,
            Defense.pv_signed.is_(True),
            Defense.defense_date < cutoff,
        )

    def document_paths(self, candidate: Defense, uploads_root: str) -> List[str]:
        # Stored paths are kept even if the file is gone; the packager
        # reports missing files.
        paths = [
            os.path.abspath(os.path.join(uploads_root, stored))
            for stored in (candidate.pv_file_path, candidate.report_file_path)
            if stored
        ]
        paths.extend(list_files(os.path.join(uploads_root, "defenses", str(candidate.id))))
        return dedupe(paths)
