"""
Enrollment kind.

Validated or rejected enrollments whose decision date is older than the
retention threshold. Documents live in ``{uploads}/enrollments/{id}/``.
"""

import os
from datetime import date
from typing import List

from sqlalchemy import ColumnElement, and_, or_

from archival.kinds.base import ArchiveKindPlugin, list_files
from archival.models import Enrollment, EnrollmentArchive, EnrollmentStatus
from archival.schemas import EnrollmentSnapshot


class EnrollmentKind(ArchiveKindPlugin):
    """Archive plugin for doctoral enrollments."""

    @property
    def name(self) -> str:
        return "enrollment"

    @property
    def source_model(self):
        return Enrollment

    @property
    def archive_model(self):
        return EnrollmentArchive

    @property
    def snapshot_model(self):
        return EnrollmentSnapshot

    def eligibility(self, cutoff: date) -> ColumnElement[bool]:
        return or_(
            and_(
                Enrollment.status == EnrollmentStatus.VALIDATED.value,
                Enrollment.validation_date < cutoff,
            ),
            and_(
                Enrollment.status == EnrollmentStatus.REJECTED.value,
                Enrollment.rejection_date < cutoff,
            ),
        )

    def document_paths(self, candidate: Enrollment, uploads_root: str) -> List[str]:
        return list_files(os.path.join(uploads_root, "enrollments", str(candidate.id)))
