"""
Archival Data Models

SQLAlchemy models for the live source records, their permanent archive
snapshots and the archive audit trail.
"""

from archival.models.base import Base, TimestampMixin, ArchiveStampMixin
from archival.models.source import (
    Enrollment,
    EnrollmentStatus,
    Defense,
    DefenseStatus,
)
from archival.models.archive import (
    EnrollmentArchive,
    DefenseArchive,
    ArchiveAuditTrail,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "ArchiveStampMixin",
    # Source
    "Enrollment",
    "EnrollmentStatus",
    "Defense",
    "DefenseStatus",
    # Archive
    "EnrollmentArchive",
    "DefenseArchive",
    "ArchiveAuditTrail",
]
