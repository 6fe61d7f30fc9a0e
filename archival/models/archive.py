"""
Permanent archive rows and the append-only archive audit trail.

Archive rows share their primary key with the source row they were built
from (1:1, never reused). Audit entries are never updated or deleted.
"""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Index, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from archival.models.base import ArchiveStampMixin, Base


class EnrollmentArchive(Base, ArchiveStampMixin):
    """Snapshot of an enrollment at archival time."""

    __tablename__ = "enrollment_archives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    doctorant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    validation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rejection_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_enrollment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    academic_year: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discipline: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    laboratory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    thesis_director_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    thesis_co_director_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    thesis_subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    has_derogation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    derogation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    derogation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<EnrollmentArchive {self.id} @ {self.archive_location}>"


class DefenseArchive(Base, ArchiveStampMixin):
    """Snapshot of a defense at archival time."""

    __tablename__ = "defense_archives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    enrollment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    defense_date: Mapped[date] = mapped_column(Date, nullable=False)
    defense_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mention: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    jury_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pv_signed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    pv_file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    report_file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<DefenseArchive {self.id} @ {self.archive_location}>"


class ArchiveAuditTrail(Base):
    """
    Immutable record of one completed archival operation.

    This table is append-only - no updates or deletes allowed.
    """

    __tablename__ = "archive_audit_trail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Entity reference
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    archive_location: Mapped[str] = mapped_column(String(500), nullable=False)

    # Actor and time
    archived_by: Mapped[str] = mapped_column(String(100), nullable=False)
    archived_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Metrics
    uncompressed_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    compressed_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("ix_archive_audit_trail_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<ArchiveAuditTrail {self.entity_type}:{self.entity_id}>"
