"""
Live source records eligible for archiving.

Rows are owned by the enrollment and defense workflows; the archival
pipeline only reads them and flips ``archived`` once a bundle is committed.
"""

from datetime import date, time
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from archival.models.base import Base, TimestampMixin


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


class DefenseStatus(str, Enum):
    """Defense lifecycle status."""
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Enrollment(Base):
    """Doctoral enrollment (inscription)."""

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    doctorant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[EnrollmentStatus] = mapped_column(
        String(50),
        default=EnrollmentStatus.PENDING,
        nullable=False,
    )

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

    has_derogation: Mapped[Optional[bool]] = mapped_column(Boolean, default=False, nullable=True)
    derogation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    derogation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # NULL is treated as "not archived"
    archived: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        default=False,
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} {self.status}>"


class Defense(Base, TimestampMixin):
    """Thesis defense (soutenance)."""

    __tablename__ = "defenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    enrollment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    defense_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    defense_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mention: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    jury_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    pv_signed: Mapped[Optional[bool]] = mapped_column(Boolean, default=False, nullable=True)
    # Paths relative to the uploads root
    pv_file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    report_file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    status: Mapped[DefenseStatus] = mapped_column(
        String(50),
        default=DefenseStatus.PENDING,
        nullable=False,
    )

    archived: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        default=False,
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Defense {self.id} {self.status}>"
