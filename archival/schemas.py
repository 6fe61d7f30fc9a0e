"""
Value types passed between the selector, packager, committer and job.
"""

import uuid
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _enum_value(value):
    return value.value if isinstance(value, Enum) else value


# --- Snapshots ---------------------------------------------------------------


class EnrollmentSnapshot(BaseModel):
    """Immutable copy of an enrollment's archivable fields."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    doctorant_id: int
    status: str
    validation_date: Optional[date] = None
    rejection_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    first_enrollment_date: Optional[date] = None
    academic_year: Optional[str] = None
    discipline: Optional[str] = None
    laboratory: Optional[str] = None
    thesis_director_id: Optional[int] = None
    thesis_co_director_id: Optional[int] = None
    thesis_subject: Optional[str] = None
    has_derogation: bool = False
    derogation_reason: Optional[str] = None
    derogation_date: Optional[date] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v):
        return _enum_value(v)

    @field_validator("has_derogation", mode="before")
    @classmethod
    def _derogation_default(cls, v):
        return False if v is None else v


class DefenseSnapshot(BaseModel):
    """Immutable copy of a defense's archivable fields."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    enrollment_id: int
    defense_date: date
    defense_time: Optional[time] = None
    location: Optional[str] = None
    mention: Optional[str] = None
    jury_id: Optional[int] = None
    pv_signed: Optional[bool] = None
    pv_file_path: Optional[str] = None
    report_file_path: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v):
        return _enum_value(v)


Snapshot = Union[EnrollmentSnapshot, DefenseSnapshot]


# --- Bundle ------------------------------------------------------------------


class ArchiveBundle(BaseModel):
    """
    One packaged candidate, ready for the committer.

    Transient: built by the packager, consumed and discarded by the
    committer. Has no identity of its own.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    original_id: int
    snapshot: Snapshot
    encrypted_payload: bytes = Field(repr=False)
    target_location: str
    original_file_paths: List[str] = []
    archived_by: str
    archived_date: datetime
    uncompressed_size: int = 0
    compressed_size: int = 0


# --- Commit outcomes ---------------------------------------------------------


class BundleState(str, Enum):
    """Per-bundle commit state."""
    PENDING = "pending"
    BUNDLE_WRITTEN = "bundle_written"
    RECORD_COMMITTED = "record_committed"
    FLAGGED = "flagged"
    PURGED = "purged"
    # Terminal failure states
    ABORTED = "aborted"    # archive record / audit / flag rolled back
    PARTIAL = "partial"    # committed, but some originals could not be deleted


class CommitOutcome(BaseModel):
    """Result of committing one bundle."""

    kind: str
    entity_id: int
    state: BundleState = BundleState.PENDING
    archive_location: str
    error: Optional[str] = None
    files_deleted: int = 0
    cleanup_errors: List[str] = []

    @property
    def archived(self) -> bool:
        """True when the archive record, audit entry and flag were committed."""
        return self.state in (BundleState.PURGED, BundleState.PARTIAL)


# --- Run summary -------------------------------------------------------------


class ItemError(BaseModel):
    """Why a single candidate was not archived."""

    kind: str
    entity_id: Optional[int] = None
    stage: str
    reason: str


class RunSummary(BaseModel):
    """Counts and failure reasons for one pipeline run."""

    run_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    started_at: datetime
    finished_at: Optional[datetime] = None

    selected: int = 0
    packaged: int = 0
    committed: int = 0
    purged: int = 0
    failed: int = 0
    skipped: int = 0
    cleanup_failures: int = 0
    bytes_saved: int = 0

    archived_by_kind: Dict[str, int] = {}
    errors: List[ItemError] = []
    stopped_early: bool = False

    @property
    def items_processed(self) -> int:
        """Items archived in this run (monitoring layer's processed count)."""
        return self.committed

    @property
    def items_failed(self) -> int:
        return self.failed


class ReclaimReport(BaseModel):
    """What a sweep of staged bundle files did."""

    removed: List[str] = []     # staged files no committed record refers to
    finalized: List[str] = []   # committed bundles whose rename was completed
