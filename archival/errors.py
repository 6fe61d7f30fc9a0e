"""
Error taxonomy for the archival pipeline.

SelectionError is fatal to a run. PackagingError and CommitError fail a
single item. CleanupError never propagates; it is recorded on the
commit outcome of an otherwise archived item.
"""

from typing import Optional


class ArchivalError(Exception):
    """Base class for archival pipeline errors."""

    stage = "archive"

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[str] = None,
        entity_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.entity_id = entity_id

    def __str__(self) -> str:
        if self.kind and self.entity_id is not None:
            return f"{self.kind} {self.entity_id}: {self.message}"
        return self.message


class SelectionError(ArchivalError):
    """Query or connectivity failure while fetching candidates."""

    stage = "select"


class PackagingError(ArchivalError):
    """Candidate could not be turned into a bundle."""

    stage = "package"


class CommitError(ArchivalError):
    """Archive record, audit entry or flag update failed and was rolled back."""

    stage = "commit"


class CleanupError(ArchivalError):
    """An original document could not be deleted after commit."""

    stage = "cleanup"

    def __init__(self, message: str, *, path: str, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
