"""
Archive Kinds - Record-kind specific selection, snapshot and document rules.

Dispatch is by source model class; unknown objects resolve to None.
"""

from typing import Any, Dict, Optional, Tuple

from archival.kinds.base import ArchiveKindPlugin
from archival.kinds.enrollment import EnrollmentKind
from archival.kinds.defense import DefenseKind

# Processing order for a full run
KINDS: Tuple[ArchiveKindPlugin, ...] = (EnrollmentKind(), DefenseKind())

_BY_NAME: Dict[str, ArchiveKindPlugin] = {k.name: k for k in KINDS}
_BY_MODEL: Dict[type, ArchiveKindPlugin] = {k.source_model: k for k in KINDS}


def get_kind(name: str) -> ArchiveKindPlugin:
    """Look up a kind by name; raises KeyError for unknown names."""
    try:
        return _BY_NAME[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown archive kind: {name}") from None


def kind_for(candidate: Any) -> Optional[ArchiveKindPlugin]:
    """Kind plugin for a source row, or None when the type is not archivable."""
    return _BY_MODEL.get(type(candidate))


__all__ = [
    "ArchiveKindPlugin",
    "EnrollmentKind",
    "DefenseKind",
    "KINDS",
    "get_kind",
    "kind_for",
]
