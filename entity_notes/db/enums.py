"""Enum definitions for application constants."""

from enum import Enum


class NoteType(str, Enum):
    """Origin of a note. Descriptive only, grants no permissions."""

    HUMAN = "human"
    SYSTEM = "system"

    @property
    def export_label(self) -> str:
        return "System" if self is NoteType.SYSTEM else "Note"


class NotesAction(str, Enum):
    """Actions covered by notes permission grants."""

    READ = "read"
    CREATE = "create"


DEFAULT_NOTE_TYPE = NoteType.HUMAN
