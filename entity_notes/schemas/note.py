"""Pydantic schemas for polymorphic entity notes."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NoteCreate(BaseModel):
    """Request to add a note to an entity."""

    # Blank and over-long content are rejected by the service with specific errors
    content: str
    is_internal: bool = True


class NoteUpdate(BaseModel):
    """Request to edit a note's content."""

    content: str


class NoteRead(BaseModel):
    """Note response. content_html is the sanitized rendering of content."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: str
    author_id: UUID
    author_name: str
    content: str
    content_html: str
    note_type: str
    is_internal: bool
    created_at: datetime
    updated_at: datetime


class NoteListResponse(BaseModel):
    """Page of notes, newest first."""

    items: list[NoteRead]
    next_cursor: str | None = None


class NotesConfigRead(BaseModel):
    """Entity types with notes enabled."""

    entity_types: list[str]


class BulkNotesExportRequest(BaseModel):
    """Entity instances of one type whose notes are exported together."""

    entity_ids: list[str] = Field(..., min_length=1, max_length=5000)
    include_deleted: bool = False
