"""Notes router - API endpoints for notes on any entity type.

Service errors (NoteServiceError subclasses) are mapped to HTTP responses
by the app-level handler in main.py. System notes have no endpoint; they
are only written by parent-entity mutations.
"""

import re
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from entity_notes.core.deps import (
    get_current_session,
    get_db,
    get_optional_session,
    require_csrf_header,
)
from entity_notes.schemas.auth import UserSession
from entity_notes.schemas.note import (
    BulkNotesExportRequest,
    NoteCreate,
    NoteListResponse,
    NoteRead,
    NotesConfigRead,
    NoteUpdate,
)
from entity_notes.services import note_config_service, note_export_service, note_service

router = APIRouter()


def _content_disposition(filename: str) -> str:
    """Attachment header for a filename that may carry arbitrary entity ids.

    filename= gets an ASCII-only fallback; filename* carries the exact name.
    """
    fallback = re.sub(r"[^A-Za-z0-9._-]", "_", filename)
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


def _csv_response(content: str, filename: str) -> Response:
    headers = {"Content-Disposition": _content_disposition(f"{filename}.csv")}
    return Response(content=content, media_type="text/csv", headers=headers)


@router.get("/notes/config", response_model=NotesConfigRead)
def get_notes_config(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Entity types with notes enabled."""
    return NotesConfigRead(
        entity_types=note_config_service.list_enabled_entity_types(db)
    )


@router.get("/entities/{entity_type}/{entity_id}/notes", response_model=NoteListResponse)
def list_notes(
    entity_type: str,
    entity_id: str,
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """List notes for an entity, newest first (cursor-paginated)."""
    page = note_service.list_notes(
        db, session, entity_type, entity_id, limit=limit, cursor=cursor
    )
    return NoteListResponse(
        items=[note_service.to_note_read(n) for n in page.items],
        next_cursor=page.next_cursor,
    )


@router.post(
    "/entities/{entity_type}/{entity_id}/notes",
    response_model=NoteRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_note(
    entity_type: str,
    entity_id: str,
    data: NoteCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Add a note to an entity as the current user."""
    note = note_service.create_note(
        db,
        session,
        entity_type,
        entity_id,
        data.content,
        is_internal=data.is_internal,
    )
    return note_service.to_note_read(note)


@router.patch(
    "/notes/{note_id}",
    response_model=NoteRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_note(
    note_id: int,
    data: NoteUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Edit a note (author only)."""
    note = note_service.update_note(db, session, note_id, data.content)
    return note_service.to_note_read(note)


@router.delete(
    "/notes/{note_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_note(
    note_id: int,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Delete a note (author, or administrator for moderation)."""
    note_service.delete_note(db, session, note_id)
    return Response(status_code=204)


@router.get("/entities/{entity_type}/{entity_id}/notes/export")
def export_entity_notes(
    entity_type: str,
    entity_id: str,
    include_deleted: bool = Query(False),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> Response:
    """Export one entity's notes as CSV."""
    document = note_export_service.export_entity_notes(
        db, session, entity_type, entity_id, include_deleted=include_deleted
    )
    sheet = document.get_sheet(note_export_service.NOTES_SHEET_NAME)
    return _csv_response(note_export_service.render_csv(sheet), document.filename)


@router.post(
    "/entities/{entity_type}/notes/export",
    dependencies=[Depends(require_csrf_header)],
)
def export_bulk_notes(
    entity_type: str,
    data: BulkNotesExportRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> Response:
    """Export notes for many entities of one type as a single CSV."""
    sheet = note_export_service.build_bulk_notes_sheet(
        db,
        session,
        entity_type,
        data.entity_ids,
        include_deleted=data.include_deleted,
    )
    return _csv_response(
        note_export_service.render_csv(sheet), f"{entity_type}_notes"
    )


@router.get(
    "/public/entities/{entity_type}/{entity_id}/notes",
    response_model=NoteListResponse,
)
def list_public_notes(
    entity_type: str,
    entity_id: str,
    limit: int | None = Query(None, ge=1),
    cursor: str | None = Query(None),
    session: UserSession = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """External notes only. Anonymous callers act with the 'anonymous' role."""
    page = note_service.list_notes(
        db,
        session,
        entity_type,
        entity_id,
        limit=limit,
        cursor=cursor,
        external=True,
    )
    return NoteListResponse(
        items=[note_service.to_note_read(n) for n in page.items],
        next_cursor=page.next_cursor,
    )
