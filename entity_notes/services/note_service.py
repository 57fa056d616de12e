"""Note service - create, edit, delete and list notes on any entity type.

Two entry points create notes:
- create_note: human path, gated, author is the acting user, commits
- create_system_note: system path used by note_triggers only, no gate,
  never commits (the triggering mutation owns the transaction)

Validation runs before any write, so a rejected call leaves no trace.
"""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from entity_notes.core.config import settings
from entity_notes.core.errors import (
    ContentTooLongError,
    EmptyContentError,
    NotAuthorError,
    NotFoundError,
    NotesNotEnabledError,
    UnauthenticatedError,
    translate_db_errors,
)
from entity_notes.core.note_access import check_notes_access
from entity_notes.core.structured_logging import build_log_context
from entity_notes.db.enums import NotesAction, NoteType
from entity_notes.db.models import EntityNote
from entity_notes.schemas.auth import UserSession
from entity_notes.schemas.note import NoteRead
from entity_notes.services import note_config_service, note_store
from entity_notes.services.note_formatting import render_html

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _validate_content(content: str | None) -> str:
    """Trim content and enforce non-empty and length ceiling."""
    trimmed = (content or "").strip()
    if not trimmed:
        raise EmptyContentError()
    if len(trimmed) > settings.NOTE_MAX_LENGTH:
        raise ContentTooLongError(
            f"Note content exceeds {settings.NOTE_MAX_LENGTH} characters"
        )
    return trimmed


def _require_notes_enabled(db: Session, entity_type: str) -> None:
    if not note_config_service.is_notes_enabled(db, entity_type):
        raise NotesNotEnabledError(
            f"Notes are not enabled for entity type '{entity_type}'"
        )


def _require_actor(actor: UserSession | None) -> UUID:
    if actor is None or actor.user_id is None:
        raise UnauthenticatedError()
    return actor.user_id


def _get_active_note(db: Session, note_id: int) -> EntityNote:
    note = note_store.get_note(db, note_id)
    if note is None or note.is_deleted:
        raise NotFoundError()
    return note


def _commit(db: Session) -> None:
    with translate_db_errors():
        db.commit()


# =============================================================================
# Create
# =============================================================================

def create_note(
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_id: str,
    content: str,
    *,
    is_internal: bool = True,
) -> EntityNote:
    """
    Create a human note on an entity.

    The author is always the acting user; callers cannot choose it.

    Raises:
        UnauthenticatedError: no acting user
        NotesNotEnabledError: entity type not opted in
        PermissionDeniedError: actor lacks notes:create
        EmptyContentError / ContentTooLongError: invalid content
    """
    author_id = _require_actor(actor)
    _require_notes_enabled(db, entity_type)
    check_notes_access(db, actor, entity_type, NotesAction.CREATE)
    clean_content = _validate_content(content)

    note = note_store.insert_note(
        db,
        entity_type=entity_type,
        entity_id=str(entity_id),
        author_id=author_id,
        content=clean_content,
        note_type=NoteType.HUMAN,
        is_internal=is_internal,
    )
    _commit(db)
    db.refresh(note)

    logger.info(
        "Note created",
        extra=build_log_context(
            user_id=str(author_id),
            entity_type=entity_type,
            entity_id=note.entity_id,
            note_id=note.id,
        ),
    )
    return note


def create_system_note(
    db: Session,
    entity_type: str,
    entity_id: str,
    content: str,
    *,
    author_id: UUID | None = None,
    is_internal: bool = True,
    flush: bool = True,
) -> EntityNote:
    """
    Create a system note as part of the caller's unit of work.

    Skips the permission gate. Author is the user behind the triggering
    mutation when known, else the configured system user. Nothing is
    committed here: if the surrounding transaction rolls back, so does
    the note.
    """
    _require_notes_enabled(db, entity_type)
    clean_content = _validate_content(content)

    return note_store.insert_note(
        db,
        entity_type=entity_type,
        entity_id=str(entity_id),
        author_id=author_id or settings.SYSTEM_USER_ID,
        content=clean_content,
        note_type=NoteType.SYSTEM,
        is_internal=is_internal,
        flush=flush,
    )


# =============================================================================
# Update / Delete
# =============================================================================

def update_note(
    db: Session,
    actor: UserSession,
    note_id: int,
    content: str,
) -> EntityNote:
    """
    Replace a note's content. Author only, and the author must still hold
    notes:create. No administrative override for edits.

    Check order: not found, not author, permission, content.
    """
    user_id = _require_actor(actor)
    note = _get_active_note(db, note_id)
    if note.author_id != user_id:
        raise NotAuthorError()
    check_notes_access(db, actor, note.entity_type, NotesAction.CREATE)
    clean_content = _validate_content(content)

    note_store.update_content(db, note, clean_content)
    _commit(db)
    db.refresh(note)

    logger.info(
        "Note updated",
        extra=build_log_context(
            user_id=str(user_id),
            entity_type=note.entity_type,
            entity_id=note.entity_id,
            note_id=note.id,
        ),
    )
    return note


def delete_note(db: Session, actor: UserSession, note_id: int) -> None:
    """
    Remove a note from all reads.

    The author may delete while holding notes:create. An administrator
    (bypass) may delete any note for moderation. Soft or hard delete per
    NOTES_SOFT_DELETE.
    """
    user_id = _require_actor(actor)
    note = _get_active_note(db, note_id)
    if not actor.is_admin:
        if note.author_id != user_id:
            raise NotAuthorError()
        check_notes_access(db, actor, note.entity_type, NotesAction.CREATE)

    context = build_log_context(
        user_id=str(user_id),
        entity_type=note.entity_type,
        entity_id=note.entity_id,
        note_id=note.id,
    )
    if settings.NOTES_SOFT_DELETE:
        note_store.soft_delete(db, note)
    else:
        note_store.hard_delete(db, note)
    _commit(db)

    logger.info("Note deleted", extra=context)


# =============================================================================
# Read
# =============================================================================

def list_notes(
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_id: str,
    *,
    limit: int | None = None,
    cursor: str | None = None,
    external: bool = False,
) -> note_store.NotePage:
    """
    List active notes for an entity, newest first.

    external=True is the public surface: internal notes are never included.
    """
    check_notes_access(db, actor, entity_type, NotesAction.READ)

    if settings.NOTES_HIDE_WHEN_DISABLED and not note_config_service.is_notes_enabled(
        db, entity_type
    ):
        return note_store.NotePage(items=[], next_cursor=None)

    page_size = limit or settings.NOTES_PAGE_SIZE
    page_size = max(1, min(page_size, settings.NOTES_MAX_PAGE_SIZE))
    return note_store.list_page(
        db,
        entity_type,
        str(entity_id),
        limit=page_size,
        cursor=cursor,
        include_internal=not external,
    )


def to_note_read(note: EntityNote) -> NoteRead:
    """Convert EntityNote model to NoteRead schema with rendered HTML."""
    return NoteRead(
        id=note.id,
        entity_type=note.entity_type,
        entity_id=note.entity_id,
        author_id=note.author_id,
        author_name=note.author_name,
        content=note.content,
        content_html=render_html(note.content),
        note_type=note.note_type,
        is_internal=note.is_internal,
        created_at=note.created_at,
        updated_at=note.updated_at,
    )
