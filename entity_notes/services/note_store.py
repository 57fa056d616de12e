"""Note persistence - insert, keyset-paginated reads, edits and deletes.

Writes flush but never commit; the calling service decides where the
unit of work ends.
"""

import base64
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from entity_notes.core.errors import InvalidCursorError, translate_db_errors
from entity_notes.db.enums import NoteType
from entity_notes.db.models import EntityNote


@dataclass(frozen=True)
class NotePage:
    """List page result with cursor."""

    items: list[EntityNote]
    next_cursor: str | None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Cursor helpers
# =============================================================================

def encode_cursor(*, created_at: datetime, note_id: int) -> str:
    payload = {"created_at": created_at.isoformat(), "id": note_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("utf-8")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    try:
        decoded = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
        payload = json.loads(decoded)
        created_at = datetime.fromisoformat(payload["created_at"])
        note_id = int(payload["id"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at, note_id
    except Exception as exc:
        raise InvalidCursorError() from exc


# =============================================================================
# Writes
# =============================================================================

def insert_note(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    author_id: UUID,
    content: str,
    note_type: NoteType,
    is_internal: bool,
    flush: bool = True,
) -> EntityNote:
    """Add a note to the session.

    flush=False is for callers already inside a flush (before_flush hooks);
    the id is then assigned when that flush completes.
    """
    note = EntityNote(
        entity_type=entity_type,
        entity_id=entity_id,
        author_id=author_id,
        content=content,
        note_type=note_type.value,
        is_internal=is_internal,
    )
    db.add(note)
    if flush:
        with translate_db_errors():
            db.flush()
    return note


def update_content(db: Session, note: EntityNote, content: str) -> EntityNote:
    """Replace content in place and bump updated_at."""
    note.content = content
    note.updated_at = _now_utc()
    with translate_db_errors():
        db.flush()
    return note


def soft_delete(db: Session, note: EntityNote) -> EntityNote:
    note.deleted_at = _now_utc()
    with translate_db_errors():
        db.flush()
    return note


def hard_delete(db: Session, note: EntityNote) -> None:
    db.delete(note)
    with translate_db_errors():
        db.flush()


# =============================================================================
# Reads
# =============================================================================

def get_note(db: Session, note_id: int) -> EntityNote | None:
    """Get a note by ID, including soft-deleted ones."""
    with translate_db_errors():
        return (
            db.query(EntityNote)
            .options(joinedload(EntityNote.author))
            .filter(EntityNote.id == note_id)
            .first()
        )


def list_page(
    db: Session,
    entity_type: str,
    entity_id: str,
    *,
    limit: int,
    cursor: str | None = None,
    include_internal: bool = True,
) -> NotePage:
    """List active notes for an entity, newest first, id breaking timestamp ties."""
    query = (
        db.query(EntityNote)
        .options(joinedload(EntityNote.author))
        .filter(
            EntityNote.entity_type == entity_type,
            EntityNote.entity_id == entity_id,
            EntityNote.deleted_at.is_(None),
        )
        .order_by(EntityNote.created_at.desc(), EntityNote.id.desc())
    )
    if not include_internal:
        query = query.filter(EntityNote.is_internal.is_(False))

    if cursor:
        cursor_created_at, cursor_id = decode_cursor(cursor)
        query = query.filter(
            or_(
                EntityNote.created_at < cursor_created_at,
                and_(
                    EntityNote.created_at == cursor_created_at,
                    EntityNote.id < cursor_id,
                ),
            )
        )

    with translate_db_errors():
        rows = query.limit(limit + 1).all()
    has_more = len(rows) > limit
    items = rows[:limit]

    next_cursor = None
    if has_more and items:
        last = items[-1]
        next_cursor = encode_cursor(created_at=last.created_at, note_id=last.id)
    return NotePage(items=items, next_cursor=next_cursor)


def list_for_entities(
    db: Session,
    entity_type: str,
    entity_ids: Iterable[str],
    *,
    include_internal: bool = True,
    include_deleted: bool = False,
) -> list[EntityNote]:
    """All notes for a set of entities of one type, grouped by entity, newest first."""
    ids = sorted(set(entity_ids))
    if not ids:
        return []

    query = (
        db.query(EntityNote)
        .options(joinedload(EntityNote.author))
        .filter(
            EntityNote.entity_type == entity_type,
            EntityNote.entity_id.in_(ids),
        )
        .order_by(
            EntityNote.entity_id.asc(),
            EntityNote.created_at.desc(),
            EntityNote.id.desc(),
        )
    )
    if not include_internal:
        query = query.filter(EntityNote.is_internal.is_(False))
    if not include_deleted:
        query = query.filter(EntityNote.deleted_at.is_(None))

    with translate_db_errors():
        return query.all()
