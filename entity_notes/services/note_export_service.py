"""Notes export - tabular documents for spreadsheet export.

Builds a format-neutral TabularDocument (named sheets of rows) and renders
it to CSV or a ZIP of CSVs. Note content is exported as plain text with
markup stripped. Every export re-checks notes:read; it never relies on a
check made by the screen that offered the button.
"""

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy.orm import Session

from entity_notes.core.config import settings
from entity_notes.core.note_access import check_notes_access
from entity_notes.core.structured_logging import build_log_context
from entity_notes.db.enums import NotesAction, NoteType
from entity_notes.db.models import EntityNote
from entity_notes.schemas.auth import UserSession
from entity_notes.services import note_config_service, note_store
from entity_notes.services.note_formatting import to_plain_text

logger = logging.getLogger(__name__)


NOTES_SHEET_NAME = "Notes"
NOTE_HEADERS = ["Note ID", "Author", "Date", "Type", "Content"]
RECORD_ID_HEADER = "Record ID"
DELETED_AT_HEADER = "Deleted At"
EXPORT_DATE_FORMAT = "%Y-%m-%d %H:%M"

CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")


@dataclass
class Sheet:
    name: str
    headers: list[str]
    rows: list[list[Any]] = field(default_factory=list)


@dataclass
class TabularDocument:
    """Named sheets plus a suggested base filename (no extension)."""

    sheets: list[Sheet] = field(default_factory=list)
    filename: str | None = None

    def get_sheet(self, name: str) -> Sheet | None:
        return next((s for s in self.sheets if s.name == name), None)


# =============================================================================
# Row building
# =============================================================================

def format_export_date(value: datetime) -> str:
    """Minute-precision UTC timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(EXPORT_DATE_FORMAT)


def build_export_filename(entity_type: str, entity_id: str, on: date) -> str:
    return f"{entity_type}_{entity_id}_notes_{on.isoformat()}"


def _note_row(
    note: EntityNote,
    *,
    include_record_id: bool,
    include_deleted: bool,
) -> list[Any]:
    row: list[Any] = [
        note.id,
        note.author_name,
        format_export_date(note.created_at),
        NoteType(note.note_type).export_label,
        to_plain_text(note.content),
    ]
    if include_record_id:
        row.insert(0, note.entity_id)
    if include_deleted:
        row.append(format_export_date(note.deleted_at) if note.deleted_at else "")
    return row


def _headers(*, include_record_id: bool, include_deleted: bool) -> list[str]:
    headers = list(NOTE_HEADERS)
    if include_record_id:
        headers.insert(0, RECORD_ID_HEADER)
    if include_deleted:
        headers.append(DELETED_AT_HEADER)
    return headers


def _load_notes(
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_ids: Iterable[str],
    *,
    include_deleted: bool,
) -> list[EntityNote]:
    check_notes_access(db, actor, entity_type, NotesAction.READ)
    if settings.NOTES_HIDE_WHEN_DISABLED and not note_config_service.is_notes_enabled(
        db, entity_type
    ):
        return []
    return note_store.list_for_entities(
        db,
        entity_type,
        [str(entity_id) for entity_id in entity_ids],
        include_internal=actor.is_authenticated,
        include_deleted=include_deleted,
    )


# =============================================================================
# Documents
# =============================================================================

def export_entity_notes(
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_id: str,
    *,
    include_deleted: bool = False,
    today: date | None = None,
) -> TabularDocument:
    """
    Export one entity's notes as a single "Notes" sheet, newest first.

    Raises:
        PermissionDeniedError: actor lacks notes:read
    """
    entity_id = str(entity_id)
    notes = _load_notes(
        db, actor, entity_type, [entity_id], include_deleted=include_deleted
    )
    sheet = Sheet(
        name=NOTES_SHEET_NAME,
        headers=_headers(include_record_id=False, include_deleted=include_deleted),
        rows=[
            _note_row(note, include_record_id=False, include_deleted=include_deleted)
            for note in notes
        ],
    )
    logger.info(
        "Notes exported",
        extra=build_log_context(
            user_id=str(actor.user_id) if actor.user_id else None,
            entity_type=entity_type,
            entity_id=entity_id,
        ),
    )
    on = today or datetime.now(timezone.utc).date()
    return TabularDocument(
        sheets=[sheet],
        filename=build_export_filename(entity_type, entity_id, on),
    )


def build_bulk_notes_sheet(
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_ids: Iterable[str],
    *,
    include_deleted: bool = False,
) -> Sheet:
    """
    One "Notes" sheet for many entities of a type, prefixed with Record ID.

    Ordered by record id, then newest first within each record.
    """
    notes = _load_notes(
        db, actor, entity_type, entity_ids, include_deleted=include_deleted
    )
    return Sheet(
        name=NOTES_SHEET_NAME,
        headers=_headers(include_record_id=True, include_deleted=include_deleted),
        rows=[
            _note_row(note, include_record_id=True, include_deleted=include_deleted)
            for note in notes
        ],
    )


def attach_notes_sheet(
    document: TabularDocument,
    db: Session,
    actor: UserSession,
    entity_type: str,
    entity_ids: Iterable[str],
    *,
    include_notes: bool = True,
    include_deleted: bool = False,
) -> TabularDocument:
    """Append a bulk notes sheet to an existing entity export.

    Unchanged when include_notes is False.
    """
    if not include_notes:
        return document
    document.sheets.append(
        build_bulk_notes_sheet(
            db, actor, entity_type, entity_ids, include_deleted=include_deleted
        )
    )
    return document


# =============================================================================
# Renderers
# =============================================================================

def _csv_safe(value: str) -> str:
    if value and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def _serialize_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_export_date(value)
    return str(value)


def _write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_safe(_serialize_csv_value(value)) for value in row])
    return output.getvalue()


def render_csv(sheet: Sheet) -> str:
    return _write_csv(sheet.headers, sheet.rows)


def render_zip(document: TabularDocument) -> bytes:
    """ZIP archive with one CSV per sheet."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for sheet in document.sheets:
            archive.writestr(f"{sheet.name}.csv", render_csv(sheet))
    return buffer.getvalue()
