"""Note service errors.

Every rejected operation raises a specific subclass so callers can tell
"not permitted" apart from "bad input" and from infrastructure failures.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class NoteServiceError(Exception):
    """Base exception for note service errors."""

    status_code = 400
    code = "note_error"
    default_message = "Note operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class UnauthenticatedError(NoteServiceError):
    """No actor could be resolved for the operation."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Not authenticated"


class PermissionDeniedError(NoteServiceError):
    """Actor lacks the notes permission for the entity type."""

    status_code = 403
    code = "permission_denied"
    default_message = "Not permitted"


class NotAuthorError(NoteServiceError):
    """Only the note author may change the note."""

    status_code = 403
    code = "not_author"
    default_message = "Only the author can modify this note"


class NotesNotEnabledError(NoteServiceError):
    """Notes are not enabled for the entity type."""

    status_code = 409
    code = "notes_not_enabled"
    default_message = "Notes are not enabled for this entity type"


class EmptyContentError(NoteServiceError):
    """Note content is blank after trimming."""

    status_code = 422
    code = "empty_content"
    default_message = "Note content cannot be empty"


class ContentTooLongError(NoteServiceError):
    """Note content exceeds the configured ceiling."""

    status_code = 422
    code = "content_too_long"
    default_message = "Note content is too long"


class NotFoundError(NoteServiceError):
    """Note is absent or soft-deleted."""

    status_code = 404
    code = "not_found"
    default_message = "Note not found"


class InvalidCursorError(NoteServiceError):
    """Pagination cursor could not be decoded."""

    status_code = 400
    code = "invalid_cursor"
    default_message = "Invalid cursor"


class TransientError(NoteServiceError):
    """Infrastructure failure; the caller may retry."""

    status_code = 503
    code = "transient"
    default_message = "Temporary failure, please retry"


@contextmanager
def translate_db_errors():
    """Re-raise database connectivity failures as TransientError."""
    try:
        yield
    except OperationalError as exc:
        logger.warning("Transient database failure: %s", exc.__class__.__name__)
        raise TransientError() from exc
