"""Notes access control - the single gate for notes permission checks.

Evaluation order:
- Administrative bypass: always allowed (no grant lookup)
- Otherwise: allowed iff any role held by the actor is granted the action
  on '{entity_type}:notes'

Grants are read on every call, never cached, so a permission change takes
effect on the next request. Authorship checks for edit/delete are made by
the caller; this gate only answers the coarse-grained question.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from entity_notes.core.errors import PermissionDeniedError, translate_db_errors
from entity_notes.core.permissions import notes_resource_key
from entity_notes.core.structured_logging import build_log_context
from entity_notes.db.enums import NotesAction
from entity_notes.db.models import NotesPermissionGrant
from entity_notes.schemas.auth import UserSession

logger = logging.getLogger(__name__)


def can_perform(
    db: Session,
    actor: UserSession,
    entity_type: str,
    action: NotesAction | str,
) -> bool:
    """Check whether actor may perform a notes action on an entity type."""
    action = NotesAction(action)
    if actor.is_admin:
        return True

    if not actor.roles:
        return False

    stmt = (
        select(NotesPermissionGrant.id)
        .where(
            NotesPermissionGrant.resource == notes_resource_key(entity_type),
            NotesPermissionGrant.action == action.value,
            NotesPermissionGrant.role.in_(actor.roles),
        )
        .limit(1)
    )
    with translate_db_errors():
        return db.execute(stmt).first() is not None


def check_notes_access(
    db: Session,
    actor: UserSession,
    entity_type: str,
    action: NotesAction | str,
) -> None:
    """
    Raise unless actor may perform the action.

    Raises:
        PermissionDeniedError: actor holds no role granted the action
    """
    if can_perform(db, actor, entity_type, action):
        return

    action = NotesAction(action)
    logger.info(
        "Notes %s denied",
        action.value,
        extra=build_log_context(
            user_id=str(actor.user_id) if actor.user_id else None,
            entity_type=entity_type,
        ),
    )
    raise PermissionDeniedError(
        f"Not permitted to {action.value} notes on '{entity_type}'"
    )
