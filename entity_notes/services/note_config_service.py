"""Notes-enabled registry - per entity type opt-in for notes."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from entity_notes.core.errors import translate_db_errors
from entity_notes.core.permissions import get_default_grants, notes_resource_key
from entity_notes.core.structured_logging import build_log_context
from entity_notes.db.models import EntityNotesConfig, NotesPermissionGrant

logger = logging.getLogger(__name__)


def is_notes_enabled(db: Session, entity_type: str) -> bool:
    """Check if notes are enabled for an entity type (missing = disabled)."""
    with translate_db_errors():
        enabled = db.execute(
            select(EntityNotesConfig.enabled).where(
                EntityNotesConfig.entity_type == entity_type
            )
        ).scalar_one_or_none()
    return bool(enabled)


def list_enabled_entity_types(db: Session) -> list[str]:
    """Entity types with notes enabled, sorted by name."""
    with translate_db_errors():
        rows = db.execute(
            select(EntityNotesConfig.entity_type)
            .where(EntityNotesConfig.enabled.is_(True))
            .order_by(EntityNotesConfig.entity_type)
        ).scalars()
        return list(rows)


def _seed_default_grants(db: Session, entity_type: str) -> None:
    resource = notes_resource_key(entity_type)
    existing = {
        (row.role, row.action)
        for row in db.query(NotesPermissionGrant).filter(
            NotesPermissionGrant.resource == resource
        )
    }
    for role, action in get_default_grants():
        if (role, action.value) in existing:
            continue
        db.add(NotesPermissionGrant(resource=resource, action=action.value, role=role))


def enable_entity_notes(db: Session, entity_type: str) -> EntityNotesConfig:
    """
    Enable notes for an entity type.

    When the flag flips from disabled to enabled, default grants are seeded:
    editor gets read + create, user gets read. Existing grants are kept.
    Flushes only - the caller owns the transaction.
    """
    config = db.get(EntityNotesConfig, entity_type)
    was_enabled = bool(config and config.enabled)
    if config is None:
        config = EntityNotesConfig(entity_type=entity_type, enabled=True)
        db.add(config)
    else:
        config.enabled = True
        config.updated_at = datetime.now(timezone.utc)

    if not was_enabled:
        _seed_default_grants(db, entity_type)
        logger.info("Notes enabled", extra=build_log_context(entity_type=entity_type))

    db.flush()
    return config


def disable_entity_notes(db: Session, entity_type: str) -> None:
    """
    Disable notes for an entity type.

    Blocks new notes only; existing notes and grants are left in place.
    """
    config = db.get(EntityNotesConfig, entity_type)
    if config is None or not config.enabled:
        return
    config.enabled = False
    config.updated_at = datetime.now(timezone.utc)
    db.flush()
    logger.info("Notes disabled", extra=build_log_context(entity_type=entity_type))
