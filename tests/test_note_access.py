"""Tests for the notes permission gate."""

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from entity_notes.core.errors import PermissionDeniedError
from entity_notes.core.note_access import can_perform, check_notes_access
from entity_notes.core.permissions import (
    ROLE_ANONYMOUS,
    get_default_grants,
    notes_resource_key,
)
from entity_notes.db.enums import NotesAction
from entity_notes.db.models import NotesPermissionGrant
from entity_notes.schemas.auth import UserSession


def test_resource_key():
    assert notes_resource_key("issues") == "issues:notes"


def test_default_grants():
    assert get_default_grants() == [
        ("editor", NotesAction.CREATE),
        ("editor", NotesAction.READ),
        ("user", NotesAction.READ),
    ]


def test_editor_may_read_and_create(db: Session, issues_enabled, editor_session):
    assert can_perform(db, editor_session, "issues", NotesAction.READ)
    assert can_perform(db, editor_session, "issues", NotesAction.CREATE)


def test_user_may_only_read(db: Session, issues_enabled, reader_session):
    assert can_perform(db, reader_session, "issues", "read")
    assert not can_perform(db, reader_session, "issues", "create")


def test_grants_are_per_entity_type(db: Session, issues_enabled, editor_session):
    assert not can_perform(db, editor_session, "reservations", NotesAction.READ)


def test_admin_bypasses_grants(db: Session, admin_session):
    # No grants exist at all
    assert can_perform(db, admin_session, "anything", NotesAction.CREATE)


def test_no_roles_denied(db: Session, issues_enabled):
    actor = UserSession(user_id=None, roles=[])
    assert not can_perform(db, actor, "issues", NotesAction.READ)


def test_anonymous_role_needs_explicit_grant(db: Session, issues_enabled):
    anon = UserSession.anonymous()
    assert not can_perform(db, anon, "issues", NotesAction.READ)

    db.add(
        NotesPermissionGrant(
            resource=notes_resource_key("issues"),
            action=NotesAction.READ.value,
            role=ROLE_ANONYMOUS,
        )
    )
    db.commit()
    assert can_perform(db, anon, "issues", NotesAction.READ)


def test_revoked_grant_applies_on_next_check(db: Session, issues_enabled, editor_session):
    assert can_perform(db, editor_session, "issues", NotesAction.CREATE)

    grant = db.execute(
        select(NotesPermissionGrant).where(
            NotesPermissionGrant.resource == "issues:notes",
            NotesPermissionGrant.action == "create",
            NotesPermissionGrant.role == "editor",
        )
    ).scalar_one()
    db.delete(grant)
    db.commit()

    assert not can_perform(db, editor_session, "issues", NotesAction.CREATE)


def test_check_notes_access_raises(db: Session, issues_enabled, reader_session):
    check_notes_access(db, reader_session, "issues", NotesAction.READ)
    with pytest.raises(PermissionDeniedError):
        check_notes_access(db, reader_session, "issues", NotesAction.CREATE)


def test_unknown_action_rejected(db: Session, editor_session):
    with pytest.raises(ValueError):
        can_perform(db, editor_session, "issues", "delete")


def test_admin_unknown_action_rejected(db: Session, admin_session):
    with pytest.raises(ValueError):
        can_perform(db, admin_session, "issues", "bogus")
