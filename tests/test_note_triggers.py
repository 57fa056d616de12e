"""Tests for system notes written by parent-entity mutations."""

import pytest
from sqlalchemy.orm import Session

from entity_notes.core.config import settings
from entity_notes.core.errors import EmptyContentError, NotesNotEnabledError
from entity_notes.db.enums import NoteType
from entity_notes.db.models import EntityNote
from entity_notes.services import note_config_service
from entity_notes.services.note_triggers import (
    ACTOR_INFO_KEY,
    STATUS_CHANGE_TEMPLATE,
    EntityMutation,
    SystemNoteProducer,
    mutation_scope,
)


@pytest.fixture
def producer(db: Session, issue_model):
    producer = SystemNoteProducer()
    producer.watch(issue_model, "issues", "status")
    producer.install(db)
    yield producer
    producer.uninstall(db)


@pytest.fixture
def issue(db: Session, issue_model):
    issue = issue_model(id=123, title="Pothole on Main St", status="open")
    db.add(issue)
    db.commit()
    return issue


def _notes(db: Session) -> list[EntityNote]:
    return db.query(EntityNote).order_by(EntityNote.id).all()


# =============================================================================
# ORM-driven triggers
# =============================================================================

def test_status_change_writes_system_note(db: Session, issues_enabled, producer, issue, editor):
    with mutation_scope(db, actor_id=editor.id):
        issue.status = "resolved"

    notes = _notes(db)
    assert len(notes) == 1
    note = notes[0]
    assert note.content == "Status changed from **open** to **resolved**"
    assert note.note_type == NoteType.SYSTEM.value
    assert note.entity_type == "issues"
    assert note.entity_id == "123"
    assert note.author_id == editor.id


def test_status_change_without_actor_uses_system_user(db: Session, issues_enabled, producer, issue):
    with mutation_scope(db):
        issue.status = "closed"

    note = _notes(db)[0]
    assert note.author_id == settings.SYSTEM_USER_ID
    assert note.author_name == "System"


def test_unchanged_value_writes_no_note(db: Session, issues_enabled, producer, issue):
    with mutation_scope(db):
        issue.status = "open"
        issue.title = "Renamed"

    assert _notes(db) == []


def test_unwatched_field_writes_no_note(db: Session, issues_enabled, producer, issue):
    with mutation_scope(db):
        issue.title = "Renamed"

    assert _notes(db) == []


def test_none_value_rendered(db: Session, issues_enabled, producer, issue):
    with mutation_scope(db):
        issue.status = None

    assert _notes(db)[0].content == "Status changed from **open** to **(none)**"


def test_failed_mutation_leaves_no_note(db: Session, issues_enabled, producer, issue):
    with pytest.raises(RuntimeError):
        with mutation_scope(db):
            issue.status = "resolved"
            db.flush()
            assert db.query(EntityNote).count() == 1
            raise RuntimeError("downstream failure")

    assert _notes(db) == []
    db.refresh(issue)
    assert issue.status == "open"


def test_failed_note_aborts_mutation(db: Session, issues_enabled, producer, issue):
    note_config_service.disable_entity_notes(db, "issues")
    db.commit()

    with pytest.raises(NotesNotEnabledError):
        with mutation_scope(db):
            issue.status = "resolved"

    assert _notes(db) == []
    db.refresh(issue)
    assert issue.status == "open"


def test_install_is_idempotent(db: Session, issues_enabled, producer, issue):
    producer.install(db)

    with mutation_scope(db):
        issue.status = "resolved"

    assert len(_notes(db)) == 1


def test_mutation_scope_restores_actor(db: Session, issues_enabled, editor):
    with mutation_scope(db, actor_id=editor.id):
        assert db.info[ACTOR_INFO_KEY] == editor.id
    assert ACTOR_INFO_KEY not in db.info


# =============================================================================
# Explicit mutations
# =============================================================================

def test_handle_explicit_mutation(db: Session, issues_enabled):
    producer = SystemNoteProducer()
    producer.bind("issues", "status")

    with mutation_scope(db):
        note = producer.handle(
            db, EntityMutation("issues", "7", "status", old_value=None, new_value="open")
        )

    assert note is not None
    assert note.content == "Status changed from **(none)** to **open**"
    assert len(_notes(db)) == 1


def test_handle_without_trigger(db: Session, issues_enabled):
    producer = SystemNoteProducer()
    assert producer.handle(db, EntityMutation("issues", "7", "status", "a", "b")) is None
    assert _notes(db) == []


def test_handle_custom_template_and_visibility(db: Session, issues_enabled):
    producer = SystemNoteProducer()
    producer.bind("issues", "priority", "Priority set to *{new}*", is_internal=False)

    with mutation_scope(db):
        note = producer.handle(db, EntityMutation("issues", "7", "priority", "low", "high"))

    assert note.content == "Priority set to *high*"
    assert note.is_internal is False


def test_handle_failure_rolls_back_mutation(db: Session, issues_enabled, issue):
    producer = SystemNoteProducer()
    producer.bind("issues", "status", "   ")

    with pytest.raises(EmptyContentError):
        with mutation_scope(db):
            issue.status = "resolved"
            producer.handle(db, EntityMutation("issues", "123", "status", "open", "resolved"))

    db.refresh(issue)
    assert issue.status == "open"
    assert _notes(db) == []


def test_unbind_stops_notes(db: Session, issues_enabled, producer, issue):
    producer.unbind("issues", "status")
    assert producer.get_trigger("issues", "status") is None

    with mutation_scope(db):
        issue.status = "resolved"

    assert _notes(db) == []


def test_default_template():
    assert STATUS_CHANGE_TEMPLATE.format(old="a", new="b") == "Status changed from **a** to **b**"
