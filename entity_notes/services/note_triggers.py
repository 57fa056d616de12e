"""System notes - notes emitted by parent-entity mutations.

A trigger binds (entity_type, field) to a content template. When the field
changes, a system note is written inside the same unit of work as the
mutation: the note exists iff the mutation commits.

Two ways to feed mutations in:
- producer.handle(db, EntityMutation(...)) from service code
- producer.watch(Model, entity_type, field) + producer.install(SessionLocal)
  to pick up changes from the ORM in before_flush

Usage:
    producer.watch(Issue, "issues", "status")
    producer.install(SessionLocal)

    with mutation_scope(db, actor_id=session.user_id):
        issue.status = "resolved"
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator
from uuid import UUID

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from entity_notes.core.structured_logging import build_log_context
from entity_notes.db.models import EntityNote
from entity_notes.services import note_service

logger = logging.getLogger(__name__)


STATUS_CHANGE_TEMPLATE = "Status changed from **{old}** to **{new}**"
MISSING_VALUE = "(none)"

# Session.info key holding the user behind the current mutation
ACTOR_INFO_KEY = "actor_id"


@dataclass(frozen=True)
class EntityMutation:
    """A single field change on a parent entity."""

    entity_type: str
    entity_id: str
    field: str
    old_value: Any
    new_value: Any
    actor_id: UUID | None = None


def _load_previous_value(target: Any, value: Any, oldvalue: Any, initiator: Any) -> None:
    """No-op set listener; registered with active_history so the old value is
    loaded before an expired attribute is overwritten."""


def _display(value: Any) -> str:
    if value is None:
        return MISSING_VALUE
    if hasattr(value, "value"):  # Enum members
        value = value.value
    return str(value)


@dataclass(frozen=True)
class NoteTrigger:
    entity_type: str
    field: str
    template: str = STATUS_CHANGE_TEMPLATE
    is_internal: bool = True

    def render(self, mutation: EntityMutation) -> str:
        return self.template.format(
            field=mutation.field,
            old=_display(mutation.old_value),
            new=_display(mutation.new_value),
        )


@dataclass(frozen=True)
class _WatchedAttribute:
    model: type
    entity_type: str
    field: str
    id_attr: str


class SystemNoteProducer:
    """Registry of note triggers and the code that fires them."""

    def __init__(self) -> None:
        self._triggers: dict[tuple[str, str], NoteTrigger] = {}
        self._watched: list[_WatchedAttribute] = []

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def bind(
        self,
        entity_type: str,
        field: str,
        template: str = STATUS_CHANGE_TEMPLATE,
        *,
        is_internal: bool = True,
    ) -> NoteTrigger:
        trigger = NoteTrigger(entity_type, field, template, is_internal)
        self._triggers[(entity_type, field)] = trigger
        return trigger

    def unbind(self, entity_type: str, field: str) -> None:
        self._triggers.pop((entity_type, field), None)
        self._watched = [
            w for w in self._watched
            if (w.entity_type, w.field) != (entity_type, field)
        ]

    def get_trigger(self, entity_type: str, field: str) -> NoteTrigger | None:
        return self._triggers.get((entity_type, field))

    def watch(
        self,
        model: type,
        entity_type: str,
        field: str,
        *,
        id_attr: str = "id",
        template: str = STATUS_CHANGE_TEMPLATE,
        is_internal: bool = True,
    ) -> NoteTrigger:
        """Bind a trigger and track changes to model.field in before_flush."""
        trigger = self.bind(entity_type, field, template, is_internal=is_internal)
        attribute = getattr(model, field)
        if not event.contains(attribute, "set", _load_previous_value):
            event.listen(attribute, "set", _load_previous_value, active_history=True)
        self._watched.append(_WatchedAttribute(model, entity_type, field, id_attr))
        return trigger

    def install(self, target: Any) -> None:
        """Register the before_flush hook on a Session, sessionmaker or Session class."""
        if not event.contains(target, "before_flush", self._before_flush):
            event.listen(target, "before_flush", self._before_flush)

    def uninstall(self, target: Any) -> None:
        if event.contains(target, "before_flush", self._before_flush):
            event.remove(target, "before_flush", self._before_flush)

    # -------------------------------------------------------------------------
    # Firing
    # -------------------------------------------------------------------------

    def handle(
        self,
        db: Session,
        mutation: EntityMutation,
        *,
        flush: bool = True,
    ) -> EntityNote | None:
        """
        Write the system note for a mutation, if a trigger is bound.

        No note when old and new values are equal. Any failure propagates
        so the caller's unit of work rolls back with the mutation.
        """
        trigger = self._triggers.get((mutation.entity_type, mutation.field))
        if trigger is None:
            return None
        if mutation.old_value == mutation.new_value:
            return None

        note = note_service.create_system_note(
            db,
            mutation.entity_type,
            mutation.entity_id,
            trigger.render(mutation),
            author_id=mutation.actor_id,
            is_internal=trigger.is_internal,
            flush=flush,
        )
        logger.info(
            "System note emitted",
            extra=build_log_context(
                user_id=str(mutation.actor_id) if mutation.actor_id else None,
                entity_type=mutation.entity_type,
                entity_id=mutation.entity_id,
            ),
        )
        return note

    def _collect_mutations(self, session: Session) -> list[EntityMutation]:
        actor_id = session.info.get(ACTOR_INFO_KEY)
        mutations: list[EntityMutation] = []
        for obj in list(session.dirty):
            for watched in self._watched:
                if not isinstance(obj, watched.model):
                    continue
                history = inspect(obj).attrs[watched.field].history
                if not history.has_changes():
                    continue
                mutations.append(
                    EntityMutation(
                        entity_type=watched.entity_type,
                        entity_id=str(getattr(obj, watched.id_attr)),
                        field=watched.field,
                        old_value=history.deleted[0] if history.deleted else None,
                        new_value=history.added[0] if history.added else None,
                        actor_id=actor_id,
                    )
                )
        return mutations

    def _before_flush(self, session: Session, flush_context: Any, instances: Any) -> None:
        # Already flushing: notes are added and go out with this flush
        for mutation in self._collect_mutations(session):
            self.handle(session, mutation, flush=False)


producer = SystemNoteProducer()


@contextmanager
def mutation_scope(db: Session, *, actor_id: UUID | None = None) -> Iterator[Session]:
    """
    Unit of work for a parent-entity mutation and the system notes it triggers.

    Commits on success. On any failure, including a failed system note,
    rolls back and re-raises.
    """
    previous = db.info.get(ACTOR_INFO_KEY)
    if actor_id is not None:
        db.info[ACTOR_INFO_KEY] = actor_id
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        if previous is None:
            db.info.pop(ACTOR_INFO_KEY, None)
        else:
            db.info[ACTOR_INFO_KEY] = previous
