"""SQLAlchemy ORM models for users, notes configuration, grants, and notes."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, ForeignKey, Index, Integer, String,
    Text, UniqueConstraint, Uuid, func, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entity_notes.db.base import Base
from entity_notes.db.enums import DEFAULT_NOTE_TYPE, NoteType


# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Users (externally owned, read-only here)
# =============================================================================

class User(Base):
    """
    An actor that can author notes.

    Owned by the identity subsystem; this service only reads it for
    session resolution and author display.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    # Administrative bypass: satisfies every notes permission check
    is_admin: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    token_version: Mapped[int] = mapped_column(
        Integer, default=1, server_default=text("1"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    roles: Mapped[list["UserRole"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(r.role for r in self.roles)

    @property
    def author_label(self) -> str:
        return self.full_name or self.display_name


class UserRole(Base):
    """Role membership of a user (e.g. 'user', 'editor')."""
    __tablename__ = "user_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(50), primary_key=True)

    user: Mapped[User] = relationship(back_populates="roles")


# =============================================================================
# Notes configuration & permissions
# =============================================================================

class EntityNotesConfig(Base):
    """
    Per entity type notes switch.

    entity_type is a name from the entity registry, not a foreign key.
    """
    __tablename__ = "entity_notes_configs"

    entity_type: Mapped[str] = mapped_column(String(63), primary_key=True)
    enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


class NotesPermissionGrant(Base):
    """
    Grant of a notes action on '{entity_type}:notes' to a role.

    Independent of whatever permission model governs the parent entity.
    """
    __tablename__ = "notes_permission_grants"
    __table_args__ = (
        UniqueConstraint("resource", "action", "role", name="uq_notes_grant"),
        Index("idx_notes_grants_lookup", "resource", "action"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)  # 'issues:notes'
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # 'read' | 'create'
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Notes
# =============================================================================

class EntityNote(Base):
    """
    Polymorphic notes for any entity type.

    Uses entity_type + entity_id instead of a foreign key per parent, so the
    parent may live in any table and may be deleted without touching its notes.
    author_id carries no FK constraint: notes outlive their author record.
    """
    __tablename__ = "entity_notes"
    __table_args__ = (
        CheckConstraint("trim(content) != ''", name="content_not_empty"),
        CheckConstraint(
            f"note_type IN ('{NoteType.HUMAN.value}', '{NoteType.SYSTEM.value}')",
            name="valid_note_type",
        ),
        Index("idx_entity_notes_entity", "entity_type", "entity_id"),
        Index("idx_entity_notes_author", "author_id"),
        Index("idx_entity_notes_created", "created_at"),
        Index(
            "idx_entity_notes_active",
            "entity_type",
            "entity_id",
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Polymorphic reference
    entity_type: Mapped[str] = mapped_column(String(63), nullable=False)  # 'issues', 'reservations'
    entity_id: Mapped[str] = mapped_column(Text, nullable=False)  # PK of parent as text

    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)  # Restricted markup, never HTML
    note_type: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_NOTE_TYPE.value,
        server_default=text(f"'{DEFAULT_NOTE_TYPE.value}'"),
        nullable=False,
    )
    is_internal: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column()

    author: Mapped[User | None] = relationship(
        primaryjoin="foreign(EntityNote.author_id) == User.id",
        viewonly=True,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def author_name(self) -> str:
        return self.author.author_label if self.author else "System"
