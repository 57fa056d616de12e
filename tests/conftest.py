"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- Users with roles, and notes-enabled entity types
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Integer, String, create_engine
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from entity_notes.core.deps import COOKIE_NAME, get_db
from entity_notes.core.permissions import ROLE_EDITOR, ROLE_USER
from entity_notes.core.security import create_session_token
from entity_notes.db.base import Base
from entity_notes.db.models import User, UserRole
from entity_notes.main import app
from entity_notes.schemas.auth import UserSession
from entity_notes.services import note_config_service


class Issue(Base):
    """Parent entity used to exercise system notes."""
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str | None] = mapped_column(String(50))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine) -> Generator[Session, None, None]:
    """Database session on an empty schema; commit() is real."""
    session = sessionmaker(bind=db_engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def issue_model():
    return Issue


# =============================================================================
# Users & Sessions
# =============================================================================

def make_user(
    db: Session,
    *,
    roles: list[str],
    display_name: str = "Test User",
    full_name: str | None = None,
    is_admin: bool = False,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"test-{uuid.uuid4().hex[:8]}@test.com",
        display_name=display_name,
        full_name=full_name,
        is_admin=is_admin,
    )
    user.roles = [UserRole(role=role) for role in roles]
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def session_for(user: User) -> UserSession:
    return UserSession(
        user_id=user.id,
        display_name=user.author_label,
        roles=user.role_names,
        is_admin=user.is_admin,
    )


@pytest.fixture(scope="function")
def user_factory(db: Session):
    def _make(**kwargs) -> User:
        return make_user(db, **kwargs)
    return _make


@pytest.fixture(scope="function")
def session_factory():
    return session_for


@pytest.fixture(scope="function")
def editor(db: Session) -> User:
    return make_user(db, roles=[ROLE_EDITOR], display_name="ed", full_name="Eddie Editor")


@pytest.fixture(scope="function")
def reader(db: Session) -> User:
    return make_user(db, roles=[ROLE_USER], display_name="reader")


@pytest.fixture(scope="function")
def admin(db: Session) -> User:
    return make_user(db, roles=[], display_name="admin", is_admin=True)


@pytest.fixture(scope="function")
def editor_session(editor: User) -> UserSession:
    return session_for(editor)


@pytest.fixture(scope="function")
def reader_session(reader: User) -> UserSession:
    return session_for(reader)


@pytest.fixture(scope="function")
def admin_session(admin: User) -> UserSession:
    return session_for(admin)


@pytest.fixture(scope="function")
def issues_enabled(db: Session) -> str:
    """Enable notes on 'issues' (seeds default grants)."""
    note_config_service.enable_entity_notes(db, "issues")
    db.commit()
    return "issues"


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(editor: User) -> TestAuth:
    """Create JWT token for the editor."""
    token = create_session_token(user_id=editor.id, token_version=editor.token_version)
    return TestAuth(user=editor, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
