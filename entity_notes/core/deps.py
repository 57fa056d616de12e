"""FastAPI dependencies for authentication and database access."""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from entity_notes.core.errors import UnauthenticatedError
from entity_notes.core.security import decode_session_token
from entity_notes.db.models import User
from entity_notes.db.session import SessionLocal
from entity_notes.schemas.auth import TokenPayload, UserSession


# Cookie and header names
COOKIE_NAME = "notes_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _load_user(token: str, db: Session) -> User:
    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise UnauthenticatedError("Invalid session")

    user = db.get(User, payload.sub)
    if not user:
        raise UnauthenticatedError("User not found")
    if not user.is_active:
        raise UnauthenticatedError("Account disabled")
    # Token version check (revocation support)
    if user.token_version != payload.token_version:
        raise UnauthenticatedError("Session revoked")
    return user


def _session_for(user: User) -> UserSession:
    return UserSession(
        user_id=user.id,
        display_name=user.author_label or user.email,
        roles=user.role_names,
        is_admin=user.is_admin,
    )


def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
) -> UserSession:
    """
    Get the acting user from the session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        UnauthenticatedError: Authentication failed (401)
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise UnauthenticatedError()
    return _session_for(_load_user(token, db))


def get_optional_session(
    request: Request,
    db: Session = Depends(get_db),
) -> UserSession:
    """Like get_current_session, but resolves to the anonymous actor without a cookie."""
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return UserSession.anonymous()
    return _session_for(_load_user(token, db))


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
