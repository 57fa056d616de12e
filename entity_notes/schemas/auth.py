"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from entity_notes.core.permissions import ROLE_ANONYMOUS


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    token_version: int


class UserSession(BaseModel):
    """
    Acting user for a request.

    Returned by the get_current_session dependency and passed to every
    notes service call. An anonymous actor has no user_id.
    """
    user_id: UUID | None = None
    display_name: str = "Anonymous"
    roles: list[str] = Field(default_factory=list)
    is_admin: bool = False  # Administrative bypass

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @classmethod
    def anonymous(cls) -> "UserSession":
        return cls(roles=[ROLE_ANONYMOUS])
