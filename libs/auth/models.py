import re
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

GUEST_TOKEN_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class AuthUser(BaseModel):
    """
    Represents an authenticated user decoded from the identity provider's JWT.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"


def is_valid_guest_token(token: Optional[str]) -> bool:
    """Guest tokens are UUID v4 strings issued by the identity service."""
    return bool(token) and bool(GUEST_TOKEN_PATTERN.match(token))


@dataclass(frozen=True)
class OwnerIdentity:
    """Owner of a cart or order: a user id or a guest session token, never both.

    A user who also presents a guest token keeps it as ``linked_session_token``.
    New carts and orders belong to the user alone; reads of existing orders
    also match the linked guest session.
    """

    user_id: Optional[str] = None
    session_token: Optional[str] = None
    linked_session_token: Optional[str] = None

    def __post_init__(self):
        if bool(self.user_id) == bool(self.session_token):
            raise ValueError(
                "OwnerIdentity needs exactly one of user_id or session_token"
            )
        if self.linked_session_token and not self.user_id:
            raise ValueError("Only a user identity can carry a linked guest session")

    @classmethod
    def for_user(
        cls, user_id: str, linked_session_token: Optional[str] = None
    ) -> "OwnerIdentity":
        return cls(user_id=user_id, linked_session_token=linked_session_token)

    @classmethod
    def for_guest(cls, session_token: str) -> "OwnerIdentity":
        return cls(session_token=session_token)

    @property
    def is_guest(self) -> bool:
        return self.session_token is not None

    def __str__(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"guest:{self.session_token[:8]}"
