from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser, OwnerIdentity, is_valid_guest_token
from libs.common.config import get_settings

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> AuthUser:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return AuthUser(**payload)
    except (JWTError, ValidationError):
        raise _credentials_exception()


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthUser:
    """
    Validate the bearer JWT and return the authenticated user.
    """
    return decode_token(token.credentials)


async def get_optional_user(
    token: Annotated[Optional[HTTPAuthorizationCredentials], Depends(optional_security)]
) -> Optional[AuthUser]:
    """Like get_current_user, but anonymous requests yield None.

    A token that is present but invalid is still rejected.
    """
    if token is None:
        return None
    return decode_token(token.credentials)


async def get_guest_token(
    x_guest_token: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Return the X-Guest-Token header if it is a well-formed guest token."""
    if x_guest_token and is_valid_guest_token(x_guest_token):
        return x_guest_token.lower()
    return None


async def get_owner_identity(
    user: Annotated[Optional[AuthUser], Depends(get_optional_user)],
    guest_token: Annotated[Optional[str], Depends(get_guest_token)],
) -> OwnerIdentity:
    """Resolve who owns the cart/order for this request.

    An authenticated user wins over a guest token sent alongside it. The guest
    token is kept as a linked session so orders placed before login stay
    readable.
    """
    if user:
        return OwnerIdentity.for_user(user.user_id, linked_session_token=guest_token)
    if guest_token:
        return OwnerIdentity.for_guest(guest_token)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Provide a bearer token or X-Guest-Token header.",
    )


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """
    Ensure the caller carries the service role.
    """
    if current_user.role != "service_role":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
