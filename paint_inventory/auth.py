"""
Actor resolution and authorization policy.

Every mutating call carries an explicit ``Actor`` (display name + role). The
actor comes from a Bearer JWT when one is sent; otherwise from the legacy
``userName`` body field, where the shared admin name maps to the admin role.
"""
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ADMIN_DISPLAY_NAME,
    ADMIN_NAME,
    ALGORITHM,
    SECRET_KEY,
)

logger = logging.getLogger(__name__)

# Bearer tokens are optional; requests without one fall back to userName
security = HTTPBearer(auto_error=False)

UNKNOWN_ACTOR = "unknown"

# Actions only an admin may perform; shown as "Admin" when the actor is blank
ADMIN_ACTIONS = {"add", "update", "delete", "change_id", "set_next_id", "set_min_quantity"}


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class Actor(BaseModel):
    """The user on whose behalf a call is made."""
    name: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def actor_from_name(user_name: Optional[str]) -> Actor:
    """
    Resolve an actor from a display name.

    The configured admin name (or its display alias) is the admin; any other
    non-empty name is a regular user.
    """
    name = (user_name or "").strip()
    if not name:
        return Actor(name=UNKNOWN_ACTOR, role=Role.USER)
    if name == ADMIN_NAME or name == ADMIN_DISPLAY_NAME:
        return Actor(name=ADMIN_DISPLAY_NAME, role=Role.ADMIN)
    return Actor(name=name, role=Role.USER)


def create_access_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for an actor.

    Args:
        actor: Actor to encode (``sub`` is the name, ``role`` the role)
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": actor.name, "role": actor.role.value, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Actor:
    """
    Decode a JWT into an actor.

    Raises:
        HTTPException: 401 if the token is invalid or lacks claims
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        name: str = payload.get("sub")
        role: str = payload.get("role")
        if not name or role is None:
            raise credentials_exception
        return Actor(name=name, role=Role(role))
    except (JWTError, ValueError) as e:
        logger.error(f"JWT validation error: {e}")
        raise credentials_exception


def get_token_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Actor]:
    """
    FastAPI dependency returning the actor from a Bearer token, if any.

    Returns:
        Actor decoded from the token, or None when no token was sent
    """
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)


def resolve_actor(token_actor: Optional[Actor], user_name: Optional[str]) -> Actor:
    """A token wins over the legacy body ``userName``."""
    if token_actor is not None:
        return token_actor
    return actor_from_name(user_name)


def is_authorized(actor: Actor, action: str) -> bool:
    """
    Policy check for an action.

    Check-in and check-out are open to everyone; everything in
    ``ADMIN_ACTIONS`` (plus export) needs the admin role.
    """
    if action in ("check_in", "check_out"):
        return True
    return actor.is_admin


def display_name(user_name: Optional[str], action: Optional[str] = None) -> str:
    """
    Name to show for an audit entry's actor.

    The shared admin name is aliased; a blank or "unknown" actor on an
    admin-only action is shown as the admin.
    """
    name = (user_name or "").strip()
    if name == ADMIN_NAME:
        return ADMIN_DISPLAY_NAME
    if name and name.lower() != UNKNOWN_ACTOR:
        return name
    if action in ADMIN_ACTIONS:
        return ADMIN_DISPLAY_NAME
    return name or "Unknown"
