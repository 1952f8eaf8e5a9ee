"""
Socket handshake identity.

The course application authenticates users elsewhere and hands the chat
server either a signed token or, in development, plain query parameters.
This module only turns that handshake into an Identity; it does not decide
which course rooms a user may join.

Production:
    ws://host/ws?token=<HS256 JWT with "id"/"sub", "name", "role" claims>

Development (AUTH_JWT_SECRET unset):
    ws://host/ws?user_id=u1&user_name=Ada&role=student
"""

from typing import Any, Dict, Optional

from jose import JWTError, jwt

from core.config import Settings, settings as default_settings
from core.exceptions import AuthenticationError
from core.logging import get_logger
from models.models import Identity

logger = get_logger(__name__)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Verify a handshake token and return its claims."""
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning("Rejected handshake token: %s", e)
        raise AuthenticationError("Invalid token") from e


def identity_from_claims(claims: Dict[str, Any]) -> Identity:
    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token carries no user id")
    return Identity(
        id=str(user_id),
        name=str(claims.get("name") or user_id),
        role=str(claims.get("role") or "student"),
    )


def resolve_identity(
    token: Optional[str] = None,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None,
    role: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Identity:
    """
    Build the identity for a new socket.

    Raises:
        AuthenticationError: a secret is configured and the token is
            missing or invalid, or no user id could be found
    """
    settings = settings or default_settings

    if settings.AUTH_JWT_SECRET:
        if not token:
            raise AuthenticationError("Missing token")
        return identity_from_claims(decode_token(token, settings))

    if not user_id:
        raise AuthenticationError("Missing user_id")
    return Identity(id=user_id, name=user_name or user_id, role=role or "student")


def issue_token(identity: Identity, settings: Optional[Settings] = None) -> str:
    """Sign a handshake token for an identity (used by tooling and tests)."""
    settings = settings or default_settings
    if not settings.AUTH_JWT_SECRET:
        raise AuthenticationError("AUTH_JWT_SECRET is not configured")
    claims = {"id": identity.id, "name": identity.name, "role": identity.role}
    return jwt.encode(claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)
