"""Bearer token handling.

Tokens are issued by the external identity provider and carry the actor's
subject, role and permission map. This service only decodes them;
``create_access_token`` exists for local development and tests.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from jose import JWTError, jwt

from marketplace.core.config import get_settings
from marketplace.core.rbac import Actor, Role


def create_access_token(
    subject: str,
    role: Role,
    permissions: Optional[Mapping[str, bool]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a token in the identity provider's format."""
    settings = get_settings()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(subject),
        "role": Role(role).value,
        "permissions": {str(getattr(k, "value", k)): v for k, v in (permissions or {}).items()},
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate a token. Returns its claims, or None if invalid."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def actor_from_token(token: str) -> Optional[Actor]:
    """Build the acting principal from a bearer token, or None if unusable."""
    claims = decode_token(token)
    if claims is None:
        return None
    try:
        return Actor.from_claims(claims)
    except ValueError:
        return None
