# backend/mixlab/auth.py
"""
Bearer credential handling.

Account management lives outside this service; it only verifies access
tokens signed with the shared secret. Claims carry the account id in ``id``
(or ``sub``) and an optional ``role``.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt import PyJWTError

from .core.config import settings
from .core.exceptions import ForbiddenException, UnauthorizedException

logger = logging.getLogger(__name__)

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

ADMIN_ROLE = "admin"


def decode_access_token(token: str) -> Dict[str, Any]:
    payload_raw = jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.jwt_algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def verify_credential_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None when the token is missing or invalid."""
    if not token:
        return None
    try:
        return decode_access_token(token)
    except PyJWTError as e:
        logger.info(f"Ignoring invalid credential: {str(e)}")
        return None


def account_id_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    account_id = claims.get("id") or claims.get("sub")
    return str(account_id) if account_id is not None else None


def verify_credential(token: Optional[str]) -> Optional[str]:
    """Resolve a bearer token to an account id; None for missing or invalid tokens."""
    claims = verify_credential_claims(token)
    if claims is None:
        return None
    return account_id_from_claims(claims)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Tokens are normally issued by the account service; this is used by local
    tooling and tests.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode.update({"exp": expire})
    return cast(
        str,
        jwt.encode(
            to_encode, settings.secret_key.get_secret_value(), algorithm=settings.jwt_algorithm
        ),
    )


async def get_optional_credential(token: Optional[str] = Depends(oauth2_scheme_optional)) -> Optional[str]:
    """Raw bearer token if one was sent; verification happens in the booking flow."""
    return token


async def require_admin(token: Optional[str] = Depends(oauth2_scheme_optional)) -> Dict[str, Any]:
    """
    Dependency for admin routes.

    Raises:
        UnauthorizedException: No token or an invalid token
        ForbiddenException: Valid token without the admin role
    """
    if not token:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    claims = verify_credential_claims(token)
    if claims is None:
        raise UnauthorizedException("Could not validate credentials", code="INVALID_CREDENTIALS")
    if claims.get("role") != ADMIN_ROLE:
        raise ForbiddenException("Admin access required", code="ADMIN_REQUIRED")
    return claims
