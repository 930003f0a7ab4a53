"""Authentication utilities."""
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException
import logging

from storefront.config import API_TOKENS
from storefront.monitoring import auth_failures_counter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _resolve(authorization: str) -> Principal:
    # Extract token (Bearer <token>)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    identity = API_TOKENS.get(token)
    if identity is None:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail="Invalid token")

    return Principal(user_id=identity["user_id"], role=identity.get("role", "user"))


def verify_token(authorization: Optional[str] = Header(None)) -> Principal:
    """
    Verify authentication token.

    Args:
        authorization: Authorization header value

    Returns:
        The authenticated principal

    Raises:
        HTTPException: If token is invalid or missing
    """
    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Missing authorization header")

    principal = _resolve(authorization)
    logger.debug("Authentication successful", extra={"user_id": principal.user_id})
    return principal


def optional_principal(authorization: Optional[str] = Header(None)) -> Optional[Principal]:
    """Principal for guest-capable endpoints; None when no header is sent."""
    if authorization is None:
        return None
    return _resolve(authorization)


def require_admin(principal: Principal = Depends(verify_token)) -> Principal:
    if not principal.is_admin:
        auth_failures_counter.add(1, {"reason": "forbidden"})
        logger.warning("Admin access denied", extra={"user_id": principal.user_id})
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


def get_cart_owner(
    principal: Optional[Principal] = Depends(optional_principal),
    x_session_id: Optional[str] = Header(None)
) -> str:
    """
    Cart owner id: the user for authenticated callers, the session otherwise.

    Raises:
        HTTPException: If the caller is neither authenticated nor sends a session id
    """
    if principal is not None:
        return principal.user_id
    if x_session_id and x_session_id.strip():
        return f"session:{x_session_id.strip()}"
    raise HTTPException(status_code=401, detail="Authentication or X-Session-Id header required")
