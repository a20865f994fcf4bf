"""
Auth utilities for the Seoteric API.

Validates HS256 session JWTs and extracts user_id from request context.
Falls back to X-User-Id header for internal callers and tests.
"""
from fastapi import Header, HTTPException, Request
from typing import Optional
from seoteric.core.config import settings
import jwt
import re
import logging

logger = logging.getLogger(__name__)

_ACCEPTED_USER_ID = re.compile(r"[A-Za-z0-9_@.:|-]{1,255}")


def verify_session_jwt(token: str) -> Optional[str]:
    """
    Verify a session JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id from the 'sub' claim, or None if no secret is configured

    Raises:
        HTTPException 401: Invalid or expired token
    """
    if not settings.AUTH_JWT_SECRET:
        logger.debug("No AUTH_JWT_SECRET configured, skipping JWT validation")
        return None

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return user_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Internal callers and tests"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Session JWT from Authorization header
    2. X-User-Id header
    3. Raise 401 Unauthorized

    Ids outside [A-Za-z0-9_@.:|-] are rejected with 401.

    The user row is created on first sight, stamping the account creation
    time that starter cycles anchor to.
    """
    # Deferred import: users service pulls in the database layer
    from seoteric.features.users.service import get_or_create_user

    user_id = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_session_jwt(auth_header[7:])

    if not user_id:
        user_id = x_user_id

    if not user_id:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "unauthorized",
                "message": "Missing Authorization (Bearer JWT) or X-User-Id header",
            },
        )

    if not _ACCEPTED_USER_ID.fullmatch(user_id):
        # Ids are interpolated into provider search queries
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthorized", "message": "Malformed user id"},
        )

    get_or_create_user(user_id)
    request.state.user_id = user_id
    return user_id
