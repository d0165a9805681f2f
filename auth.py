"""
Authentication dependencies
"""

import logging
from typing import Optional
from fastapi import Header, HTTPException

from auth_utils import email_from_token

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1).strip() or None
    return None


async def get_current_user_email(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """
    Dependency for protected routes.

    Verifies the bearer identity token and returns its email claim.
    Raises 401 if the header is missing, the token is invalid or expired,
    or the token carries no email.
    """
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    try:
        email = email_from_token(token)
    except ValueError as e:
        # Verification is impossible without a configured secret
        logger.error(f"Cannot verify identity token: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized access")

    if not email:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return email
