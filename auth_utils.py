"""
Authentication utilities: identity token encoding and verification
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from config.settings import settings


def create_jwt(email: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Create an identity token carrying an email claim"""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    payload = {
        "sub": email,
        "email": email,
        "exp": datetime.now(timezone.utc) + expires_in
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> Optional[dict]:
    """Decode an identity token. Returns None if invalid or expired."""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot decode JWT token.")

    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def email_from_token(token: str) -> Optional[str]:
    """Return the email claim of a valid token, or None."""
    payload = decode_jwt(token)
    if not payload:
        return None
    return payload.get("email")
