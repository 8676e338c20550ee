"""
Password authentication utilities for CMS access.
Uses bcrypt for secure password hashing.
"""
from typing import Optional

import bcrypt
from fastapi import Header, HTTPException, status

from transfer_cms.config import settings


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt.
    Used for generating the ADMIN_PASSWORD_HASH value.
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verify a password against a hashed password.

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        return False


def verify_admin_password(password: str) -> bool:
    """
    Verify admin password against stored hash.

    Raises:
        ValueError: If ADMIN_PASSWORD_HASH is not configured
    """
    if not settings.ADMIN_PASSWORD_HASH:
        raise ValueError("ADMIN_PASSWORD_HASH not configured")

    return verify_password(password, settings.ADMIN_PASSWORD_HASH)


def verify_cms_password(
    x_cms_password: Optional[str] = Header(None, alias="X-CMS-Password", description="CMS admin password")
) -> bool:
    """
    FastAPI dependency for CMS password authentication.

    Raises:
        HTTPException: 401 if password is invalid or missing,
            500 if no admin password is configured
    """
    if not x_cms_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Missing password", "message": "CMS access requires password authentication"}
        )

    try:
        if not verify_admin_password(x_cms_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": "Invalid password", "message": "CMS access denied"}
            )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Authentication not configured", "message": str(e)}
        )

    return True
