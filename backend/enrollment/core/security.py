"""
Admin authentication: a shared secret sent in the X-Admin-Key header.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from enrollment.core.config import get_settings
from enrollment.core.logging import get_logger

logger = get_logger(__name__)


def verify_admin_key(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison. An unset secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def require_admin(x_admin_key: Optional[str] = Header(default=None)) -> None:
    settings = get_settings()
    if not verify_admin_key(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("admin_auth_failed", key_present=x_admin_key is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )
