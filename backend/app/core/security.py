"""
Security utilities for the Manyanza backend
Admin key check and log redaction
"""
import hmac
import logging
import re
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings

logger = logging.getLogger(__name__)


# ==================== Admin Key Verification ====================

async def verify_admin_key(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")
) -> None:
    """
    Verify X-Admin-Key header matches ADMIN_API_KEY.

    Protects the pricing admin endpoints.

    Args:
        x_admin_key: Key from X-Admin-Key header

    Raises:
        HTTPException: If key is missing or invalid
    """
    if not settings.ADMIN_API_KEY:
        if settings.ENVIRONMENT == "production":
            logger.error("ADMIN_API_KEY not configured in production")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error"
            )
        logger.warning("ADMIN_API_KEY not configured - allowing access in development")
        return

    if not x_admin_key:
        logger.warning("Missing X-Admin-Key header for admin endpoint")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    if not hmac.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("Invalid X-Admin-Key header for admin endpoint")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization"
        )


# ==================== Log Redaction ====================

def redact_sensitive_data(text: str) -> str:
    """
    Redact sensitive information from logs
    Removes: emails, tokens, phone numbers
    """
    if not text:
        return text

    # Redact email addresses
    text = re.sub(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b', '[EMAIL_REDACTED]', text)

    # Twilio account SIDs
    text = re.sub(r'\bAC[0-9a-fA-F]{32}\b', '[ACCOUNT_SID_REDACTED]', text)

    # Phone numbers, keeping the last 3 digits for support lookups
    text = re.sub(
        r'\+?\d[\d\s\-]{7,14}(\d{3})\b',
        lambda m: '[PHONE_REDACTED]' + m.group(1),
        text,
    )

    return text


def safe_log_error(message: str, error: Exception):
    """Log errors with sensitive data redaction"""
    safe_message = redact_sensitive_data(message)
    safe_error = redact_sensitive_data(str(error))
    logger.error(f"{safe_message}: {safe_error}")
