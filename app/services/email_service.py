"""Transactional email via Resend"""
import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

RESEND_API_URL = "https://api.resend.com/emails"

# Rate limiting settings for Resend API
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2  # seconds


async def send_email(
    to: List[str],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
    retry_count: int = 0
) -> Dict:
    """
    Send email via Resend with retry logic for rate limits.
    Returns dict with success status and optional error.
    """
    if not settings.resend_api_key:
        return {"success": False, "error": "Email provider is not configured"}

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "from": from_address or settings.email_from,
                    "to": to,
                    "subject": subject,
                    "html": html_content
                }
            )

        if response.status_code == 200:
            return {"success": True, "id": response.json().get("id")}

        # Handle rate limiting (429 Too Many Requests)
        if response.status_code == 429 and retry_count < MAX_RETRIES:
            backoff_time = RETRY_BACKOFF_BASE * (2 ** retry_count)
            logger.warning(f"Rate limited by Resend, retrying in {backoff_time}s (attempt {retry_count + 1}/{MAX_RETRIES})")
            await asyncio.sleep(backoff_time)
            return await send_email(to, subject, html_content, from_address, retry_count + 1)

        error_msg = f"Failed to send email: {response.status_code} - {response.text}"
        logger.error(error_msg)
        return {"success": False, "error": error_msg}

    except Exception as e:
        logger.error(f"Email error: {e}")
        return {"success": False, "error": str(e)}
