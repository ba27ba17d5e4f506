"""
Reminder Email Service

Sends subscription reminders through Resend. The Resend SDK is blocking,
so each send runs in a worker thread bounded by the request timeout.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

import resend

from app.infrastructure.exceptions import ConfigurationError, NotificationError
from app.infrastructure.notifications.templates import (
    reminder_subject,
    render_reminder_email,
)


logger = logging.getLogger(__name__)


class ReminderEmailService:
    """Transactional email sender for expiration reminders."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str,
        app_url: str,
        timeout_seconds: float = 15.0,
    ):
        self._api_key = api_key
        self._from_address = from_address
        self._manage_url = f"{app_url.rstrip('/')}/planos"
        self._timeout = timeout_seconds

        if api_key:
            resend.api_key = api_key

    async def send_reminder_email(
        self,
        tenant_id: str,
        email: str,
        name: str,
        days_remaining: int,
        next_billing_date: datetime,
    ) -> dict:
        """
        Send one reminder.

        Returns:
            {"id": <provider message id>}

        Raises:
            ConfigurationError: RESEND_API_KEY is not set
            NotificationError: provider failed or timed out
        """
        if not self._api_key:
            raise ConfigurationError(
                "Email service not configured",
                missing_keys=["RESEND_API_KEY"],
            )

        params = {
            "from": self._from_address,
            "to": [email],
            "subject": reminder_subject(days_remaining),
            "html": render_reminder_email(
                name=name,
                days_remaining=days_remaining,
                next_billing_date=next_billing_date,
                manage_url=self._manage_url,
            ),
        }

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(resend.Emails.send, params),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise NotificationError(
                f"Timed out after {self._timeout}s sending reminder",
                provider="resend",
                recipient=email,
                original_error=e,
            ) from e
        except Exception as e:
            raise NotificationError(
                f"Failed to send email: {e}",
                provider="resend",
                recipient=email,
                original_error=e,
            ) from e

        email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Reminder email {email_id} sent to tenant {tenant_id}")
        return {"id": email_id}
