"""Email client wrapper for the Postmark HTTP API.

Usage:
    from agentkyc_core.infrastructure.email import EmailClient

    client = EmailClient.from_settings(get_settings())
    client.send("owner@example.com", "Verify your agent", "<p>...</p>")

Sends are not retried here. Callers decide whether a failed send blocks the
state change that was about to follow it.
"""

import re
from typing import Any, Optional

import httpx

from agentkyc_core.config import Settings


# =============================================================================
# EXCEPTIONS
# =============================================================================


class EmailError(Exception):
    """Raised when an email could not be handed to the delivery service."""

    pass


# =============================================================================
# CLIENT
# =============================================================================

_TAG_RE = re.compile(r"<[^>]*>")


class EmailClient:
    """Client for sending transactional email via Postmark."""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        api_url: str = "https://api.postmarkapp.com/email",
        timeout: int = 15,
    ):
        """Initialize the email client.

        Args:
            api_key: Postmark server token. Sending fails when unset.
            from_email: Sender address, e.g. "AgentKYC <hello@agentkyc.io>".
            api_url: Postmark email endpoint.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailClient":
        return cls(
            api_key=settings.postmark_api_key,
            from_email=settings.from_email,
            api_url=settings.postmark_api_url,
        )

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> dict[str, Any]:
        """Send one email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.
            text: Plain-text body. Derived from ``html`` when omitted.

        Returns:
            Delivery response from Postmark.

        Raises:
            EmailError: If the client is not configured or the send fails.
        """
        if not self.api_key:
            raise EmailError("POSTMARK_API_KEY not configured")

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    self.api_url,
                    headers={
                        "X-Postmark-Server-Token": self.api_key,
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                    },
                    json={
                        "From": self.from_email,
                        "To": to,
                        "Subject": subject,
                        "HtmlBody": html,
                        "TextBody": text or _TAG_RE.sub("", html),
                    },
                )
        except httpx.TimeoutException as e:
            raise EmailError(f"Request timeout: {e}")
        except httpx.HTTPError as e:
            raise EmailError(f"Connection error: {e}")

        if response.status_code != 200:
            try:
                detail = response.json().get("Message", "Unknown error")
            except ValueError:
                detail = response.text or "Unknown error"
            raise EmailError(f"Failed to send email: {detail}")

        body = response.json()
        if body.get("ErrorCode", 0) != 0:
            raise EmailError(f"Failed to send email: {body.get('Message', 'Unknown error')}")
        return body
