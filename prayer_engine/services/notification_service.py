"""
Notification Service: delivery of composed emails.

This module is responsible for:
1. Handing OutboundEmail messages to the configured email channel
2. Logging every failure without ever raising into moderation or job code
3. Delivering batches in order once the producing transaction has committed
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import httpx

from ..core.config import Settings
from .email_messages import OutboundEmail
from .errors import NotificationDispatchError


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class EmailConfig:
    """Email delivery configuration."""
    api_url: str = ""
    api_key: str = ""
    from_name: str = "Prayer Team"
    reply_to: str | None = None
    timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailConfig":
        return cls(
            api_url=settings.email_api_url or "",
            api_key=settings.email_api_key or "",
            from_name=settings.email_from_name,
            reply_to=settings.email_reply_to,
            timeout_seconds=settings.email_timeout_seconds,
        )


@dataclass
class DispatchResult:
    """Outcome reported by the dispatch service."""
    success: bool
    error: str | None = None
    recipients: int = 0


# =============================================================================
# EMAIL CHANNELS
# =============================================================================


class EmailChannel(ABC):
    """Abstract base for email delivery channels."""

    @abstractmethod
    async def send(self, email: OutboundEmail) -> DispatchResult:
        """Send one email to all of its recipients."""
        pass


class HttpEmailChannel(EmailChannel):
    """Posts emails as JSON to an HTTP email-sending endpoint."""

    def __init__(self, config: EmailConfig, client: httpx.AsyncClient | None = None):
        if not config.api_url:
            raise ValueError("HttpEmailChannel requires an api_url")
        self._config = config
        self._client = client

    def _payload(self, email: OutboundEmail) -> dict:
        return {
            "to": email.recipients,
            "subject": email.subject,
            "textBody": email.text_body,
            "htmlBody": email.html_body,
            "replyTo": email.reply_to or self._config.reply_to,
            "fromName": self._config.from_name,
        }

    async def send(self, email: OutboundEmail) -> DispatchResult:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._config.api_url,
                    json=self._payload(email),
                    headers=headers,
                    timeout=self._config.timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                    response = await client.post(
                        self._config.api_url,
                        json=self._payload(email),
                        headers=headers,
                    )
        except httpx.HTTPError as e:
            return DispatchResult(success=False, error=f"Email request failed: {e}")

        if response.status_code >= 400:
            return DispatchResult(
                success=False,
                error=f"Email service returned {response.status_code}: {response.text[:200]}",
            )

        return DispatchResult(success=True, recipients=len(email.recipients))


class LoggingEmailChannel(EmailChannel):
    """Logs emails instead of sending them. Used when no endpoint is configured."""

    async def send(self, email: OutboundEmail) -> DispatchResult:
        logger.info(
            f"[EMAIL] To: {', '.join(email.recipients)}, Subject: {email.subject}"
        )
        return DispatchResult(success=True, recipients=len(email.recipients))


def build_email_channel(settings: Settings) -> EmailChannel:
    """HTTP channel when EMAIL_API_URL is set, logging channel otherwise."""
    if settings.email_enabled:
        return HttpEmailChannel(EmailConfig.from_settings(settings))
    logger.warning("EMAIL_API_URL not configured; emails will only be logged")
    return LoggingEmailChannel()


# =============================================================================
# DISPATCHER
# =============================================================================


class NotificationDispatcher:
    """
    Delivers emails through a channel and swallows every failure into the log.

    Nothing here raises: moderation decisions and scheduled jobs are already
    committed by the time dispatch runs, and delivery problems must not
    surface to submitters or undo state.
    """

    def __init__(self, channel: EmailChannel):
        self._channel = channel

    @property
    def channel(self) -> EmailChannel:
        return self._channel

    async def deliver(self, email: OutboundEmail) -> DispatchResult:
        """Send one email. Failures are logged and returned, never raised."""
        if not email.recipients:
            logger.debug(f"No recipients for '{email.subject}'; skipping")
            return DispatchResult(success=True, recipients=0)

        try:
            result = await self._channel.send(email)
            if not result.success:
                raise NotificationDispatchError(result.error or "unknown dispatch failure")
        except NotificationDispatchError as e:
            logger.error(f"Failed to send '{email.subject}': {e}")
            return DispatchResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error sending '{email.subject}': {e}")
            return DispatchResult(success=False, error=str(e))

        logger.info(f"Sent '{email.subject}' to {result.recipients} recipient(s)")
        return result

    async def deliver_all(self, emails: Iterable[OutboundEmail | None]) -> list[DispatchResult]:
        """Send several emails one after another; None entries are ignored."""
        results = []
        for email in emails:
            if email is None:
                continue
            results.append(await self.deliver(email))
        return results
