"""
Notifier

Outbound transactional notifications (renewal reminders, trial endings,
refresh nudges). Delivery is best effort: notify() reports success as a
bool and never raises into billing code.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from directory_billing.config.settings import get_settings
from directory_billing.infrastructure.exceptions import NotificationFailedError


logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Sends a templated message to an account."""

    async def notify(self, account_id: str, template_id: str, data: dict[str, Any]) -> bool:
        """
        Send a notification.

        Returns:
            True if the message was accepted for delivery
        """
        try:
            await self.send(account_id, template_id, data)
        except NotificationFailedError as e:
            logger.warning(
                f"Notification {template_id} to {account_id} failed: {e.message}"
            )
            return False
        return True

    @abstractmethod
    async def send(self, account_id: str, template_id: str, data: dict[str, Any]) -> None:
        """Deliver one message. Raises NotificationFailedError on failure."""


class LoggingNotifier(Notifier):
    """Development notifier: records the message in the log only."""

    async def send(self, account_id: str, template_id: str, data: dict[str, Any]) -> None:
        logger.info(f"[NOTIFY] {template_id} -> {account_id}: {data}")


class HttpNotifier(Notifier):
    """Posts notifications to the transactional email service."""

    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout

    async def send(self, account_id: str, template_id: str, data: dict[str, Any]) -> None:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json={
                        "account_id": account_id,
                        "template_id": template_id,
                        "data": data,
                    },
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationFailedError(
                f"HTTP {e.response.status_code} from notification service",
                template_id=template_id,
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise NotificationFailedError(
                f"Notification service unreachable: {e}",
                template_id=template_id,
                original_error=e,
            )

        logger.info(f"Sent {template_id} notification to account {account_id}")


# =============================================================================
# Singleton Instance
# =============================================================================

_notifier_instance: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Get or create the configured notifier."""
    global _notifier_instance

    if _notifier_instance is None:
        settings = get_settings()
        if settings.notifier_backend == "http":
            _notifier_instance = HttpNotifier(
                settings.notifier_url,
                api_key=settings.notifier_api_key,
                timeout=settings.notifier_timeout_seconds,
            )
        else:
            _notifier_instance = LoggingNotifier()

    return _notifier_instance
