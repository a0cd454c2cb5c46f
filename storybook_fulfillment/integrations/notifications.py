"""
Transactional email through the hosted send-email function.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import requests

from storybook_fulfillment.common.http import build_session

logger = logging.getLogger(__name__)

EBOOK_DELIVERY_TEMPLATE = "ebook_delivery"
BOOK_SHIPPED_TEMPLATE = "book_shipped"


class Notifier(Protocol):
    def send_delivery_email(
        self,
        recipient: str,
        template_key: str,
        variables: Mapping[str, Any],
    ) -> bool: ...


class EmailFunctionNotifier:
    """
    Fire-and-forget sender: failures are logged and reported as ``False``,
    never raised, so a finished order is not rolled back by a mail outage.
    """

    def __init__(
        self,
        *,
        endpoint: str | None,
        service_role_key: str | None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint
        self._key = service_role_key
        self._timeout = timeout
        self._session = session or build_session(retries=1)

    def send_delivery_email(
        self,
        recipient: str,
        template_key: str,
        variables: Mapping[str, Any],
    ) -> bool:
        if not self.endpoint:
            logger.warning("No notification endpoint configured; skipping %s email", template_key)
            return False

        headers = {"Content-Type": "application/json"}
        if self._key:
            headers["Authorization"] = f"Bearer {self._key}"
        try:
            response = self._session.post(
                self.endpoint,
                json={
                    "template_key": template_key,
                    "recipient_email": recipient,
                    "variables": dict(variables),
                },
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException:
            logger.warning(
                "Delivery email failed",
                exc_info=True,
                extra={"template_key": template_key},
            )
            return False
        return True


class LoggingNotifier:
    """Used when no email backend is configured."""

    def send_delivery_email(
        self,
        recipient: str,
        template_key: str,
        variables: Mapping[str, Any],
    ) -> bool:
        logger.info("Email %s for %s: %s", template_key, recipient, dict(variables))
        return True
