"""Webhook delivery over a shared httpx client."""

import logging
from typing import Any

import httpx

from invulnerable.config import settings
from invulnerable.exceptions import DeliveryError
from invulnerable.utils.log_redaction import redact_payload, redact_url

logger = logging.getLogger(__name__)


def create_http_client(timeout: float | None = None) -> httpx.AsyncClient:
    """Create the process-wide client used for webhook delivery."""
    return httpx.AsyncClient(timeout=timeout or settings.webhook_timeout_seconds)


class WebhookClient:
    """POSTs JSON payloads to webhook URLs. No retries."""

    def __init__(self, client: httpx.AsyncClient):
        """
        Initialize the client.

        Args:
            client: Shared AsyncClient; its timeout bounds every delivery
        """
        self.client = client

    async def post(self, url: str, payload: dict[str, Any]) -> None:
        """
        Deliver a payload.

        Raises:
            DeliveryError: transport failure or a non-2xx response
        """
        safe_url = redact_url(url)
        logger.debug(f"Posting webhook to {safe_url}: {redact_payload(payload)}")
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise DeliveryError(f"webhook request to {safe_url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"webhook request to {safe_url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"webhook {safe_url} returned status {response.status_code}",
                status_code=response.status_code,
            )

        logger.info(f"Delivered webhook to {safe_url}")
