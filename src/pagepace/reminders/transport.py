"""Push delivery to Web Push endpoints.

The payload is posted as JSON to the subscription endpoint. Payload
encryption and signed VAPID tokens are left to a dedicated push gateway;
the configured public key is sent so the gateway can identify the sender.
"""

import logging
from typing import Optional, Protocol

import requests

from ..db.schemas import PushSubscriptionResponse
from ..errors import TransportFailure
from .schemas import DeliveryResult, PushPayload

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 86400


class PushTransport(Protocol):
    """Delivers one payload to one push subscription."""

    def deliver(
        self, subscription: PushSubscriptionResponse, payload: PushPayload
    ) -> DeliveryResult:
        """Deliver a payload.

        Raises:
            TransportFailure: If the endpoint could not be reached or
                rejected the message.
        """
        ...


class WebPushTransport:
    """Push transport posting to subscription endpoints over HTTP."""

    def __init__(
        self,
        vapid_public_key: Optional[str] = None,
        timeout: int = 10,
        ttl: int = DEFAULT_TTL_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the transport.

        Args:
            vapid_public_key: Application server public key
            timeout: Request timeout in seconds
            ttl: Seconds the push service should keep undelivered messages
            session: HTTP session to reuse (a new one is created if omitted)
        """
        self.vapid_public_key = vapid_public_key
        self.timeout = timeout
        self.ttl = ttl
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "PagePace/1.0"})

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "TTL": str(self.ttl),
        }
        if self.vapid_public_key:
            headers["Authorization"] = f"vapid k={self.vapid_public_key}"
        return headers

    def deliver(
        self, subscription: PushSubscriptionResponse, payload: PushPayload
    ) -> DeliveryResult:
        """POST the payload to the subscription endpoint."""
        endpoint = subscription.endpoint
        try:
            response = self._session.post(
                endpoint,
                json=payload.to_wire(),
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise TransportFailure(endpoint, "request timed out")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in (404, 410):
                raise TransportFailure(endpoint, "subscription expired", status)
            raise TransportFailure(endpoint, f"HTTP error: {status}", status)
        except requests.exceptions.RequestException as e:
            raise TransportFailure(endpoint, f"request failed: {e}")

        logger.debug(f"Push to {endpoint} accepted with status {response.status_code}")
        return DeliveryResult(endpoint=endpoint, ok=True, status_code=response.status_code)
