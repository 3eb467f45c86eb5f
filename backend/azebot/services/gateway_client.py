"""
Payment Gateway Client

HTTPS access to the external payment processor: checkout session creation
and transaction status queries. No retries happen here; transport trouble
surfaces as GatewayUnavailableError and the caller decides when to retry.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from ..exceptions import GatewayRejectedError, GatewayUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    """Gateway acknowledgement of a checkout session."""
    url: str
    reference: Optional[str] = None


class PaymentGateway(Protocol):
    """Operations the payment subsystem needs from a gateway."""

    async def create_checkout_session(
        self,
        transaction_id: str,
        amount: int,
        currency: str,
        description: str,
        customer: Dict[str, str],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, Any]
    ) -> CheckoutSession:
        ...

    async def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        ...


class GatewayClient:
    """
    httpx-based client for the payment processor REST API.

    Args:
        base_url: Gateway API root, e.g. https://api.gateway.example.com/v1
        api_key: Secret key sent as a bearer token
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_checkout_session(
        self,
        transaction_id: str,
        amount: int,
        currency: str,
        description: str,
        customer: Dict[str, str],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, Any]
    ) -> CheckoutSession:
        """
        Ask the gateway for a hosted checkout page.

        Raises:
            GatewayUnavailableError: network failure, timeout or 5xx
            GatewayRejectedError: gateway answered 4xx
        """
        payload = {
            "transaction_id": transaction_id,
            "amount": amount,
            "currency": currency,
            "description": description,
            "customer": customer,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        resp = await self._request("POST", "/checkout/sessions", json=payload)
        if resp.status_code >= 400:
            raise GatewayRejectedError(
                f"Gateway refused checkout session ({resp.status_code})",
                {"transaction_id": transaction_id, "status_code": resp.status_code}
            )

        data = resp.json()
        url = data.get("url") or data.get("checkout_url")
        if not url:
            raise GatewayRejectedError(
                "Gateway response did not include a checkout URL",
                {"transaction_id": transaction_id}
            )
        return CheckoutSession(url=url, reference=data.get("reference") or data.get("id"))

    async def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        Query the gateway's record of a transaction.

        Returns:
            Raw status payload, or None when the gateway has no record (404)

        Raises:
            GatewayUnavailableError: network failure, timeout or non-404 error status
        """
        resp = await self._request("GET", f"/transactions/{transaction_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise GatewayUnavailableError(
                f"Gateway status query failed ({resp.status_code})",
                {"transaction_id": transaction_id, "status_code": resp.status_code}
            )
        return resp.json()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Gateway timeout on {method} {path}: {e}")
            raise GatewayUnavailableError(
                "Payment gateway timed out", {"path": path}
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"Gateway unreachable on {method} {path}: {e}")
            raise GatewayUnavailableError(
                "Payment gateway unreachable", {"path": path}
            ) from e

        if resp.status_code >= 500:
            logger.warning(f"Gateway error {resp.status_code} on {method} {path}")
            raise GatewayUnavailableError(
                f"Payment gateway error ({resp.status_code})",
                {"path": path, "status_code": resp.status_code}
            )
        return resp
