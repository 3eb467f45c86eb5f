"""
Reconcile API Client

Calls POST /api/reconcile on a running server. Used by pages and tools
that poll for confirmation from outside the server process, e.g. as the
reconcile function of a ConfirmationPoller.
"""
import logging
from typing import Optional

import httpx

from ..models.payments import ReconcileResult

logger = logging.getLogger(__name__)


class ReconcileApiClient:
    """
    Args:
        base_url: Server origin, e.g. http://localhost:8000
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def reconcile(self, article_id: str, user_id: str) -> ReconcileResult:
        """
        Raises:
            httpx.HTTPError: transport failure or non-2xx answer; pollers
                count this as an unknown attempt
        """
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post(
                "/api/reconcile",
                json={"articleId": article_id, "userId": user_id},
            )
            resp.raise_for_status()
            return ReconcileResult(**resp.json())

    __call__ = reconcile
