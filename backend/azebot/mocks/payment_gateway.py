"""
Mock Payment Gateway

Simulates a redirect-based card / mobile money processor for demo mode
and tests. Implements the same interface as services.gateway_client.

Mock Behavior:
- Checkout sessions are kept in memory, status "pending" until settled
- settle() forces a final status (tests, admin tooling)
- auto_approve_after=N approves a session on its Nth status query (demo mode)
- Payment mode is derived from a deterministic hash of the transaction ID
- unavailable=True makes every call raise GatewayUnavailableError
"""
import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..exceptions import GatewayUnavailableError
from ..services.gateway_client import CheckoutSession

logger = logging.getLogger(__name__)

CHECKOUT_BASE_URL = "https://checkout.mock-gateway.local/pay"
PAYMENT_MODES = ("mobile_money", "card")


def _mode_for(transaction_id: str) -> str:
    hash_value = int(hashlib.sha256(transaction_id.encode()).hexdigest()[:8], 16)
    return PAYMENT_MODES[hash_value % len(PAYMENT_MODES)]


class MockPaymentGateway:
    """
    In-process stand-in for the external gateway.

    Args:
        auto_approve_after: Approve a pending session on this status query
            (None disables auto approval)
    """

    def __init__(self, auto_approve_after: Optional[int] = None):
        self.auto_approve_after = auto_approve_after
        self.unavailable = False
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.create_calls = 0
        self.status_calls = 0

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
        self.create_calls += 1
        if self.unavailable:
            raise GatewayUnavailableError("Mock gateway offline", {"transaction_id": transaction_id})

        reference = f"gw_{hashlib.sha256(transaction_id.encode()).hexdigest()[:12]}"
        self.sessions[transaction_id] = {
            "status": "pending",
            "amount": amount,
            "currency": currency,
            "mode": None,
            "metadata": dict(metadata),
            "reference": reference,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "queries": 0,
            "created_at": datetime.utcnow().isoformat(),
        }
        logger.debug(f"Mock checkout session for {transaction_id}: {reference}")
        return CheckoutSession(url=f"{CHECKOUT_BASE_URL}/{reference}", reference=reference)

    async def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        self.status_calls += 1
        if self.unavailable:
            raise GatewayUnavailableError("Mock gateway offline", {"transaction_id": transaction_id})

        session = self.sessions.get(transaction_id)
        if session is None:
            return None

        session["queries"] += 1
        if (
            session["status"] == "pending"
            and self.auto_approve_after is not None
            and session["queries"] >= self.auto_approve_after
        ):
            self.settle(transaction_id, "approved")

        return {
            "status": session["status"],
            "amount": session["amount"],
            "mode": session["mode"],
            "metadata": session["metadata"],
        }

    def settle(
        self,
        transaction_id: str,
        status: str,
        mode: Optional[str] = None,
        amount: Optional[int] = None
    ) -> None:
        """
        Force the gateway-side outcome of a session.

        Creates the session record if the transaction was never seen, which
        lets tests model a gateway that knows about a payment the local
        initiator did not register.
        """
        session = self.sessions.setdefault(transaction_id, {
            "status": "pending",
            "amount": amount or 0,
            "currency": "XOF",
            "mode": None,
            "metadata": {},
            "reference": None,
            "queries": 0,
        })
        session["status"] = status
        if amount is not None:
            session["amount"] = amount
        if status == "approved":
            session["mode"] = mode or session["mode"] or _mode_for(transaction_id)
        elif mode is not None:
            session["mode"] = mode
        logger.debug(f"Mock gateway settled {transaction_id} as {status}")
