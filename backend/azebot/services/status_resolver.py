"""
Transaction Status Resolver

Asks the gateway what happened to a transaction and normalizes the answer.

- Gateway has no record yet -> found=False, status "pending"
- Gateway unreachable -> status "unknown" (retry later, never a decline)
- Never touches articles; unlocking is the reconciliation engine's job
"""
import logging
from typing import Any, Optional

from ..exceptions import GatewayRejectedError, GatewayUnavailableError
from ..models.transactions import ResolvedStatus, can_transition
from .gateway_client import PaymentGateway
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "approved": "approved",
    "success": "approved",
    "successful": "approved",
    "succeeded": "approved",
    "paid": "approved",
    "completed": "approved",
    "transferred": "approved",
    "pending": "pending",
    "created": "pending",
    "processing": "pending",
    "in_progress": "pending",
    "declined": "declined",
    "failed": "declined",
    "refused": "declined",
    "canceled": "declined",
    "cancelled": "declined",
    "expired": "expired",
}


def normalize_status(raw: Any) -> str:
    """Map a gateway status string onto pending/approved/declined/expired/unknown."""
    if not isinstance(raw, str):
        return "unknown"
    return _STATUS_ALIASES.get(raw.strip().lower(), "unknown")


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class StatusResolver:
    """
    Resolve transaction status against the gateway.

    Args:
        gateway: PaymentGateway implementation
        transactions: TransactionStore used for local metadata and the
            cached "pending" observation
    """

    def __init__(self, gateway: PaymentGateway, transactions: TransactionStore):
        self._gateway = gateway
        self._transactions = transactions

    async def resolve(self, transaction_id: str) -> ResolvedStatus:
        local = await self._transactions.get(transaction_id)
        article_id = local.article_id if local else None
        user_id = local.user_id if local else None

        try:
            payload = await self._gateway.get_transaction(transaction_id)
        except (GatewayUnavailableError, GatewayRejectedError) as e:
            logger.warning(f"Status of {transaction_id} unknown: {e.message}")
            return ResolvedStatus(
                transaction_id=transaction_id,
                status="unknown",
                article_id=article_id,
                user_id=user_id,
            )

        if payload is None:
            logger.debug(f"Gateway has no record of {transaction_id} yet")
            return ResolvedStatus(
                transaction_id=transaction_id,
                status="pending",
                found=False,
                article_id=article_id,
                user_id=user_id,
            )

        status = normalize_status(payload.get("status"))
        metadata = payload.get("metadata") or {}
        resolved = ResolvedStatus(
            transaction_id=transaction_id,
            status=status,
            amount=_as_int(payload.get("amount")),
            mode=payload.get("mode"),
            article_id=metadata.get("article_id") or article_id,
            user_id=metadata.get("user_id") or user_id,
        )

        # Observability only: record that the gateway has seen the payment.
        # Terminal statuses are written by the reconciliation engine.
        if local and status == "pending" and can_transition(local.status, "pending") \
                and local.status != "pending":
            await self._transactions.update_status(transaction_id, "pending")

        logger.debug(f"Resolved {transaction_id}: {status}")
        return resolved
