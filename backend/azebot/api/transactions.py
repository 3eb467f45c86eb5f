"""
Transactions API Endpoints

Read access to the local transaction records (audit trail of payment
attempts). Status shown here is the last locally recorded one; use
/api/transaction-status/{id} for the gateway's current answer.
"""
from fastapi import APIRouter, Depends, Query
from typing import Any, Dict
import logging

from ..exceptions import TransactionNotFoundError
from ..models.transactions import Transaction
from ..services.container import PaymentServices
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


def _serialize(transaction: Transaction) -> Dict[str, Any]:
    return {
        "transaction_id": transaction.transaction_id,
        "article_id": transaction.article_id,
        "user_id": transaction.user_id,
        "status": transaction.status,
        "amount": transaction.amount_minor_units,
        "currency": transaction.currency,
        "mode": transaction.mode,
        "credited": transaction.credited,
        "created_at": transaction.created_at.isoformat() if transaction.created_at else None,
    }


@router.get("/{transaction_id}")
async def get_transaction_endpoint(
    transaction_id: str,
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Get transaction details.

    Example:
        GET /api/transactions/txn_abc123
    """
    logger.debug(f"Retrieving transaction: {transaction_id}")

    transaction = await services.transactions.get(transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(
            f"No transaction found with ID: {transaction_id}",
            {"transaction_id": transaction_id}
        )
    return _serialize(transaction)


@router.get("/user/{user_id}")
async def get_user_transactions_endpoint(
    user_id: str,
    limit: int = Query(10, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Get all payment attempts of a user, most recent first.

    Example:
        GET /api/transactions/user/U1?limit=20&offset=0
    """
    logger.debug(f"Retrieving transactions for user: {user_id}, limit={limit}, offset={offset}")

    transactions = await services.transactions.list_for_user(user_id, limit=limit, offset=offset)
    return {
        "user_id": user_id,
        "count": len(transactions),
        "transactions": [_serialize(t) for t in transactions]
    }
