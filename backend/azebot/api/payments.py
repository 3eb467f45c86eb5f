"""
Payments API Endpoints

Checkout creation, transaction status, reconciliation and the
redirect-back handlers used by the success/cancel pages.

Notes:
- The amount collected is always the stored article price
- Redirect parameters only say which article to check; they never unlock
- Gateway trouble is reported as "unknown"/retry, never as a failed payment
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

from ..exceptions import PaymentError, TransactionNotFoundError
from ..models.payments import CreatePaymentRequest, ReconcileRequest
from ..services.container import PaymentServices
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-payment")
async def create_payment_endpoint(
    body: CreatePaymentRequest,
    services: PaymentServices = Depends(get_services)
):
    """
    Open a gateway checkout session for an article.

    Body:
        {
            "amount": int,            # optional, must equal the stored price
            "description": str,
            "customer": {"firstname": str, "lastname": str, "email": str},
            "articleId": str,
            "userId": str
        }

    Returns:
        {"success": true, "url": str, "transactionId": str}
        or {"success": false, "error": str, "error_code": str}

    Example:
        POST /api/create-payment
    """
    logger.info(f"Create payment: article={body.article_id}, user={body.user_id}")

    try:
        session = await services.initiator.initiate(
            article_id=body.article_id,
            user_id=body.user_id,
            customer=body.customer,
            description=body.description,
            amount=body.amount,
        )
    except PaymentError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={
                "success": False,
                "error": e.message,
                "error_code": e.error_code,
            }
        )

    return {
        "success": True,
        "url": session.checkout_url,
        "transactionId": session.transaction_id,
    }


@router.get("/transaction-status/{transaction_id}")
async def transaction_status_endpoint(
    transaction_id: str,
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Normalized gateway status of a transaction.

    Returns:
        {"status": "approved"|"pending"|"declined"|"expired"|"unknown",
         "amount": int | null, "mode": str | null}

    Example:
        GET /api/transaction-status/txn_abc123
    """
    transaction = await services.transactions.get(transaction_id)
    if transaction is None:
        raise TransactionNotFoundError(
            f"No transaction found with ID: {transaction_id}",
            {"transaction_id": transaction_id}
        )

    resolved = await services.resolver.resolve(transaction_id)
    return {
        "status": resolved.status,
        "amount": resolved.amount if resolved.amount is not None else transaction.amount_minor_units,
        "mode": resolved.mode,
    }


@router.post("/reconcile")
async def reconcile_endpoint(
    body: ReconcileRequest,
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Run one reconciliation pass for (article, user).

    Returns:
        {"state": "locked"|"unlocked", "article_id": str, "transaction_id": str | null,
         "transaction_status": str | null, "retry": bool, "credited": bool, "reason": str}
    """
    result = await services.reconciliation.reconcile(body.article_id, body.user_id)
    logger.debug(f"Reconcile {body.article_id}/{body.user_id}: {result.state} ({result.reason})")
    return result.model_dump()


@router.get("/payment/success")
async def payment_success_endpoint(
    user_id: str = Query(..., description="Authenticated user identifier"),
    article_id: Optional[str] = Query(None, description="Article reference from the redirect"),
    transaction_id: Optional[str] = Query(None, description="Transaction reference from the redirect"),
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Redirect-back from checkout.

    Recovers the article (parameter, else the referenced transaction's
    article) and reconciles once. When "retry" is true the answer carries
    the poll interval and budget the page uses for /api/reconcile.
    """
    if not article_id and transaction_id:
        transaction = await services.transactions.get(transaction_id)
        if transaction is not None and transaction.user_id == user_id:
            article_id = transaction.article_id

    if not article_id:
        logger.warning(f"Success redirect without article reference (user={user_id})")
        return {
            "state": "locked",
            "article_id": None,
            "retry": False,
            "reason": "missing_reference",
        }

    result = await services.reconciliation.reconcile(article_id, user_id)
    body = result.model_dump()
    if result.retry:
        body["poll"] = {
            "interval_seconds": services.settings.poll_interval_seconds,
            "max_attempts": services.settings.poll_max_attempts,
        }
    return body


@router.get("/payment/cancel")
async def payment_cancel_endpoint(
    transaction_id: Optional[str] = Query(None),
    article_id: Optional[str] = Query(None)
) -> Dict[str, Any]:
    """
    Redirect-back after the user abandoned checkout.

    Nothing is written: the gateway remains the authority on whether the
    transaction eventually settles.
    """
    logger.info(f"Checkout cancelled by user: transaction={transaction_id}, article={article_id}")
    return {
        "cancelled": True,
        "transaction_id": transaction_id,
        "article_id": article_id,
        "message": "Paiement annulé. Vous pouvez réessayer à tout moment.",
    }


@router.get("/payments/history")
async def payment_history_endpoint(
    user_id: str = Query(..., description="User identifier"),
    limit: int = Query(20, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Approved payments of a user, most recent first.

    Example:
        GET /api/payments/history?user_id=U1
    """
    transactions = await services.transactions.list_for_user(
        user_id, status="approved", limit=limit, offset=offset
    )
    return {
        "user_id": user_id,
        "count": len(transactions),
        "payments": [
            {
                "transaction_id": t.transaction_id,
                "article_id": t.article_id,
                "amount": t.amount_minor_units,
                "currency": t.currency,
                "mode": t.mode,
                "payment_date": (t.updated_at or t.created_at).isoformat(),
            }
            for t in transactions
        ]
    }
