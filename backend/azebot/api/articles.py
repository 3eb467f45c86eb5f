"""
Articles API Endpoints

Price lookup for the checkout page and the derived access grant used by
the article view to choose between content, "pay" and "refresh status".
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict
import logging

from ..services.container import PaymentServices
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{article_id}/price")
async def get_article_price_endpoint(
    article_id: str,
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Current price of an article.

    Example:
        GET /api/articles/demo_eurusd/price
    """
    article = await services.articles.get_article(article_id)
    if article is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error_code": "article_not_found",
                "message": f"No article found with ID: {article_id}"
            }
        )
    return {
        "id": article.id,
        "price": article.price,
        "currency": services.settings.currency,
    }


@router.get("/{article_id}/access")
async def get_article_access_endpoint(
    article_id: str,
    user_id: str = Query(..., description="User identifier"),
    services: PaymentServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Whether the user may read the article, without contacting the gateway.

    A locked answer always comes with both actions: start a payment, or
    refresh the status of a payment already made.
    """
    result = await services.reconciliation.access(article_id, user_id)
    body = result.model_dump()
    body["actions"] = [] if result.unlocked else ["pay", "refresh_status"]
    return body
