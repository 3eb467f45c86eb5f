"""
Payment Session Initiator

Opens a checkout session with the gateway for one (article, user) pair.

Ordering matters: the transaction row is written before the gateway is
contacted, and marked pending before the checkout URL is handed back, so
a crash after redirect still leaves a resolvable record.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from ..exceptions import (
    ArticleAlreadyPaidError,
    GatewayRejectedError,
    GatewayUnavailableError,
    InvalidArticleError,
)
from ..models.payments import CustomerInfo, PaymentSession
from .article_store import ArticleStore
from .gateway_client import PaymentGateway
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)


def build_return_url(base_url: str, path: str, article_id: str, transaction_id: str) -> str:
    """Redirect-back URL carrying the article and transaction references."""
    query = urlencode({"article_id": article_id, "transaction_id": transaction_id})
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}?{query}"


class PaymentSessionInitiator:
    """
    Create gateway checkout sessions.

    Args:
        articles: Article store (price is always re-read from here)
        transactions: Transaction store
        gateway: PaymentGateway implementation
        currency: Currency sent to the gateway
        frontend_base_url: Origin of the redirect-back pages
        success_path: Path of the success page
        cancel_path: Path of the cancel page
    """

    def __init__(
        self,
        articles: ArticleStore,
        transactions: TransactionStore,
        gateway: PaymentGateway,
        currency: str = "XOF",
        frontend_base_url: str = "http://localhost:5173",
        success_path: str = "/payment/success",
        cancel_path: str = "/payment/cancel"
    ):
        self._articles = articles
        self._transactions = transactions
        self._gateway = gateway
        self.currency = currency
        self.frontend_base_url = frontend_base_url
        self.success_path = success_path
        self.cancel_path = cancel_path

    async def initiate(
        self,
        article_id: str,
        user_id: str,
        customer: Optional[CustomerInfo] = None,
        description: str = "",
        amount: Optional[int] = None
    ) -> PaymentSession:
        """
        Start a paid checkout for an article.

        Args:
            article_id: Article to purchase
            user_id: Authenticated purchaser
            customer: Payer identity for the checkout page
            description: Checkout description; defaults to the article title
            amount: Client-displayed price, cross-checked against the stored one

        Returns:
            PaymentSession with transaction_id and checkout_url

        Raises:
            InvalidArticleError: missing article, free article, or amount mismatch
            ArticleAlreadyPaidError: article already unlocked
            GatewayUnavailableError: gateway unreachable; transaction stays "created"
            GatewayRejectedError: gateway refused the session
        """
        customer = customer or CustomerInfo()

        article = await self._articles.get_article(article_id)
        if article is None:
            raise InvalidArticleError(
                f"Article {article_id} not found", {"article_id": article_id}
            )
        if article.payment_status == "paid":
            raise ArticleAlreadyPaidError(
                f"Article {article_id} is already paid", {"article_id": article_id}
            )
        if article.price <= 0:
            raise InvalidArticleError(
                f"Article {article_id} is free and needs no payment",
                {"article_id": article_id, "price": article.price}
            )
        if amount is not None and amount != article.price:
            logger.warning(
                f"Amount mismatch for article {article_id}: "
                f"client={amount}, stored={article.price}"
            )
            raise InvalidArticleError(
                f"Amount {amount} does not match the price of article {article_id}",
                {"article_id": article_id, "amount": amount, "price": article.price}
            )

        description = description or f"Paiement pour l'article: {article.title or article.id}"
        transaction = await self._transactions.create(
            article_id=article.id,
            user_id=user_id,
            amount_minor_units=article.price,
            currency=self.currency,
            description=description,
            customer_email=customer.email,
        )

        try:
            session = await self._gateway.create_checkout_session(
                transaction_id=transaction.transaction_id,
                amount=article.price,
                currency=self.currency,
                description=description,
                customer=customer.model_dump(),
                success_url=build_return_url(
                    self.frontend_base_url, self.success_path,
                    article.id, transaction.transaction_id
                ),
                cancel_url=build_return_url(
                    self.frontend_base_url, self.cancel_path,
                    article.id, transaction.transaction_id
                ),
                metadata={
                    "article_id": article.id,
                    "user_id": user_id,
                    "transaction_id": transaction.transaction_id,
                },
            )
        except (GatewayUnavailableError, GatewayRejectedError) as e:
            logger.warning(
                f"Checkout session for {transaction.transaction_id} not created: {e.message}"
            )
            raise

        await self._transactions.update_status(
            transaction.transaction_id,
            "pending",
            checkout_url=session.url,
            gateway_reference=session.reference,
        )

        logger.info(
            f"Payment session opened: {transaction.transaction_id} "
            f"(article={article.id}, user={user_id}, amount={article.price} {self.currency})"
        )
        return PaymentSession(
            transaction_id=transaction.transaction_id,
            checkout_url=session.url,
        )
