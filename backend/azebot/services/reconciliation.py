"""
Access Reconciliation Engine

Decides whether a user may read a paid article and performs the one-time
unlock when the gateway confirms payment.

reconcile(article_id, user_id):
1. Free or already-paid article -> unlocked, no gateway call, no write
2. Latest open (created/pending) transaction for (article, user); none -> locked
3. Resolve its status against the gateway
4. approved -> conditional unlock (only if the article is still pending);
   a lost race is re-read and reported as unlocked
   (approved for a different article -> recorded, never credited)
5. declined / expired -> locked, terminal status recorded, no retry
6. pending / unknown -> locked, retry later

Redirect parameters and client storage are never taken as proof of
payment; the gateway's answer is the only input that can unlock.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from ..exceptions import WriteConflictError
from ..models.articles import Article, PaymentFields
from ..models.payments import ReconcileResult
from ..models.transactions import FAILURE_STATUSES, TERMINAL_STATUSES, ResolvedStatus, Transaction
from .article_store import ArticleStore
from .status_resolver import StatusResolver
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Converge an article's stored payment state with the gateway's record.

    Args:
        articles: Article store (conditional writes)
        transactions: Transaction store
        resolver: Transaction status resolver
        clock: Returns "now" for paymentDate; injectable for tests
    """

    def __init__(
        self,
        articles: ArticleStore,
        transactions: TransactionStore,
        resolver: StatusResolver,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self._articles = articles
        self._transactions = transactions
        self._resolver = resolver
        self._clock = clock

    async def reconcile(self, article_id: str, user_id: str) -> ReconcileResult:
        article = await self._articles.get_article(article_id)
        if article is None:
            logger.warning(f"Reconcile requested for unknown article {article_id}")
            return ReconcileResult(
                state="locked", article_id=article_id, reason="article_not_found"
            )

        if article.is_unlocked:
            return self._unlocked(article, reason="free" if article.is_free else "already_paid")

        transaction = await self._transactions.latest_open_for(article_id, user_id)
        if transaction is None:
            return ReconcileResult(
                state="locked", article_id=article_id, reason="no_transaction"
            )

        resolved = await self._resolver.resolve(transaction.transaction_id)

        if resolved.status == "approved":
            if resolved.article_id and resolved.article_id != article_id:
                logger.error(
                    f"Gateway reports {transaction.transaction_id} for article "
                    f"{resolved.article_id}, not {article_id}; not crediting"
                )
                # Settled without credit: later reconciles no longer pick it up
                await self._transactions.update_status(
                    transaction.transaction_id, "approved", mode=resolved.mode
                )
                return self._locked(transaction, resolved, retry=False, reason="transaction_mismatch")
            return await self._credit(article, transaction, resolved)

        if resolved.status in FAILURE_STATUSES:
            await self._transactions.update_status(
                transaction.transaction_id, resolved.status, mode=resolved.mode
            )
            logger.info(
                f"Transaction {transaction.transaction_id} {resolved.status}; "
                f"article {article_id} stays locked"
            )
            return self._locked(transaction, resolved, retry=False, reason=f"payment_{resolved.status}")

        reason = "gateway_unknown" if resolved.status == "unknown" else "awaiting_confirmation"
        return self._locked(transaction, resolved, retry=True, reason=reason)

    async def access(self, article_id: str, user_id: str) -> ReconcileResult:
        """
        Derived access grant without contacting the gateway.

        Unlocked when the article is free, already paid, or the user holds
        an approved transaction credited to it.
        """
        article = await self._articles.get_article(article_id)
        if article is None:
            return ReconcileResult(
                state="locked", article_id=article_id, reason="article_not_found"
            )
        if article.is_unlocked:
            return self._unlocked(article, reason="free" if article.is_free else "already_paid")
        if await self._transactions.has_approved(article_id, user_id):
            return ReconcileResult(
                state="unlocked", article_id=article_id, reason="approved_transaction"
            )
        return ReconcileResult(state="locked", article_id=article_id, reason="not_paid")

    async def record_outcome(self, transaction: Transaction) -> Optional[str]:
        """
        Write the gateway's final answer for a transaction without unlocking.

        Used for open transactions of articles that are already unlocked
        (a second purchase, or one that lost the unlock race before its
        status was written), so they leave the unsettled set and show up in
        payment history. Non-final answers write nothing.

        Returns:
            The recorded status, or None if nothing was written
        """
        resolved = await self._resolver.resolve(transaction.transaction_id)
        if resolved.status not in TERMINAL_STATUSES:
            return None
        updated = await self._transactions.update_status(
            transaction.transaction_id, resolved.status, mode=resolved.mode
        )
        if updated is None or updated.status != resolved.status:
            return None
        logger.info(
            f"Recorded {resolved.status} for {transaction.transaction_id} "
            f"(article {transaction.article_id} already unlocked, not credited)"
        )
        return resolved.status

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _credit(
        self,
        article: Article,
        transaction: Transaction,
        resolved: ResolvedStatus
    ) -> ReconcileResult:
        if resolved.amount is not None and resolved.amount != transaction.amount_minor_units:
            logger.warning(
                f"Gateway amount {resolved.amount} differs from expected "
                f"{transaction.amount_minor_units} for {transaction.transaction_id}"
            )

        fields = PaymentFields(
            payment_date=self._clock(),
            payment_amount=resolved.amount if resolved.amount is not None else transaction.amount_minor_units,
            payment_method=resolved.mode or transaction.mode,
            payment_transaction_id=transaction.transaction_id,
        )

        try:
            await self._articles.compare_and_set_payment_status(article.id, "pending", fields)
        except WriteConflictError as e:
            current = await self._articles.get_article(article.id)
            if current is not None and current.is_unlocked:
                logger.info(
                    f"Article {article.id} already unlocked by "
                    f"{current.payment_transaction_id}; {transaction.transaction_id} not credited"
                )
                return ReconcileResult(
                    state="unlocked",
                    article_id=article.id,
                    transaction_id=transaction.transaction_id,
                    transaction_status="approved",
                    credited=False,
                    reason="already_paid",
                )
            logger.warning(f"Unlock of {article.id} conflicted without a paid article: {e.message}")
            return self._locked(transaction, resolved, retry=True, reason="write_conflict")

        return ReconcileResult(
            state="unlocked",
            article_id=article.id,
            transaction_id=transaction.transaction_id,
            transaction_status="approved",
            credited=True,
            reason="payment_confirmed",
        )

    @staticmethod
    def _unlocked(article: Article, reason: str) -> ReconcileResult:
        return ReconcileResult(
            state="unlocked",
            article_id=article.id,
            transaction_id=article.payment_transaction_id,
            reason=reason,
        )

    @staticmethod
    def _locked(
        transaction: Transaction,
        resolved: ResolvedStatus,
        retry: bool,
        reason: str
    ) -> ReconcileResult:
        return ReconcileResult(
            state="locked",
            article_id=transaction.article_id,
            transaction_id=transaction.transaction_id,
            transaction_status=resolved.status,
            retry=retry,
            reason=reason,
        )
