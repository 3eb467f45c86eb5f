"""
Article Store

Reads article payment state and performs the one-time conditional unlock.

The unlock is a compare-and-set: the article row only moves to "paid" if
its payment_status still holds the expected value, and the credited
transaction is flagged in the same commit. Concurrent reconciles therefore
converge on a single credited transaction.
"""
import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import ArticleModel, TransactionModel
from ..exceptions import WriteConflictError
from ..models.articles import Article, PaymentFields

logger = logging.getLogger(__name__)

ArticleListener = Callable[[Article], None]


class Subscription:
    """Handle returned by ArticleStore.subscribe()."""

    def __init__(self, store: "ArticleStore", article_id: str, listener: ArticleListener):
        self._store = store
        self.article_id = article_id
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._store._remove_listener(self)
            self.active = False


def _to_article(row: ArticleModel) -> Article:
    return Article(
        id=row.id,
        title=row.title or "",
        category=row.category,
        price=row.price,
        payment_status=row.payment_status,
        payment_date=row.payment_date,
        payment_amount=row.payment_amount,
        payment_method=row.payment_method,
        payment_transaction_id=row.payment_transaction_id,
    )


class ArticleStore:
    """
    Article/Content store collaborator backed by the news table.

    Args:
        session_factory: async session factory from db.create_session_factory
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._listeners: Dict[str, List[Subscription]] = {}

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_article(self, article_id: str) -> Optional[Article]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ArticleModel).where(ArticleModel.id == article_id)
            )
            row = result.scalar_one_or_none()
            return _to_article(row) if row else None

    # ========================================================================
    # Writes
    # ========================================================================

    async def save_article(self, article: Article) -> Article:
        """
        Insert or update an article's title, category and price.

        Payment fields are left untouched on existing rows; only the
        conditional unlock below may change them.
        """
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(ArticleModel, article.id)
                if row is None:
                    row = ArticleModel(
                        id=article.id,
                        title=article.title,
                        category=article.category,
                        price=article.price,
                        payment_status=article.payment_status,
                        payment_date=article.payment_date,
                        payment_amount=article.payment_amount,
                        payment_method=article.payment_method,
                        payment_transaction_id=article.payment_transaction_id,
                    )
                    session.add(row)
                else:
                    row.title = article.title
                    row.category = article.category
                    row.price = article.price
            logger.debug(f"Saved article {article.id} (price={article.price})")
            return _to_article(row)

    async def compare_and_set_payment_status(
        self,
        article_id: str,
        expected_status: str,
        fields: PaymentFields
    ) -> Article:
        """
        Conditionally write the unlock and credit the transaction.

        Args:
            article_id: Article to unlock
            expected_status: payment_status the article must still have
            fields: Payment values to record, including the credited transaction

        Returns:
            The article as written

        Raises:
            WriteConflictError: article no longer has expected_status, or the
                transaction was already credited / not creditable. Nothing is
                written in that case.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(ArticleModel)
                        .where(
                            ArticleModel.id == article_id,
                            ArticleModel.payment_status == expected_status
                        )
                        .values(
                            payment_status=fields.payment_status,
                            payment_date=fields.payment_date,
                            payment_amount=fields.payment_amount,
                            payment_method=fields.payment_method,
                            payment_transaction_id=fields.payment_transaction_id,
                        )
                    )
                    if result.rowcount != 1:
                        raise WriteConflictError(
                            f"Article {article_id} is no longer {expected_status}",
                            {"article_id": article_id, "expected_status": expected_status}
                        )

                    credit = await session.execute(
                        update(TransactionModel)
                        .where(
                            TransactionModel.transaction_id == fields.payment_transaction_id,
                            TransactionModel.article_id == article_id,
                            TransactionModel.credited == False,  # noqa: E712
                            TransactionModel.status.in_(("created", "pending", "approved")),
                        )
                        .values(
                            status="approved",
                            credited=True,
                            mode=fields.payment_method,
                        )
                    )
                    if credit.rowcount != 1:
                        raise WriteConflictError(
                            f"Transaction {fields.payment_transaction_id} cannot be credited",
                            {
                                "article_id": article_id,
                                "transaction_id": fields.payment_transaction_id
                            }
                        )
        except IntegrityError as e:
            raise WriteConflictError(
                f"Article {article_id} already has a credited transaction",
                {"article_id": article_id, "transaction_id": fields.payment_transaction_id}
            ) from e

        article = await self.get_article(article_id)
        logger.info(
            f"Article {article_id} unlocked by transaction {fields.payment_transaction_id} "
            f"(amount={fields.payment_amount}, method={fields.payment_method})"
        )
        self._notify(article)
        return article

    # ========================================================================
    # Observation
    # ========================================================================

    def subscribe(self, article_id: str, listener: ArticleListener) -> Subscription:
        """
        Observe payment state changes of one article.

        The listener is called with the updated Article after each committed
        unlock. Call unsubscribe() on the returned handle to stop.
        """
        subscription = Subscription(self, article_id, listener)
        self._listeners.setdefault(article_id, []).append(subscription)
        return subscription

    def _remove_listener(self, subscription: Subscription) -> None:
        listeners = self._listeners.get(subscription.article_id, [])
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            self._listeners.pop(subscription.article_id, None)

    def _notify(self, article: Article) -> None:
        for subscription in list(self._listeners.get(article.id, [])):
            try:
                subscription.listener(article)
            except Exception as e:
                logger.error(f"Article listener failed for {article.id}: {e}", exc_info=True)
