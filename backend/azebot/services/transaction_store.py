"""
Transaction Store

Creates and retrieves payment transactions for articles.

Notes:
- Transaction IDs are generated here, before any gateway call
- Status writes are conditional on the current status so the lifecycle
  created -> pending -> approved | declined | expired never moves backwards
- Rows are never deleted; they are the audit trail of payment attempts
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import TransactionModel
from ..models.transactions import Transaction, can_transition

logger = logging.getLogger(__name__)

_ALL_STATUSES = ("created", "pending", "approved", "declined", "expired")
_OPEN_STATUSES = ("created", "pending")


def _to_transaction(row: TransactionModel) -> Transaction:
    return Transaction(
        transaction_id=row.transaction_id,
        article_id=row.article_id,
        user_id=row.user_id,
        amount_minor_units=row.amount_minor_units,
        currency=row.currency or "XOF",
        status=row.status,
        mode=row.mode,
        checkout_url=row.checkout_url,
        gateway_reference=row.gateway_reference,
        credited=bool(row.credited),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class TransactionStore:
    """
    Durable transaction records keyed by transaction_id.

    Args:
        session_factory: async session factory from db.create_session_factory
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ========================================================================
    # Creation
    # ========================================================================

    async def create(
        self,
        article_id: str,
        user_id: str,
        amount_minor_units: int,
        currency: str = "XOF",
        description: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> Transaction:
        """
        Persist a new transaction in status "created".

        Args:
            article_id: Article being purchased
            user_id: Authenticated purchaser
            amount_minor_units: Amount to collect, taken from the stored price
            currency: ISO currency code
            description: Checkout description shown by the gateway
            customer_email: Payer email forwarded to the gateway

        Returns:
            Created Transaction
        """
        transaction_id = f"txn_{uuid.uuid4().hex[:16]}"
        now = datetime.utcnow()

        row = TransactionModel(
            transaction_id=transaction_id,
            article_id=article_id,
            user_id=user_id,
            amount_minor_units=amount_minor_units,
            currency=currency,
            status="created",
            description=description,
            customer_email=customer_email,
            credited=False,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.info(
            f"Created transaction: {transaction_id}, article={article_id}, "
            f"user={user_id}, amount={amount_minor_units} {currency}"
        )
        return _to_transaction(row)

    # ========================================================================
    # Status Updates
    # ========================================================================

    async def update_status(
        self,
        transaction_id: str,
        status: str,
        mode: Optional[str] = None,
        checkout_url: Optional[str] = None,
        gateway_reference: Optional[str] = None
    ) -> Optional[Transaction]:
        """
        Move a transaction forward in its lifecycle.

        The UPDATE only matches rows whose current status may transition to
        the new one, so a stale writer can never regress a terminal status.

        Returns:
            The transaction after the write attempt, or None if it does not exist
        """
        allowed_from = [s for s in _ALL_STATUSES if can_transition(s, status)]
        values = {"status": status, "updated_at": datetime.utcnow()}
        if mode is not None:
            values["mode"] = mode
        if checkout_url is not None:
            values["checkout_url"] = checkout_url
        if gateway_reference is not None:
            values["gateway_reference"] = gateway_reference

        async with self._session_factory() as session:
            result = await session.execute(
                update(TransactionModel)
                .where(
                    TransactionModel.transaction_id == transaction_id,
                    TransactionModel.status.in_(allowed_from)
                )
                .values(**values)
            )
            await session.commit()
            changed = result.rowcount == 1

        transaction = await self.get(transaction_id)
        if transaction is None:
            logger.warning(f"Status update for unknown transaction {transaction_id}")
        elif not changed:
            logger.debug(
                f"Refused status change {transaction.status} -> {status} "
                f"for transaction {transaction_id}"
            )
        else:
            logger.info(f"Transaction {transaction_id} is now {status}")
        return transaction

    # ========================================================================
    # Retrieval
    # ========================================================================

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        """Retrieve transaction by ID, or None if not found."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TransactionModel).where(TransactionModel.transaction_id == transaction_id)
            )
            row = result.scalar_one_or_none()
            return _to_transaction(row) if row else None

    async def latest_open_for(self, article_id: str, user_id: str) -> Optional[Transaction]:
        """
        Most recent transaction for (article, user) still awaiting an outcome.

        Only created/pending attempts qualify; settled ones (declined,
        expired, or approved and recorded) are skipped. A new attempt always
        gets a new transaction ID.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(TransactionModel)
                .where(
                    TransactionModel.article_id == article_id,
                    TransactionModel.user_id == user_id,
                    TransactionModel.status.in_(_OPEN_STATUSES)
                )
                .order_by(TransactionModel.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_transaction(row) if row else None

    async def has_approved(self, article_id: str, user_id: str) -> bool:
        """Whether the user holds an approved transaction that was credited to this article."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TransactionModel.transaction_id)
                .where(
                    TransactionModel.article_id == article_id,
                    TransactionModel.user_id == user_id,
                    TransactionModel.status == "approved",
                    TransactionModel.credited == True  # noqa: E712
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[Transaction]:
        """
        Get transactions for a user, most recent first.

        Args:
            user_id: User identifier
            status: Only return transactions in this status
            limit: Max results
            offset: Pagination offset
        """
        query = select(TransactionModel).where(TransactionModel.user_id == user_id)
        if status is not None:
            query = query.where(TransactionModel.status == status)
        query = query.order_by(TransactionModel.created_at.desc()).limit(limit).offset(offset)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_transaction(row) for row in result.scalars().all()]

    async def list_unsettled(self, created_before: datetime, limit: int = 100) -> List[Transaction]:
        """
        Transactions still created/pending that were opened before a cutoff.

        Least recently updated first, so rows that stay open (abandoned
        checkouts) rotate behind newer ones once touch() is called on them.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(TransactionModel)
                .where(
                    TransactionModel.status.in_(_OPEN_STATUSES),
                    TransactionModel.created_at < created_before
                )
                .order_by(TransactionModel.updated_at.asc(), TransactionModel.created_at.asc())
                .limit(limit)
            )
            return [_to_transaction(row) for row in result.scalars().all()]

    async def touch(self, transaction_ids: List[str]) -> int:
        """
        Bump updated_at of still-open transactions without changing status.

        Returns:
            Number of rows touched
        """
        if not transaction_ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                update(TransactionModel)
                .where(
                    TransactionModel.transaction_id.in_(transaction_ids),
                    TransactionModel.status.in_(_OPEN_STATUSES)
                )
                .values(updated_at=datetime.utcnow())
            )
            await session.commit()
            return result.rowcount
