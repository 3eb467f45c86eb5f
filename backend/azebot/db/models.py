"""
SQLAlchemy ORM Models for AZEBot

Defines the article payment fields consumed by reconciliation and the
transaction records owned by the payment subsystem.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ArticleModel(Base):
    """
    ORM model for news table.

    Only the fields the payment subsystem reads or writes are mapped here;
    article bodies belong to content authoring.
    """
    __tablename__ = "news"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")
    category = Column(String)  # forex or football
    price = Column(Integer, nullable=False, default=0)  # FCFA, no minor unit
    payment_status = Column(String, nullable=False, default="pending", index=True)
    payment_date = Column(DateTime)
    payment_amount = Column(Integer)
    payment_method = Column(String)
    payment_transaction_id = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="price_check"),
        CheckConstraint("payment_status IN ('pending', 'paid')", name="payment_status_check"),
    )


class TransactionModel(Base):
    """
    ORM model for transactions table.

    One row per payment attempt. Rows are never deleted (audit trail).
    """
    __tablename__ = "transactions"

    transaction_id = Column(String, primary_key=True)
    article_id = Column(String, ForeignKey("news.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    amount_minor_units = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="XOF")
    status = Column(String, nullable=False, default="created", index=True)
    mode = Column(String)
    checkout_url = Column(String)
    gateway_reference = Column(String)
    customer_email = Column(String)
    description = Column(String)
    credited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'pending', 'approved', 'declined', 'expired')",
            name="status_check"
        ),
        CheckConstraint("amount_minor_units >= 0", name="amount_check"),
        # At most one credited transaction per article
        Index(
            "uq_transactions_credited_article",
            "article_id",
            unique=True,
            sqlite_where=text("credited = 1"),
        ),
    )
