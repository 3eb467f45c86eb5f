"""
Pydantic Transaction Model

Represents one payment attempt for an article and its status lifecycle.
Status is monotonic: created -> pending -> approved | declined | expired.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field


TransactionStatus = Literal["created", "pending", "approved", "declined", "expired"]

# Normalized gateway answer; "unknown" means the gateway could not be asked
ResolvedStatusValue = Literal["pending", "approved", "declined", "expired", "unknown"]

TERMINAL_STATUSES = frozenset({"approved", "declined", "expired"})
FAILURE_STATUSES = frozenset({"declined", "expired"})

_STATUS_RANK = {
    "created": 0,
    "pending": 1,
    "approved": 2,
    "declined": 2,
    "expired": 2,
}


def can_transition(current: str, new: str) -> bool:
    """
    Check whether a status change respects the lifecycle.

    Terminal statuses are immutable; otherwise status may only move forward.
    Re-writing the same non-terminal status is allowed (no-op).
    """
    if current in TERMINAL_STATUSES:
        return False
    return _STATUS_RANK[new] >= _STATUS_RANK[current]


class Transaction(BaseModel):
    """
    Payment attempt record.

    Notes:
    - transaction_id is generated locally before redirecting to the gateway
    - amount_minor_units is the article price re-read at creation time
    - credited is set once, in the commit that unlocks the article
    """
    transaction_id: str = Field(pattern="^txn_")
    article_id: str
    user_id: str
    amount_minor_units: int = Field(ge=0)
    currency: str = "XOF"
    status: TransactionStatus
    mode: Optional[str] = None  # card, mobile_money, ...
    checkout_url: Optional[str] = None
    gateway_reference: Optional[str] = None
    credited: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "strict": True,
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "transaction_id": "txn_abc123def4567890",
                "article_id": "A1",
                "user_id": "U1",
                "amount_minor_units": 500,
                "currency": "XOF",
                "status": "pending",
                "mode": None,
                "checkout_url": "https://checkout.gateway.example.com/s/abc",
                "gateway_reference": "gw_789",
                "credited": False,
                "created_at": "2025-10-17T14:35:00Z",
                "updated_at": None
            }
        }
    }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ResolvedStatus(BaseModel):
    """
    Normalized answer of the transaction status resolver.

    found=False means the gateway has no record yet; status is then
    "pending" since propagation delay is expected.
    """
    transaction_id: str
    status: ResolvedStatusValue
    found: bool = True
    amount: Optional[int] = None
    mode: Optional[str] = None
    article_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def should_retry(self) -> bool:
        return self.status in ("pending", "unknown")
