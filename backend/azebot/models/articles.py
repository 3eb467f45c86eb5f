"""
Pydantic Article Model

The slice of a published analysis article that the payment subsystem
reads and writes. Content fields stay with content authoring.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field


PaymentStatus = Literal["pending", "paid"]


class Article(BaseModel):
    """Article price and payment state."""
    id: str
    title: str = ""
    category: Optional[Literal["forex", "football"]] = None
    price: int = Field(ge=0)
    payment_status: PaymentStatus = "pending"
    payment_date: Optional[datetime] = None
    payment_amount: Optional[int] = None
    payment_method: Optional[str] = None
    payment_transaction_id: Optional[str] = None

    @property
    def is_free(self) -> bool:
        return self.price == 0

    @property
    def is_unlocked(self) -> bool:
        """Free or already paid: access needs no gateway round trip."""
        return self.is_free or self.payment_status == "paid"


class PaymentFields(BaseModel):
    """Values written to an article by the one-time unlock."""
    payment_status: PaymentStatus = "paid"
    payment_date: datetime
    payment_amount: Optional[int] = None
    payment_method: Optional[str] = None
    payment_transaction_id: str
