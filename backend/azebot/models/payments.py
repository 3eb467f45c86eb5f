"""
Pydantic Payment Flow Models

Request bodies accepted by the payment API and the results returned by
payment session creation and access reconciliation.
"""
from typing import Optional, Literal
from pydantic import BaseModel, Field


AccessState = Literal["locked", "unlocked"]


class CustomerInfo(BaseModel):
    """Payer identity forwarded to the gateway checkout page."""
    firstname: str = "Prénom"
    lastname: str = "Nom"
    email: str = "email@example.com"


class CreatePaymentRequest(BaseModel):
    """
    Body of POST /api/create-payment.

    amount is optional and only cross-checked against the stored price;
    the stored price is what the gateway is asked to collect.
    """
    amount: Optional[int] = Field(default=None, ge=0)
    description: str = ""
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    article_id: str = Field(alias="articleId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)

    model_config = {"populate_by_name": True}


class ReconcileRequest(BaseModel):
    """Body of POST /api/reconcile."""
    article_id: str = Field(alias="articleId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)

    model_config = {"populate_by_name": True}


class PaymentSession(BaseModel):
    """Result of a successful payment session creation."""
    transaction_id: str
    checkout_url: str


class ReconcileResult(BaseModel):
    """
    Outcome of one reconcile pass for an (article, user) pair.

    retry=True tells the caller the answer may still change (pending or
    unknown gateway status); retry=False is final for this transaction.
    """
    state: AccessState
    article_id: str
    transaction_id: Optional[str] = None
    transaction_status: Optional[str] = None
    retry: bool = False
    credited: bool = False
    reason: str

    @property
    def unlocked(self) -> bool:
        return self.state == "unlocked"

    @property
    def failed(self) -> bool:
        """Gateway gave an explicit negative answer for the transaction."""
        return self.transaction_status in ("declined", "expired")
