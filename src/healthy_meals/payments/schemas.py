"""Pydantic schemas for token purchases and payment callbacks."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenPurchaseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: int = Field(..., description="Purchase amount in whole dollars")
    token_amount: int = Field(..., alias="tokenAmount")


class TokenPurchaseResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    token_amount: int


class TokenPurchase(BaseModel):
    """A paid token purchase extracted from a verified Stripe event."""

    user_id: str = Field(..., min_length=1)
    token_amount: int = Field(..., gt=0)
    payment_intent_id: str = Field(..., min_length=1)


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe. Always sent with HTTP 200."""

    received: bool = True
    processed: bool = False
    error: Optional[str] = None
