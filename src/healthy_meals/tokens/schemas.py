"""Pydantic schemas for token endpoints."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class UsageKind(str, Enum):
    """Paid feature categories, each with a fixed token cost."""

    RECIPE_GENERATION = "recipe_generation"
    PHOTO_ANALYSIS = "photo_analysis"


class TokenBalanceResponse(BaseModel):
    tokens_balance: int
    total_generations_used: int


class TokenActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = ""
    usage_type: UsageKind = Field(default=UsageKind.RECIPE_GENERATION, alias="usageType")


class TokenValidationResponse(BaseModel):
    can_generate: bool
    remaining_tokens: int
    cost_per_generation: int


class TokenUseResponse(BaseModel):
    success: bool
    balance: Optional[TokenBalanceResponse] = None


class TokenTransactionResponse(BaseModel):
    id: str
    transaction_type: Literal["signup", "usage", "purchase", "bonus"]
    amount: int
    usage_kind: Optional[str] = None
    description: str = ""
    reference: Optional[str] = None
    created_at: datetime


class AdminCreditRequest(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(default="", max_length=255)


class AdminBalanceResponse(TokenBalanceResponse):
    user_id: str
