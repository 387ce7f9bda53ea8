"""Healthy Meals: pantry-to-recipe generation metered by a token ledger."""

from healthy_meals.client import TokenClient
from healthy_meals.tokens.schemas import UsageKind
from healthy_meals.tokens.service import TokenBalance, TokenLedgerService, TokenValidation

__all__ = [
    "TokenClient",
    "TokenBalance",
    "TokenLedgerService",
    "TokenValidation",
    "UsageKind",
]
__version__ = "0.1.0"
