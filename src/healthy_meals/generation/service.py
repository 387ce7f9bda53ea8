"""Paid recipe actions: check tokens, call the model, then charge."""

import logging
from typing import Awaitable, Callable, TypeVar

from healthy_meals.common.database import DatabaseManager
from healthy_meals.common.exceptions import InsufficientTokensError
from healthy_meals.generation.generator import RecipeGenerator
from healthy_meals.recipes.schemas import (
    RecipeGenerationRequest,
    RecipeGenerationResponse,
    RecipeModificationRequest,
    RecipeModificationResponse,
)
from healthy_meals.tokens.schemas import UsageKind
from healthy_meals.tokens.service import TokenLedgerService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaidRecipeService:
    """Runs metered recipe actions against the token ledger.

    The balance is checked before the model is called and charged only after
    it produced a usable recipe. Refusals and failures raised by the action
    propagate without touching the ledger. No database transaction is held
    open while the model runs.
    """

    def __init__(
        self,
        db: DatabaseManager,
        ledger: TokenLedgerService,
        generator: RecipeGenerator,
    ):
        self.db = db
        self.ledger = ledger
        self.generator = generator

    async def run_paid(
        self,
        user_id: str,
        usage_kind: UsageKind,
        action: Callable[[], Awaitable[T]],
    ) -> T:
        async with self.db.get_session() as session:
            validation = await self.ledger.validate_for_usage(session, user_id, usage_kind)
        if not validation.can_proceed:
            raise InsufficientTokensError(validation.remaining_tokens, validation.cost)

        result = await action()

        async with self.db.get_session() as session:
            consumed = await self.ledger.consume(session, user_id, usage_kind)
            if not consumed:
                # A concurrent request spent the tokens while the model ran.
                latest = await self.ledger.validate_for_usage(session, user_id, usage_kind)
        if not consumed:
            logger.warning(
                "Tokens spent concurrently, discarding %s result", usage_kind.value,
                extra={"user_id": user_id, "usage_kind": usage_kind.value},
            )
            raise InsufficientTokensError(latest.remaining_tokens, latest.cost)
        return result

    async def generate_recipe(
        self, user_id: str, request: RecipeGenerationRequest,
    ) -> RecipeGenerationResponse:
        return await self.run_paid(
            user_id, UsageKind.RECIPE_GENERATION,
            lambda: self.generator.generate(request),
        )

    async def modify_recipe(
        self, user_id: str, request: RecipeModificationRequest,
    ) -> RecipeModificationResponse:
        # Modifications are billed like generations.
        return await self.run_paid(
            user_id, UsageKind.RECIPE_GENERATION,
            lambda: self.generator.modify(request),
        )
