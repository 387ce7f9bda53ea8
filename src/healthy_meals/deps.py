"""Dependency injection singletons for Healthy Meals."""

from healthy_meals.common.config import get_settings
from healthy_meals.common.database import DatabaseManager
from healthy_meals.generation.generator import RecipeGenerator
from healthy_meals.generation.llm import LLMClient
from healthy_meals.generation.retry import RetryPolicy
from healthy_meals.generation.service import PaidRecipeService
from healthy_meals.payments.service import PaymentService
from healthy_meals.recipes.service import RecipeService
from healthy_meals.tokens.events import InProcessBalanceNotifier, WebhookBalanceNotifier
from healthy_meals.tokens.service import TokenLedgerService

_db: DatabaseManager | None = None
_notifier: InProcessBalanceNotifier | None = None
_webhook_notifier: WebhookBalanceNotifier | None = None
_tokens: TokenLedgerService | None = None
_recipes: RecipeService | None = None
_llm: LLMClient | None = None
_generator: RecipeGenerator | None = None
_paid_recipes: PaidRecipeService | None = None
_payments: PaymentService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_notifier() -> InProcessBalanceNotifier:
    global _notifier, _webhook_notifier
    if _notifier is None:
        settings = get_settings()
        _notifier = InProcessBalanceNotifier()
        if settings.balance_webhook_url:
            _webhook_notifier = WebhookBalanceNotifier(
                settings.balance_webhook_url, settings.balance_webhook_secret,
            )
            _notifier.subscribe(_webhook_notifier.balance_changed)
    return _notifier


def get_token_service() -> TokenLedgerService:
    global _tokens
    if _tokens is None:
        _tokens = TokenLedgerService(get_settings(), notifier=get_notifier())
    return _tokens


def get_recipe_service() -> RecipeService:
    global _recipes
    if _recipes is None:
        _recipes = RecipeService()
    return _recipes


def get_llm_client() -> LLMClient:
    global _llm
    if _llm is None:
        _llm = LLMClient.from_settings(get_settings())
    return _llm


def get_recipe_generator() -> RecipeGenerator:
    global _generator
    if _generator is None:
        _generator = RecipeGenerator(
            get_llm_client(),
            retry_policy=RetryPolicy.from_settings(get_settings()),
        )
    return _generator


def get_paid_recipe_service() -> PaidRecipeService:
    global _paid_recipes
    if _paid_recipes is None:
        _paid_recipes = PaidRecipeService(
            get_db(), get_token_service(), get_recipe_generator(),
        )
    return _paid_recipes


def get_payment_service() -> PaymentService:
    global _payments
    if _payments is None:
        _payments = PaymentService(get_settings(), get_token_service(), get_db())
    return _payments


async def close_clients() -> None:
    """Close outbound HTTP clients held by the singletons."""
    if _llm is not None:
        await _llm.close()
    if _webhook_notifier is not None:
        await _webhook_notifier.close()


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _notifier, _webhook_notifier, _tokens, _recipes
    global _llm, _generator, _paid_recipes, _payments
    _db = None
    _notifier = None
    _webhook_notifier = None
    _tokens = None
    _recipes = None
    _llm = None
    _generator = None
    _paid_recipes = None
    _payments = None
