"""Healthy Meals configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "api_key": "insecure-admin-key-change-me",
    "jwt_secret": "insecure-jwt-secret-change-me",
}


class HealthyMealsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HEALTHY_MEALS_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/healthy_meals.db"

    # API
    api_title: str = "Healthy Meals"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000"]

    # Identity provider session tokens (HS256, sub = user id)
    jwt_secret: str = "insecure-jwt-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Token ledger
    signup_grant: int = Field(default=10, ge=0)
    recipe_generation_cost: int = Field(default=1, ge=1)
    photo_analysis_cost: int = Field(default=2, ge=1)
    allow_self_service_credits: bool = False

    # Token purchases
    tokens_per_dollar: int = 100
    min_purchase_amount: int = 1
    max_purchase_amount: int = 100
    currency: str = "usd"
    product_name: str = "Healthy Meals AI Tokens"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance: int = 300  # seconds

    # Recipe model (OpenAI-compatible chat completions)
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000
    llm_timeout: float = 60.0
    generation_max_attempts: int = 3
    generation_retry_delay: float = 1.0  # seconds

    # Balance change notifications
    balance_webhook_url: str = ""
    balance_webhook_secret: str = ""

    @property
    def usage_costs(self) -> dict[str, int]:
        """Token cost per usage kind."""
        return {
            "recipe_generation": self.recipe_generation_cost,
            "photo_analysis": self.photo_analysis_cost,
        }

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"HEALTHY_MEALS_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}."
            )

        if self.environment != "development" and self.allow_self_service_credits:
            raise RuntimeError(
                "HEALTHY_MEALS_ALLOW_SELF_SERVICE_CREDITS must be off outside development"
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys. Set HEALTHY_MEALS_API_KEY and "
                "HEALTHY_MEALS_JWT_SECRET for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> HealthyMealsSettings:
    settings = HealthyMealsSettings()
    settings.validate_for_production()
    return settings
