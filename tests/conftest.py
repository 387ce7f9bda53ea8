"""Shared test fixtures for Healthy Meals."""

import copy
import os
import time

import jwt
import pytest
from httpx import ASGITransport, AsyncClient


API_KEY = "test-admin-api-key"
JWT_SECRET = "test-jwt-secret-for-unit-tests"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"


def make_token(user_id: str, email: str | None = None, expires_in: int = 3600, **claims) -> str:
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        payload["email"] = email
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth_headers_for(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["HEALTHY_MEALS_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["HEALTHY_MEALS_API_KEY"] = API_KEY
    os.environ["HEALTHY_MEALS_JWT_SECRET"] = JWT_SECRET
    os.environ["HEALTHY_MEALS_STRIPE_WEBHOOK_SECRET"] = STRIPE_WEBHOOK_SECRET
    os.environ["HEALTHY_MEALS_STRIPE_SECRET_KEY"] = "sk_test_dummy"
    os.environ["HEALTHY_MEALS_LLM_API_KEY"] = "test-llm-key"

    # Clear caches and singletons so new env vars take effect
    from healthy_meals.common.config import get_settings
    get_settings.cache_clear()

    from healthy_meals.deps import reset_singletons
    reset_singletons()

    from healthy_meals.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from healthy_meals.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-Healthy-Meals-Api-Key": API_KEY}


@pytest.fixture
def user_headers():
    return auth_headers_for("user-1")


@pytest.fixture
def other_user_headers():
    return auth_headers_for("user-2")


@pytest.fixture
def auth_headers():
    """Factory for bearer headers of an arbitrary user."""
    return auth_headers_for


RECIPE_PAYLOAD = {
    "title": "Lemon Garlic Chicken",
    "description": "Pan-seared chicken with a bright lemon sauce",
    "prepTime": 10,
    "cookTime": 20,
    "servings": 2,
    "difficulty": "Easy",
    "cuisine": ["Mediterranean"],
    "dietaryTags": ["High-Protein", "Gluten-Free"],
    "ingredients": [
        {"name": "Chicken breast", "amount": 2, "unit": "pieces"},
        {"name": "Lemon", "amount": "1", "unit": "", "notes": "juiced"},
        {"name": "Garlic", "amount": "3", "unit": "cloves"},
    ],
    "instructions": [
        {"stepNumber": 1, "instruction": "Season the chicken.", "timeMinutes": 2},
        {"stepNumber": 2, "instruction": "Sear until cooked through.", "timeMinutes": 15},
        {"stepNumber": 3, "instruction": "Deglaze with lemon and garlic."},
    ],
    "nutrition": {"calories": 420, "protein": 48, "carbs": 6, "fat": 20},
    "tips": ["Rest the chicken for five minutes before slicing."],
    "estimatedCost": "Budget",
}


@pytest.fixture
def recipe_payload():
    """A camelCase recipe as the model and the web client send it."""
    return copy.deepcopy(RECIPE_PAYLOAD)


@pytest.fixture
def generation_payload(recipe_payload):
    return {
        "recipe": recipe_payload,
        "usedIngredients": ["chicken breast", "lemon", "garlic"],
        "suggestedAdditionalIngredients": [],
        "confidence": 0.9,
    }
