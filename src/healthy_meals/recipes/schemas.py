"""Pydantic schemas for recipes, generation requests and model responses.

Recipe payloads travel in camelCase, the shape the web client and the
recipe model both speak.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecipeIngredient(CamelModel):
    name: str
    amount: str
    unit: str = ""
    notes: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_text(cls, value):
        if isinstance(value, (int, float)):
            return str(value)
        return value


class RecipeStep(CamelModel):
    step_number: int
    instruction: str
    time_minutes: Optional[int] = None


class NutritionalInfo(CamelModel):
    calories: float
    protein: float
    carbs: float
    fat: float
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None


class Recipe(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    prep_time: int = Field(..., ge=0)
    cook_time: int = Field(..., ge=0)
    servings: int = Field(..., ge=1)
    difficulty: Literal["Easy", "Medium", "Hard"]
    cuisine: list[str] = Field(default_factory=list)
    dietary_tags: list[str] = Field(default_factory=list)
    ingredients: list[RecipeIngredient] = Field(..., min_length=1)
    instructions: list[RecipeStep] = Field(..., min_length=1)
    nutrition: NutritionalInfo
    tips: Optional[list[str]] = None
    estimated_cost: Optional[Literal["Budget", "Moderate", "Premium"]] = None

    @field_validator("cuisine", mode="before")
    @classmethod
    def _cuisine_as_list(cls, value):
        if isinstance(value, str):
            return [value] if value else []
        return value


# ── Generation ──

class RecipeGenerationRequest(CamelModel):
    available_ingredients: list[str] = Field(..., min_length=1)
    dietary_preferences: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    meal_type: Optional[str] = None
    max_prep_time: Optional[int] = Field(default=None, gt=0)
    servings: int = Field(default=4, ge=1, le=50)
    cuisine: Optional[str] = None
    difficulty: Optional[Literal["Easy", "Medium", "Hard"]] = None
    include_additional_ingredients: bool = False

    @field_validator("available_ingredients")
    @classmethod
    def _strip_ingredients(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("Available ingredients are required")
        return cleaned


class RecipeGenerationResponse(CamelModel):
    recipe: Recipe
    used_ingredients: list[str] = Field(default_factory=list)
    suggested_additional_ingredients: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)


class RecipeModificationRequest(CamelModel):
    original_recipe: Recipe
    modification_request: str = Field(..., max_length=2000)
    available_ingredients: Optional[list[str]] = None
    dietary_preferences: Optional[list[str]] = None
    allergies: Optional[list[str]] = None

    @field_validator("modification_request")
    @classmethod
    def _request_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("modificationRequest is required")
        return value.strip()


class RecipeModificationResponse(CamelModel):
    modified_recipe: Recipe
    confidence: float = Field(..., ge=0, le=1)
    changes_explanation: str


class GenerationRefusal(CamelModel):
    """The model's structured way of declining a request."""

    error: Literal[True]
    message: str
    suggestions: list[str] = Field(default_factory=list)


# ── Saved recipes ──

class RecipeCreate(Recipe):
    parent_recipe_id: Optional[str] = None
    modification_request: Optional[str] = Field(default=None, max_length=2000)


class RecipeResponse(Recipe):
    id: str
    parent_recipe_id: Optional[str] = None
    modification_request: Optional[str] = None
    modification_count: int = 0
    created_at: datetime
