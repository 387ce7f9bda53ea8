"""Prompt text for recipe generation and modification."""

from healthy_meals.recipes.schemas import (
    Recipe,
    RecipeGenerationRequest,
    RecipeModificationRequest,
)

_REFUSAL_FORMAT = (
    'If the request cannot be satisfied (for example the allergies rule out every '
    'available protein), respond instead with '
    '{"error": true, "message": "why", "suggestions": ["alternative", "..."]}.'
)

_RECIPE_SHAPE = """{
  "title": "Recipe Title",
  "description": "Brief description",
  "prepTime": 15,
  "cookTime": 25,
  "servings": 4,
  "difficulty": "Easy | Medium | Hard",
  "cuisine": ["Mediterranean"],
  "dietaryTags": ["High-Protein"],
  "ingredients": [{"name": "Chicken breast", "amount": "2", "unit": "pieces", "notes": "optional"}],
  "instructions": [{"stepNumber": 1, "instruction": "Step description", "timeMinutes": 5}],
  "nutrition": {"calories": 450, "protein": 35, "carbs": 25, "fat": 20, "fiber": 8, "sugar": 5, "sodium": 600},
  "tips": ["Tip"],
  "estimatedCost": "Budget | Moderate | Premium"
}"""

GENERATION_SYSTEM_PROMPT = f"""You are a professional chef and nutritionist specializing in healthy, high-protein meals. Create one recipe from the user's available ingredients and preferences.

Respond with a single JSON object and nothing else:
{{
  "recipe": {_RECIPE_SHAPE},
  "usedIngredients": ["ingredient"],
  "suggestedAdditionalIngredients": ["ingredient"],
  "confidence": 0.9
}}

Guidelines:
- Aim for 25-40g of protein per serving.
- Build the recipe around the available ingredients.
- Never use an ingredient matching the user's allergies.
- Keep nutrition values, prep and cook times realistic.
- confidence is a number between 0 and 1.

{_REFUSAL_FORMAT}"""

MODIFICATION_SYSTEM_PROMPT = f"""You are a professional chef and nutritionist who adapts existing recipes: ingredient substitutions, dietary changes, equipment limits, serving sizes and time constraints. Keep the character of the original dish and its high-protein focus, and recalculate nutrition.

Respond with a single JSON object and nothing else:
{{
  "modifiedRecipe": {_RECIPE_SHAPE},
  "confidence": 0.85,
  "changesExplanation": "What changed and why"
}}

Only refuse when the change would make the dish unsafe, inedible, or impossible without becoming a different dish. {_REFUSAL_FORMAT}"""


def _joined(label: str, items) -> str:
    return f"{label}: {', '.join(items)}." if items else ""


def build_generation_prompt(request: RecipeGenerationRequest) -> str:
    lines = [
        "Please create a healthy, high-protein recipe using these available "
        f"ingredients: {', '.join(request.available_ingredients)}.",
        _joined("Dietary preferences", request.dietary_preferences),
        _joined("Allergies to avoid", request.allergies),
    ]
    if request.meal_type:
        lines.append(f"Meal type: {request.meal_type}.")
    if request.max_prep_time:
        lines.append(f"Maximum prep time: {request.max_prep_time} minutes.")
    lines.append(f"Servings: {request.servings}.")
    if request.cuisine:
        lines.append(f"Preferred cuisine: {request.cuisine}.")
    if request.difficulty:
        lines.append(f"Difficulty: {request.difficulty}.")
    if request.include_additional_ingredients:
        lines.append(
            "You may suggest additional ingredients that would improve the recipe, "
            "but focus on the available ingredients."
        )
    else:
        lines.append(
            "Use only the available ingredients plus pantry basics such as oil, "
            "salt and pepper."
        )
    return "\n\n".join(line for line in lines if line)


def render_recipe(recipe: Recipe) -> str:
    ingredients = "\n".join(
        f"- {i.amount} {i.unit} {i.name}".replace("  ", " ")
        + (f" ({i.notes})" if i.notes else "")
        for i in recipe.ingredients
    )
    steps = "\n".join(
        f"{s.step_number}. {s.instruction}"
        + (f" ({s.time_minutes} min)" if s.time_minutes else "")
        for s in recipe.instructions
    )
    n = recipe.nutrition
    parts = [
        f"Title: {recipe.title}",
        f"Description: {recipe.description}",
        f"Prep Time: {recipe.prep_time} minutes",
        f"Cook Time: {recipe.cook_time} minutes",
        f"Servings: {recipe.servings}",
        f"Difficulty: {recipe.difficulty}",
        f"Cuisine: {', '.join(recipe.cuisine)}",
        f"Dietary Tags: {', '.join(recipe.dietary_tags)}",
        f"\nINGREDIENTS:\n{ingredients}",
        f"\nINSTRUCTIONS:\n{steps}",
        f"\nNUTRITION: {n.calories} kcal, {n.protein}g protein, "
        f"{n.carbs}g carbs, {n.fat}g fat",
    ]
    if recipe.tips:
        parts.append("\nTIPS:\n" + "\n".join(f"- {tip}" for tip in recipe.tips))
    return "\n".join(parts)


def build_modification_prompt(request: RecipeModificationRequest) -> str:
    sections = [
        "ORIGINAL RECIPE:\n" + render_recipe(request.original_recipe),
        f"MODIFICATION REQUEST:\n{request.modification_request}",
    ]
    if request.available_ingredients:
        sections.append("AVAILABLE INGREDIENTS:\n" + ", ".join(request.available_ingredients))
    if request.dietary_preferences:
        sections.append("DIETARY PREFERENCES:\n" + ", ".join(request.dietary_preferences))
    if request.allergies:
        sections.append("ALLERGIES TO AVOID:\n" + ", ".join(request.allergies))
    return "\n\n".join(sections)
