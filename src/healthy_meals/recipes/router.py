"""Recipe API router: paid generation and modification, plus the recipe book."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from healthy_meals.common.exceptions import (
    GenerationFailedError,
    GenerationRejectedError,
    InsufficientTokensError,
    RecipeNotFoundError,
)
from healthy_meals.common.security import CurrentUser, get_current_user
from healthy_meals.recipes.schemas import (
    RecipeCreate,
    RecipeGenerationRequest,
    RecipeGenerationResponse,
    RecipeModificationRequest,
    RecipeModificationResponse,
    RecipeResponse,
)
from healthy_meals.recipes.service import to_response

router = APIRouter(prefix="/recipes")


def _get_paid_service():
    from healthy_meals.deps import get_paid_recipe_service
    return get_paid_recipe_service()


def _get_service():
    from healthy_meals.deps import get_recipe_service
    return get_recipe_service()


def _get_db():
    from healthy_meals.deps import get_db
    return get_db()


def _paid_error_response(e: Exception) -> JSONResponse:
    if isinstance(e, InsufficientTokensError):
        return JSONResponse(status_code=402, content={
            "error": e.message,
            "code": e.code,
            "details": {
                "remaining_tokens": e.remaining_tokens,
                "cost_per_generation": e.cost,
            },
        })
    if isinstance(e, GenerationRejectedError):
        return JSONResponse(status_code=400, content={
            "error": e.message,
            "code": e.code,
            "suggestions": e.suggestions,
        })
    return JSONResponse(status_code=500, content={"error": e.message, "code": e.code})


@router.post("/generate", response_model=RecipeGenerationResponse)
async def generate_recipe(
    body: RecipeGenerationRequest,
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_paid_service()
    try:
        return await svc.generate_recipe(user.user_id, body)
    except (InsufficientTokensError, GenerationRejectedError, GenerationFailedError) as e:
        return _paid_error_response(e)


@router.post("/modify", response_model=RecipeModificationResponse)
async def modify_recipe(
    body: RecipeModificationRequest,
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_paid_service()
    try:
        return await svc.modify_recipe(user.user_id, body)
    except (InsufficientTokensError, GenerationRejectedError, GenerationFailedError) as e:
        return _paid_error_response(e)


@router.post("", response_model=RecipeResponse, status_code=201)
async def save_recipe(
    body: RecipeCreate,
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            row = await svc.create_recipe(
                session, user.user_id, body,
                parent_recipe_id=body.parent_recipe_id,
                modification_request=body.modification_request,
            )
            return to_response(row)
    except RecipeNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("", response_model=list[RecipeResponse])
async def list_recipes(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        rows = await svc.list_recipes(session, user.user_id, limit=limit, offset=offset)
        return [to_response(r) for r in rows]


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(recipe_id: str, user: CurrentUser = Depends(get_current_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        row = await svc.get_recipe(session, user.user_id, recipe_id)
        if row is None:
            raise HTTPException(status_code=404, detail="Recipe not found")
        return to_response(row)


@router.delete("/{recipe_id}", status_code=204)
async def delete_recipe(recipe_id: str, user: CurrentUser = Depends(get_current_user)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            await svc.delete_recipe(session, user.user_id, recipe_id)
    except RecipeNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return Response(status_code=204)
