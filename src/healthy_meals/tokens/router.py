"""Token API router."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from healthy_meals.common.security import CurrentUser, get_current_user, require_api_key
from healthy_meals.tokens.schemas import (
    AdminBalanceResponse,
    AdminCreditRequest,
    TokenActionRequest,
    TokenBalanceResponse,
    TokenTransactionResponse,
    TokenUseResponse,
    TokenValidationResponse,
)

router = APIRouter()
admin_router = APIRouter(prefix="/admin/tokens", tags=["admin"])


def _get_service():
    from healthy_meals.deps import get_token_service
    return get_token_service()


def _get_db():
    from healthy_meals.deps import get_db
    return get_db()


@router.get("/tokens", response_model=TokenBalanceResponse)
async def get_tokens(user: CurrentUser = Depends(get_current_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.ensure_record(session, user.user_id)
        balance = await svc.get_balance(session, user.user_id)
    if balance is None:
        raise HTTPException(status_code=500, detail="Failed to get token balance")
    return TokenBalanceResponse(
        tokens_balance=balance.tokens_balance,
        total_generations_used=balance.total_generations_used,
    )


@router.post("/tokens")
async def token_action(
    body: TokenActionRequest,
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_service()
    db = _get_db()

    if body.action == "validate":
        async with db.get_session() as session:
            validation = await svc.validate_for_usage(session, user.user_id, body.usage_type)
        return TokenValidationResponse(
            can_generate=validation.can_proceed,
            remaining_tokens=validation.remaining_tokens,
            cost_per_generation=validation.cost,
        )

    if body.action == "use":
        async with db.get_session() as session:
            success = await svc.consume(session, user.user_id, body.usage_type)
            balance = await svc.get_balance(session, user.user_id) if success else None
        if not success:
            return JSONResponse(
                status_code=400,
                content={"error": "Insufficient tokens", "code": "INSUFFICIENT_TOKENS"},
            )
        return TokenUseResponse(
            success=True,
            balance=TokenBalanceResponse(
                tokens_balance=balance.tokens_balance,
                total_generations_used=balance.total_generations_used,
            ),
        )

    return JSONResponse(
        status_code=400, content={"error": "Invalid action", "code": "INVALID_ACTION"},
    )


@router.get("/tokens/transactions", response_model=list[TokenTransactionResponse])
async def list_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        rows = await svc.list_transactions(session, user.user_id, limit=limit, offset=offset)
        return [
            TokenTransactionResponse(
                id=t.id, transaction_type=t.transaction_type, amount=t.amount,
                usage_kind=t.usage_kind, description=t.description,
                reference=t.reference, created_at=t.created_at,
            )
            for t in rows
        ]


# ── Admin ──

@admin_router.get("/{user_id}", response_model=AdminBalanceResponse)
async def admin_get_balance(user_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        balance = await svc.get_balance(session, user_id)
    if balance is None:
        raise HTTPException(status_code=404, detail="Token record not found")
    return AdminBalanceResponse(
        user_id=user_id,
        tokens_balance=balance.tokens_balance,
        total_generations_used=balance.total_generations_used,
    )


@admin_router.post("/{user_id}/credit", response_model=AdminBalanceResponse)
async def admin_credit(
    user_id: str, body: AdminCreditRequest, _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.add_credits(
            session, user_id, body.amount,
            trusted=True,
            transaction_type="bonus",
            description=body.description or "Operator grant",
        )
        balance = await svc.get_balance(session, user_id)
    return AdminBalanceResponse(
        user_id=user_id,
        tokens_balance=balance.tokens_balance,
        total_generations_used=balance.total_generations_used,
    )
