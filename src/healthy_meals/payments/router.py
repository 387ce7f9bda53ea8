"""Payment endpoints: token purchase intents and the Stripe callback."""

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from healthy_meals.common.exceptions import (
    PaymentConfigurationError,
    PaymentError,
    PurchaseValidationError,
)
from healthy_meals.common.security import CurrentUser, get_current_user
from healthy_meals.payments.schemas import (
    TokenPurchaseRequest,
    TokenPurchaseResponse,
    WebhookAck,
)

router = APIRouter(tags=["payments"])


def _get_service():
    from healthy_meals.deps import get_payment_service
    return get_payment_service()


@router.post("/tokens/purchase", response_model=TokenPurchaseResponse)
async def purchase_tokens(
    body: TokenPurchaseRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Start a token purchase. Tokens are credited by the Stripe callback."""
    svc = _get_service()
    try:
        return await svc.create_payment_intent(user.user_id, body.amount, body.token_amount)
    except PurchaseValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message, "code": e.code})
    except PaymentConfigurationError as e:
        return JSONResponse(status_code=503, content={"error": e.message, "code": e.code})
    except PaymentError as e:
        return JSONResponse(status_code=502, content={"error": e.message, "code": e.code})


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
):
    """Handle Stripe payment callbacks. Always answers 200."""
    body = await request.body()
    svc = _get_service()
    return await svc.handle_webhook(body, stripe_signature)
