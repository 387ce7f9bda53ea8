"""Payment service: Stripe payment intents for token purchases and their callbacks."""

import asyncio
import json
import logging

import stripe
from sqlalchemy.exc import SQLAlchemyError

from healthy_meals.common.config import HealthyMealsSettings
from healthy_meals.common.database import DatabaseManager
from healthy_meals.common.exceptions import (
    HealthyMealsError,
    PaymentCallbackError,
    PaymentConfigurationError,
    PaymentError,
    PurchaseValidationError,
)
from healthy_meals.payments.schemas import TokenPurchase, TokenPurchaseResponse, WebhookAck
from healthy_meals.payments.stripe_webhook import (
    TOKEN_PURCHASE_TYPE,
    event_object,
    parse_token_purchase,
    verify_stripe_signature,
)
from healthy_meals.tokens.service import TokenLedgerService

logger = logging.getLogger(__name__)


class PaymentService:
    """Sells tokens through Stripe.

    Purchases never credit tokens directly: the ledger is only credited from
    a signature-verified ``payment_intent.succeeded`` callback.
    """

    def __init__(
        self,
        settings: HealthyMealsSettings,
        ledger: TokenLedgerService,
        db: DatabaseManager,
    ):
        self.settings = settings
        self.ledger = ledger
        self.db = db

    # ── Purchases ──

    def validate_purchase(self, amount: int, token_amount: int) -> None:
        """Enforce the purchase range and the fixed dollar-to-token rate."""
        s = self.settings
        if amount < s.min_purchase_amount or amount > s.max_purchase_amount:
            raise PurchaseValidationError(
                f"Amount must be between ${s.min_purchase_amount} and ${s.max_purchase_amount}"
            )
        expected = amount * s.tokens_per_dollar
        if token_amount != expected:
            raise PurchaseValidationError(
                f"Token amount mismatch. Expected {expected} tokens for ${amount}"
            )

    async def create_payment_intent(
        self, user_id: str, amount: int, token_amount: int,
    ) -> TokenPurchaseResponse:
        self.validate_purchase(amount, token_amount)
        if not self.settings.stripe_secret_key:
            raise PaymentConfigurationError()

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.settings.stripe_secret_key,
                amount=amount * 100,  # cents
                currency=self.settings.currency,
                metadata={
                    "userId": user_id,
                    "tokenAmount": str(token_amount),
                    "purchaseType": TOKEN_PURCHASE_TYPE,
                },
                description=(
                    f"{self.settings.product_name} - {token_amount} tokens for ${amount}"
                ),
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e, extra={"user_id": user_id})
            raise PaymentError("Stripe payment intent creation failed") from e

        logger.info(
            "Created payment intent for %d tokens", token_amount,
            extra={"user_id": user_id, "payment_intent_id": intent.id},
        )
        return TokenPurchaseResponse(
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            amount=amount,
            token_amount=token_amount,
        )

    # ── Callbacks ──

    async def handle_webhook(self, payload: bytes, signature_header: str) -> WebhookAck:
        """Process a Stripe callback. Never raises; failures are logged and
        reported in the acknowledgement."""
        secret = self.settings.stripe_webhook_secret
        if not secret:
            logger.error("Stripe webhook received but no webhook secret is configured")
            return WebhookAck(error="Webhook secret not configured")

        if not verify_stripe_signature(
            payload, signature_header, secret,
            tolerance=self.settings.stripe_webhook_tolerance,
        ):
            logger.warning("Invalid Stripe webhook signature")
            return WebhookAck(error="Invalid signature")

        try:
            event_data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Stripe webhook body is not valid JSON")
            return WebhookAck(error="Invalid JSON")
        if not isinstance(event_data, dict):
            return WebhookAck(error="Invalid JSON")

        try:
            purchase = parse_token_purchase(event_data)
        except PaymentCallbackError as e:
            logger.error("Rejected Stripe token purchase: %s", e.message)
            return WebhookAck(error=e.message)

        if purchase is None:
            if event_data.get("type") == "payment_intent.payment_failed":
                intent_id = event_object(event_data).get("id", "")
                logger.info("Payment failed", extra={"payment_intent_id": intent_id})
            return WebhookAck()

        try:
            credited = await self.credit_purchase(purchase)
        except (HealthyMealsError, SQLAlchemyError) as e:
            logger.error(
                "Failed to credit token purchase: %s", e,
                extra={"user_id": purchase.user_id, "payment_intent_id": purchase.payment_intent_id},
            )
            return WebhookAck(error="Failed to process payment")

        return WebhookAck(processed=credited)

    async def credit_purchase(self, purchase: TokenPurchase) -> bool:
        """Credit a verified purchase. Returns False when it was already applied."""
        async with self.db.get_session() as session:
            credited = await self.ledger.add_credits(
                session,
                purchase.user_id,
                purchase.token_amount,
                trusted=True,
                transaction_type="purchase",
                reference=purchase.payment_intent_id,
                description=f"Purchased {purchase.token_amount} tokens",
            )
        if credited:
            logger.info(
                "Credited %d purchased tokens", purchase.token_amount,
                extra={"user_id": purchase.user_id, "payment_intent_id": purchase.payment_intent_id},
            )
        return credited
