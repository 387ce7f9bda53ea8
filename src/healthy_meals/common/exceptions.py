"""Healthy Meals exception hierarchy."""


class HealthyMealsError(Exception):
    """Base exception for all Healthy Meals errors."""

    def __init__(self, message: str = "", code: str = "HEALTHY_MEALS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class UnauthenticatedError(HealthyMealsError):
    """Raised when a request carries no valid identity."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHENTICATED")


class StorageError(HealthyMealsError):
    """Raised when the database is unreachable or a write fails.

    Kept apart from business outcomes so an outage is never reported to the
    client as "not enough tokens".
    """

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, code="STORAGE_ERROR")


class InsufficientTokensError(HealthyMealsError):
    """Raised when a paid action is refused for lack of tokens."""

    def __init__(
        self,
        remaining_tokens: int = 0,
        cost: int = 0,
        message: str = "Insufficient tokens",
    ):
        self.remaining_tokens = remaining_tokens
        self.cost = cost
        super().__init__(message, code="INSUFFICIENT_TOKENS")


class InvalidAmountError(HealthyMealsError):
    """Raised when a credit amount is not a positive integer."""

    def __init__(self, message: str = "Token amount must be positive"):
        super().__init__(message, code="INVALID_AMOUNT")


class UntrustedCreditError(HealthyMealsError):
    """Raised when an untrusted caller tries to credit tokens."""

    def __init__(self, message: str = "Crediting tokens requires a trusted caller"):
        super().__init__(message, code="UNTRUSTED_CREDIT")


class RecipeNotFoundError(HealthyMealsError):
    """Raised when a recipe does not exist or belongs to another user."""

    def __init__(self, message: str = "Recipe not found"):
        super().__init__(message, code="NOT_FOUND")


class GenerationFailedError(HealthyMealsError):
    """Raised when the recipe model keeps returning unusable output."""

    def __init__(self, message: str = "Failed to generate recipe. Please try again."):
        super().__init__(message, code="GENERATION_FAILED")


class GenerationRejectedError(HealthyMealsError):
    """Raised when the recipe model declines the request on its merits."""

    def __init__(self, message: str, suggestions: list[str] | None = None):
        self.suggestions = suggestions or []
        super().__init__(message, code="GENERATION_REJECTED")


class PaymentConfigurationError(HealthyMealsError):
    """Raised when the payment provider is not configured."""

    def __init__(self, message: str = "Stripe is not configured"):
        super().__init__(message, code="PAYMENT_NOT_CONFIGURED")


class PaymentError(HealthyMealsError):
    """Raised when the payment provider rejects a request."""

    def __init__(self, message: str = "Payment provider request failed"):
        super().__init__(message, code="PAYMENT_ERROR")


class PurchaseValidationError(HealthyMealsError):
    """Raised when a token purchase violates the pricing rules."""

    def __init__(self, message: str = "Invalid token purchase"):
        super().__init__(message, code="INVALID_PURCHASE")


class PaymentCallbackError(HealthyMealsError):
    """Raised when a payment callback cannot be trusted or is incomplete."""

    def __init__(self, message: str = "Invalid payment callback"):
        super().__init__(message, code="INVALID_CALLBACK")
