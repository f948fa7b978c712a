"""
Custom exception hierarchy for the checkout reconciliation backend.

All application-level exceptions inherit from AppException so they can be
caught by a single global handler.
"""


class AppException(Exception):
    """Base for all app exceptions."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict | None = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class WebhookSignatureError(AppException):
    """Raised when no configured Stripe account validates a webhook signature."""

    def __init__(self, message: str = "Invalid signature", details: dict | None = None):
        super().__init__(
            status_code=400,
            error_code="INVALID_SIGNATURE",
            message=message,
            details=details,
        )


class AccountConfigurationError(AppException):
    """Raised when no Stripe account is usable for the requested operation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=500,
            error_code="ACCOUNT_CONFIGURATION_ERROR",
            message=message,
            details=details,
        )


class SessionNotFoundError(AppException):
    def __init__(self, session_id: str):
        super().__init__(
            status_code=404,
            error_code="SESSION_NOT_FOUND",
            message=f"Checkout session {session_id} not found",
            details={"session_id": session_id},
        )


class InvalidUpsellRequestError(AppException):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=400,
            error_code="INVALID_UPSELL_REQUEST",
            message=message,
            details=details,
        )


class NoCustomerLinkedError(AppException):
    """Raised when a session has no reusable customer + payment method pair."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=400,
            error_code="NO_CUSTOMER_LINKED",
            message=message,
            details=details,
        )


class UpsellChargeError(AppException):
    """Raised for Stripe failures that are neither declines nor step-up requests."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=500,
            error_code="UPSELL_CHARGE_ERROR",
            message=message,
            details=details,
        )


class ExternalServiceError(AppException):
    """Raised when an external API call (Shopify, Stripe) fails."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
            message=message,
            details=details,
        )
