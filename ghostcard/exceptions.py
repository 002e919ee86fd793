"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  Custom exceptions let the service layer raise domain-specific errors
  (like CardLimitReachedError) without importing HTTP concepts. The handler
  layer then translates these into proper HTTP responses.

  This separation means:
    - Service code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Adding new error types is straightforward

Every error response uses the same envelope:
    {"message": "...", "error_type": "...", "details": ...}

Exception hierarchy:
    GhostCardError (base)
    ├── InvalidRequestError (400)
    │   ├── MissingFieldsError
    │   ├── InvalidExpiryFormatError
    │   ├── CardVerificationError       — CVV / expiry mismatch
    │   ├── CardExpiredError
    │   ├── ChargeLimitExceededError
    │   ├── CardLimitReachedError       — too many active cards
    │   └── DuplicateEmailError
    ├── AuthenticationError (401)
    │   ├── InvalidCredentialsError
    │   └── InvalidTokenError
    ├── PermissionDeniedError (403)
    ├── NotFoundError (404)
    ├── RateLimitExceededError (429)
    ├── ChargeSettlementError (500)     — saga failed after validation
    └── CardNumberUnavailableError (503)
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class GhostCardError(Exception):
    """Base exception for all GhostCard domain errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An error occurred", details=None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def to_content(self) -> dict:
        content = {"message": self.message, "error_type": self.error_type}
        if self.details is not None:
            content["details"] = self.details
        return content


# ---------------------------------------------------------------------------
# 400 — validation and business-rule rejections
# ---------------------------------------------------------------------------

class InvalidRequestError(GhostCardError):
    status_code = 400
    error_type = "invalid_request"


class MissingFieldsError(InvalidRequestError):
    """Raised when a charge request omits one of its required fields."""

    error_type = "missing_fields"

    def __init__(self, required: list[str], missing: list[str]):
        self.required = required
        self.missing = missing
        super().__init__(
            "Missing required fields",
            details={"required": required, "missing": missing},
        )


class InvalidExpiryFormatError(InvalidRequestError):
    error_type = "invalid_expiry_format"

    def __init__(self):
        super().__init__(
            "Invalid expiry date format",
            details={"expected_format": "MM/YYYY"},
        )


class CardVerificationError(InvalidRequestError):
    """Raised when the presented CVV or expiry date does not match the card."""

    error_type = "card_verification_failed"


class CardExpiredError(InvalidRequestError):
    error_type = "card_expired"

    def __init__(self):
        super().__init__("Card has expired")


class ChargeLimitExceededError(InvalidRequestError):
    """
    Raised when a charge amount is above the card's authorization.

    Attributes:
        requested_cents: The amount the merchant tried to charge.
        max_limit_cents: The card's fixed maximum limit.
    """

    error_type = "limit_exceeded"

    def __init__(self, requested_cents: int, max_limit_cents: int):
        self.requested_cents = requested_cents
        self.max_limit_cents = max_limit_cents
        super().__init__(
            "Charge amount exceeds card limit",
            details={
                "requested_cents": requested_cents,
                "max_limit_cents": max_limit_cents,
            },
        )


class CardLimitReachedError(InvalidRequestError):
    """Raised when a user already holds the maximum number of active cards."""

    error_type = "card_limit_reached"

    def __init__(self, max_active_cards: int):
        self.max_active_cards = max_active_cards
        super().__init__(
            "Maximum active cards limit reached",
            details=f"You can only have a maximum of {max_active_cards} active cards at a time",
        )


class DuplicateEmailError(InvalidRequestError):
    """Raised when attempting to register with an email that's already in use."""

    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


# ---------------------------------------------------------------------------
# 401 / 403 — authentication and authorization
# ---------------------------------------------------------------------------

class AuthenticationError(GhostCardError):
    status_code = 401
    error_type = "authentication_failed"

    def __init__(self, message: str = "Authentication required", details=None):
        super().__init__(message, details)


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials are incorrect."""

    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer or refresh token is expired, malformed or forged."""

    error_type = "invalid_token"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class PermissionDeniedError(GhostCardError):
    """Raised when the caller's role or ownership does not allow the action."""

    status_code = 403
    error_type = "permission_denied"

    def __init__(self, message: str = "Access denied", details=None):
        super().__init__(message, details)


# ---------------------------------------------------------------------------
# 404 — missing resources
# ---------------------------------------------------------------------------

class NotFoundError(GhostCardError):
    status_code = 404
    error_type = "not_found"


# ---------------------------------------------------------------------------
# 429 / 5xx
# ---------------------------------------------------------------------------

class RateLimitExceededError(GhostCardError):
    """
    Raised by a rate limiter when a client exhausts its window.

    Attributes:
        retry_after: Seconds until the client's window resets.
    """

    status_code = 429
    error_type = "rate_limit_exceeded"

    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message)

    def to_content(self) -> dict:
        content = super().to_content()
        content["retry_after"] = self.retry_after
        return content


class ChargeSettlementError(GhostCardError):
    """
    Raised when a validated charge could not be persisted.

    Attributes:
        failed_step: Name of the saga step that raised.
        saga_state: Final saga state ("compensated" or "compensation_failed").
    """

    error_type = "charge_settlement_failed"

    def __init__(self, message: str, failed_step: str | None, saga_state: str, cause: str):
        self.failed_step = failed_step
        self.saga_state = saga_state
        super().__init__(
            message,
            details={"step": failed_step, "state": saga_state, "error": cause},
        )


class CardNumberUnavailableError(GhostCardError):
    """Raised when no unused card number was found within the attempt budget."""

    status_code = 503
    error_type = "card_number_unavailable"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            "Could not allocate a unique card number, please try again",
            details={"attempts": attempts},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Domain errors, HTTPExceptions and request-validation errors are all
    rendered in the {"message", "error_type", "details"} envelope.

    This is called once from the application factory in main.py.
    """

    @app.exception_handler(GhostCardError)
    async def ghostcard_error_handler(
        request: Request, exc: GhostCardError
    ) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error(
                "request_error",
                path=request.url.path,
                error_type=exc.error_type,
                error=exc.message,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_content(),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail, "error_type": "http_error"},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "message": "Request validation failed",
                "error_type": "validation_error",
                "details": jsonable_encoder(exc.errors()),
            },
        )
