"""Error Hierarchy — typed, categorized exceptions for every settlement failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Caller errors are 4xx and never retryable; gateway/infrastructure errors are 5xx
    - retryable is True only for GatewayUnavailableError and GatewayTimeoutError
    - Errors raised before the first write leave no side effects behind
    - to_response() produces the REST envelope; messages never carry internals
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    EXTERNAL_API = "external_api"
    TIMEOUT = "timeout"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Identifiers attached to an error for logs and the response envelope."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    order_id: str | None = None
    event_id: str | None = None
    external_id: str | None = None
    discount_id: str | None = None
    refund_id: str | None = None
    debug_info: dict[str, Any] | None = None


class BoxOfficeError(Exception):
    """Base exception for all BoxOffice errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.retryable = retryable

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "order_id": self.context.order_id,
                    "event_id": self.context.event_id,
                    "external_id": self.context.external_id,
                    "discount_id": self.context.discount_id,
                    "refund_id": self.context.refund_id,
                },
            }
        }


# ─── Caller Errors (400-level) ──────────────────────────────────

class ValidationError(BoxOfficeError):
    """Malformed or inadmissible request; rejected before any mutation."""
    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        field: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class EmptyCartError(ValidationError):
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "No tickets provided for the order", "EMPTY_CART",
            field="lines", context=context,
        )


class WrongTicketTypeError(ValidationError):
    """Ticket type does not exist on the event."""
    def __init__(self, ticket_type: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid ticket type '{ticket_type}' for this event",
            "WRONG_TICKET_TYPE", field="ticket_type", context=context,
        )
        self.ticket_type = ticket_type


class InvalidDiscountCodeError(ValidationError):
    def __init__(self, reason: str = "Invalid discount code", context: ErrorContext | None = None):
        super().__init__(
            reason, "INVALID_DISCOUNT_CODE", field="discount_code", context=context,
        )


class DiscountExpiredError(ValidationError):
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Discount code has expired", "DISCOUNT_EXPIRED",
            field="discount_code", context=context,
        )


class BelowMinimumPurchaseError(ValidationError):
    """Cart does not meet the discount's minimum (ticket count or subtotal)."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "BELOW_MINIMUM_PURCHASE", field="discount_code", context=context,
        )


class InvalidTransitionError(ValidationError):
    """Requested state transition is not allowed from the current state."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message, "INVALID_TRANSITION", context=context)
        self.category = ErrorCategory.BUSINESS_RULE


class NotFoundError(BoxOfficeError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class AuthorizationError(BoxOfficeError):
    """Caller does not own the resource or lacks the role."""
    def __init__(self, message: str, context: ErrorContext | None = None, http_status: int = 403):
        super().__init__(
            message, "NOT_AUTHORIZED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, http_status,
        )


class AuthenticationRequiredError(AuthorizationError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, http_status=401)
        self.code = "AUTHENTICATION_REQUIRED"


# ─── Conflicts (409) ────────────────────────────────────────────

class ConflictError(BoxOfficeError):
    """Concurrent state moved under the caller; re-quote instead of retrying blindly."""
    def __init__(
        self, message: str, code: str = "CONFLICT", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class OutOfStockError(ConflictError):
    def __init__(
        self, ticket_type: str, requested: int, available: int,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Not enough '{ticket_type}' tickets available "
            f"(requested {requested}, available {available})",
            "OUT_OF_STOCK", context,
        )
        self.ticket_type = ticket_type
        self.requested = requested
        self.available = available


class InventoryConflictError(ConflictError):
    """Atomic availability update refused (oversell race or over-capacity restock)."""
    def __init__(
        self, ticket_type: str, quantity: int,
        message: str | None = None, context: ErrorContext | None = None,
    ):
        super().__init__(
            message or (
                f"Availability for '{ticket_type}' changed; "
                f"{quantity} ticket(s) can no longer be settled"
            ),
            "INVENTORY_CONFLICT", context,
        )
        self.ticket_type = ticket_type
        self.quantity = quantity


class DiscountLimitReachedError(ConflictError):
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Discount code has reached maximum uses", "DISCOUNT_MAX_USES_REACHED", context,
        )


class DuplicateRefundRequestError(ConflictError):
    def __init__(self, existing_status: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            "A refund request already exists for this order",
            "DUPLICATE_REFUND_REQUEST", context,
        )
        self.existing_status = existing_status


class CaptureInProgressError(ConflictError):
    """A capture was attempted and its outcome is not yet reconciled."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Payment capture outcome is unknown; capture again to reconcile",
            "CAPTURE_IN_PROGRESS", context,
        )


# ─── Gateway Errors (external processor) ────────────────────────

class GatewayError(BoxOfficeError):
    """Payment processor call failed."""
    def __init__(
        self,
        message: str,
        code: str,
        http_status: int,
        retryable: bool,
        category: ErrorCategory = ErrorCategory.EXTERNAL_API,
        provider_issue: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.CRITICAL,
            context, http_status, retryable,
        )
        self.provider_issue = provider_issue


class GatewayAuthError(GatewayError):
    """Client-credential exchange failed or the token was refused."""
    def __init__(self, message: str = "Failed to authenticate with payment processor", context: ErrorContext | None = None):
        super().__init__(message, "GATEWAY_AUTH_ERROR", 502, False, context=context)


class GatewayValidationError(GatewayError):
    """Processor rejected this specific payment request."""
    def __init__(self, message: str, provider_issue: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "GATEWAY_VALIDATION_ERROR", 422, False,
            provider_issue=provider_issue, context=context,
        )
        self.severity = ErrorSeverity.ERROR


class GatewayUnavailableError(GatewayError):
    def __init__(self, message: str = "Payment processor unavailable", context: ErrorContext | None = None):
        super().__init__(message, "GATEWAY_UNAVAILABLE", 503, True, context=context)


class GatewayTimeoutError(GatewayError):
    def __init__(self, message: str = "Payment processor timed out", context: ErrorContext | None = None):
        super().__init__(
            message, "GATEWAY_TIMEOUT", 504, True,
            category=ErrorCategory.TIMEOUT, context=context,
        )


# ─── Infrastructure Errors ──────────────────────────────────────

class DatabaseError(BoxOfficeError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
