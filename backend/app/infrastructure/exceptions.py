"""
Custom Exceptions for Unistudents Match

Hierarchical exception classes for proper error handling across layers.
Each class carries the HTTP status the uniform error responder maps it to.
"""

from typing import Optional, Dict, Any


class MembershipError(Exception):
    """Base exception for all membership backend errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error": {"message": self.message}}


class ValidationError(MembershipError):
    """Raised when input validation fails."""
    status_code = 400


class EmailAlreadyRegisteredError(ValidationError):
    """Raised when registering with an email that already has an account."""

    def __init__(self, message: str = "Email already exists"):
        super().__init__(message)


class AuthError(MembershipError):
    """Raised on bad credentials or a missing/invalid bearer token."""
    status_code = 401


class DatabaseError(MembershipError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    status_code = 404


# =============================================================================
# Subscription State Errors
# =============================================================================

class StateConflictError(MembershipError):
    """Raised when a request conflicts with the current subscription state."""
    status_code = 400


class AlreadySubscribedError(StateConflictError):

    def __init__(self, message: str = "User already subscribed"):
        super().__init__(message)


class NothingToCancelError(StateConflictError):

    def __init__(self, message: str = "No active subscription to cancel"):
        super().__init__(message)


class SubscriptionInProgressError(StateConflictError):
    """Raised when another subscribe request for the same user is in flight."""

    def __init__(self, message: str = "A subscription request is already in progress"):
        super().__init__(message)


class PaymentNotApprovedError(StateConflictError):
    """Raised when confirming a subscription the payer has not approved yet."""

    def __init__(
        self,
        message: str = "Payment has not been approved yet",
        provider_status: Optional[str] = None,
    ):
        details = {"provider_status": provider_status} if provider_status else {}
        super().__init__(message, details)


class PaymentAlreadyAppliedError(StateConflictError):
    """Raised when a one-shot charge that already paid for a period is confirmed again."""

    def __init__(self, message: str = "Payment has already been applied to a billing period"):
        super().__init__(message)


class ForeignSubscriptionError(ValidationError):
    """Raised when confirming a provider subscription created for another account."""

    def __init__(self, message: str = "Subscription does not belong to this account"):
        super().__init__(message)


class ProviderReferenceInUseError(ValidationError):
    """Raised when a provider id is already linked to a different account."""

    def __init__(self, message: str = "Payment is already linked to another account"):
        super().__init__(message)


# =============================================================================
# Payment Provider Errors
# =============================================================================

class ProviderError(MembershipError):
    """Raised when a payment provider call does not succeed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if provider:
            details["provider"] = provider
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)
        self.provider = provider
        self.operation = operation


class ProviderRejectedError(ProviderError):
    """Raised when the payment network declines the request."""
    status_code = 400


class ProviderUnavailableError(ProviderError):
    """Raised on transport failures and timeouts talking to a provider."""
    status_code = 502


class ConfigurationError(MembershipError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
