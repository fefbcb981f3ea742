"""
Custom Exceptions for the Directory Billing backend

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class DirectoryBillingError(Exception):
    """Base exception for all Directory Billing errors."""

    retryable: bool = False

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
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(DirectoryBillingError):
    """Raised when input validation fails."""
    pass


class AuthorizationError(DirectoryBillingError):
    """Raised when the caller lacks a required capability."""
    pass


class QuotaExceededError(DirectoryBillingError):
    """Raised when an account has used up its listing quota."""

    def __init__(self, account_id: str, quota: int, used: int):
        super().__init__(
            f"Listing quota of {quota} reached",
            {"account_id": account_id, "quota": quota, "used": used},
        )


class DatabaseError(DirectoryBillingError):
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
    pass


class StoreWriteFailedError(DatabaseError):
    """Raised when an entitlement write did not land. Safe to retry."""

    retryable = True


class CorrelationNotFoundError(DirectoryBillingError):
    """Raised when a billing event cannot be tied to any account."""

    def __init__(
        self,
        message: str = "No entitlement matches the event correlation refs",
        subscription_ref: Optional[str] = None,
        customer_ref: Optional[str] = None,
    ):
        details = {}
        if subscription_ref:
            details["subscription_ref"] = subscription_ref
        if customer_ref:
            details["customer_ref"] = customer_ref
        super().__init__(message, details)


class BillingProviderError(DirectoryBillingError):
    """Raised when the payment provider rejects a request."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ProviderUnreachableError(BillingProviderError):
    """Raised when the payment provider cannot be reached. Safe to retry."""

    retryable = True


class SignatureInvalidError(DirectoryBillingError):
    """Raised when a webhook payload fails signature verification."""
    pass


class NotificationFailedError(DirectoryBillingError):
    """Raised by notifiers when a send fails. Never fails a billing operation."""

    def __init__(
        self,
        message: str,
        template_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if template_id:
            details["template_id"] = template_id
        super().__init__(message, details, original_error)


class ConfigurationError(DirectoryBillingError):
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
