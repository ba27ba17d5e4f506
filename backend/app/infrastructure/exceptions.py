"""
Custom Exceptions for the Platform Billing Service

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class BillingServiceError(Exception):
    """Base exception for all billing service errors."""

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
            "success": False,
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(BillingServiceError):
    """Raised when input validation fails."""
    pass


class DatabaseError(BillingServiceError):
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


class InvalidTransitionError(BillingServiceError):
    """Raised when a subscription status change is not allowed."""

    def __init__(
        self,
        current_status: str,
        target_status: str,
        reason: Optional[str] = None,
    ):
        message = f"Cannot move subscription from {current_status} to {target_status}"
        if reason:
            message = f"{message}: {reason}"
        details = {"current_status": current_status, "target_status": target_status}
        super().__init__(message, details)


class IntegrityViolationError(BillingServiceError):
    """Raised when a subscription row mixes platform and customer scope."""

    def __init__(
        self,
        subscription_id: Optional[str],
        customer_id: Optional[str],
        plan_id: Optional[str],
    ):
        message = (
            f"SUBSCRIPTION DATA CORRUPTION: Subscription {subscription_id} has "
            f"inconsistent data. customer_id={customer_id}, plan_id={plan_id}. "
            "Both must be null (platform) or both must be filled (customer)."
        )
        details = {"subscription_id": subscription_id}
        super().__init__(message, details)


class NotificationError(BillingServiceError):
    """Raised when the transactional email provider fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        recipient: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if provider:
            details["provider"] = provider
        if recipient:
            details["recipient"] = recipient
        super().__init__(message, details, original_error)


class ConfigurationError(BillingServiceError):
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
