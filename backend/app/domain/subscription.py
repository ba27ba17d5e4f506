"""
Subscription Domain Models

Domain models for the platform subscription lifecycle.
Enums, entities and DTOs for the subscription bounded context.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator

from app.domain.payments import ensure_utc
from app.infrastructure.exceptions import IntegrityViolationError


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionScope(str, Enum):
    """Platform rows have neither customer nor plan; customer rows have both."""
    PLATFORM = "platform"
    CUSTOMER = "customer"


# Statuses the expiry sweep is allowed to move to expired
EXPIRABLE_STATUSES: FrozenSet[SubscriptionStatus] = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIAL,
    SubscriptionStatus.CANCELLED,
})

# Statuses that still grant access while next_billing_date is in the future
ACCESS_STATUSES: FrozenSet[SubscriptionStatus] = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIAL,
    SubscriptionStatus.CANCELLED,
})


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Core subscription domain entity."""
    id: Optional[str] = None
    tenant_id: str
    customer_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.TRIAL
    start_date: Optional[datetime] = None
    last_billing_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    failed_payments_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator(
        "start_date", "last_billing_date", "next_billing_date", "created_at", "updated_at"
    )
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @property
    def scope(self) -> Optional[SubscriptionScope]:
        """Scope derived from customer/plan ids; None when they disagree."""
        if self.customer_id is None and self.plan_id is None:
            return SubscriptionScope.PLATFORM
        if self.customer_id is not None and self.plan_id is not None:
            return SubscriptionScope.CUSTOMER
        return None


class ReminderRecord(BaseModel):
    """A sent expiration reminder."""
    id: Optional[str] = None
    subscription_id: str
    tenant_id: str
    days_before_expiration: int = 3
    sent_at: datetime

    @field_validator("sent_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


@dataclass(frozen=True)
class SubscriptionFilter:
    """Selection criteria for listing subscriptions."""
    statuses: Optional[FrozenSet[SubscriptionStatus]] = None
    scope: Optional[SubscriptionScope] = None
    tenant_id: Optional[str] = None
    next_billing_before: Optional[datetime] = None  # exclusive
    next_billing_from: Optional[datetime] = None  # inclusive
    next_billing_until: Optional[datetime] = None  # exclusive


# =============================================================================
# Response DTOs
# =============================================================================

class SubscriptionStatusResponse(BaseModel):
    """Response DTO for the caller's platform subscription."""
    subscription_id: Optional[str] = None
    status: SubscriptionStatus
    has_access: bool = Field(description="Whether the tenant can use the platform now")
    days_remaining: Optional[int] = None
    start_date: Optional[datetime] = None
    last_billing_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    """Response DTO for cancel/reactivate."""
    success: bool = True
    message: str
    subscription: Subscription


# =============================================================================
# Business Rules
# =============================================================================

def validate_subscription_integrity(subscription: Subscription) -> SubscriptionScope:
    """
    Return the subscription's scope or fail on a half-platform, half-customer row.

    Raises:
        IntegrityViolationError: exactly one of customer_id/plan_id is set
    """
    scope = subscription.scope
    if scope is None:
        raise IntegrityViolationError(
            subscription.id, subscription.customer_id, subscription.plan_id
        )
    return scope
