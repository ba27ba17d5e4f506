"""
Subscription Lifecycle

Allowed status transitions and the field changes each one writes.

    trial -> active | cancelled | expired
    active -> cancelled | expired
    cancelled -> active | expired
    expired -> active

Writing the current status again is a refresh, not a transition.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from app.domain.billing import DEFAULT_GUARD_RAIL_DAYS
from app.domain.payments import PaymentEvent
from app.domain.subscription import (
    ACCESS_STATUSES,
    Subscription,
    SubscriptionStatus,
)
from app.infrastructure.exceptions import InvalidTransitionError


ALLOWED_TRANSITIONS = {
    SubscriptionStatus.TRIAL: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.CANCELLED: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.EXPIRED: frozenset({
        SubscriptionStatus.ACTIVE,
    }),
}


@dataclass(frozen=True)
class BillingPolicy:
    """Tunable billing rules, built from Settings by the API layer."""
    guard_rail_days: int = DEFAULT_GUARD_RAIL_DAYS
    corruption_threshold_days: int = 400
    full_resync: bool = False
    reactivate_cancelled_on_payment: bool = True
    reminder_days_before: int = 3
    reminder_dedup_days: int = 2
    concurrency: int = 5

    @classmethod
    def from_settings(cls, settings) -> "BillingPolicy":
        return cls(
            guard_rail_days=settings.guard_rail_days,
            corruption_threshold_days=settings.reconcile_corruption_threshold_days,
            full_resync=settings.reconcile_full_resync,
            reactivate_cancelled_on_payment=settings.reactivate_cancelled_on_payment,
            reminder_days_before=settings.reminder_days_before,
            reminder_dedup_days=settings.reminder_dedup_days,
            concurrency=settings.reconcile_concurrency,
        )


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """True for allowed transitions and same-status refreshes."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


def transition_fields(
    subscription: Subscription,
    target: SubscriptionStatus,
    now: datetime,
) -> Dict[str, Any]:
    """
    Field changes for moving a subscription to `target`.

    Entering active always clears the failed payment counter.
    next_billing_date is never touched here: cancelled subscriptions keep
    their access window.

    Raises:
        InvalidTransitionError: the move is not in ALLOWED_TRANSITIONS
    """
    if not can_transition(subscription.status, target):
        raise InvalidTransitionError(subscription.status.value, target.value)

    fields: Dict[str, Any] = {"status": target, "updated_at": now}
    if target == SubscriptionStatus.ACTIVE:
        fields["failed_payments_count"] = 0
    return fields


def has_new_payment(
    events: Iterable[PaymentEvent],
    subscription: Optional[Subscription],
) -> bool:
    """
    Whether any payment has not been consumed yet.

    A charge already stamped with a processed marker still counts when the
    subscription is cancelled and the charge was paid after the row last
    changed.
    """
    cancelled_at = None
    if subscription is not None and subscription.status == SubscriptionStatus.CANCELLED:
        cancelled_at = subscription.updated_at

    return any(
        event.processed_at is None
        or (cancelled_at is not None and event.effective_paid_at > cancelled_at)
        for event in events
    )


def resolve_reconciled_status(
    current: Optional[SubscriptionStatus],
    days_left: int,
    policy: BillingPolicy,
    has_new_payment: bool,
) -> SubscriptionStatus:
    """
    Status to write after recomputing billing dates from payments.

    Paid-up subscriptions become active, lapsed ones expired. A cancelled
    subscription only flips back to active when a payment it has not seen
    yet is being reconciled and the policy allows reactivation by payment.
    """
    target = SubscriptionStatus.ACTIVE if days_left > 0 else SubscriptionStatus.EXPIRED

    if current is None:
        return target

    if (
        current == SubscriptionStatus.CANCELLED
        and target == SubscriptionStatus.ACTIVE
        and not (has_new_payment and policy.reactivate_cancelled_on_payment)
    ):
        return SubscriptionStatus.CANCELLED

    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    return target


def cancellation_fields(subscription: Subscription, now: datetime) -> Dict[str, Any]:
    """Cancel an active or trial subscription; access lasts until next_billing_date."""
    if subscription.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL):
        raise InvalidTransitionError(
            subscription.status.value,
            SubscriptionStatus.CANCELLED.value,
            reason="only active or trial subscriptions can be cancelled",
        )
    return transition_fields(subscription, SubscriptionStatus.CANCELLED, now)


def reactivation_fields(subscription: Subscription, now: datetime) -> Dict[str, Any]:
    """Undo a cancellation while the paid window is still open."""
    if subscription.status != SubscriptionStatus.CANCELLED:
        raise InvalidTransitionError(
            subscription.status.value,
            SubscriptionStatus.ACTIVE.value,
            reason="subscription is not cancelled",
        )
    if subscription.next_billing_date is None or subscription.next_billing_date <= now:
        raise InvalidTransitionError(
            subscription.status.value,
            SubscriptionStatus.ACTIVE.value,
            reason="access window has closed, a new payment is required",
        )
    return transition_fields(subscription, SubscriptionStatus.ACTIVE, now)


def has_access(subscription: Subscription, now: datetime) -> bool:
    """Whether the tenant can use the platform at `now`."""
    return (
        subscription.status in ACCESS_STATUSES
        and subscription.next_billing_date is not None
        and subscription.next_billing_date > now
    )
