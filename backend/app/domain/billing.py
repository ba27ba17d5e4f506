"""
Billing Period Calculations

Pure functions that turn a payment history into billing dates:
dedupe -> sort -> accumulate. No I/O, no hidden clock besides the
guard-rail's `now`.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from app.domain.payments import PaymentDetail, PaymentEvent, ensure_utc
from app.infrastructure.exceptions import ValidationError


DEFAULT_GUARD_RAIL_DAYS = 400
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class AccumulationResult:
    """Outcome of replaying a tenant's payments in order."""
    next_billing_date: datetime
    total_months: int
    start_date: datetime
    last_billing_date: datetime
    clamped: bool = False
    payment_details: List[PaymentDetail] = field(default_factory=list)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month addition; Jan 31 + 1 month lands on the last day of Feb."""
    return moment + relativedelta(months=months)


def sort_by_effective_paid_at(events: Iterable[PaymentEvent]) -> List[PaymentEvent]:
    """Stable ascending sort by paid_at (created_at when paid_at is missing)."""
    return sorted(events, key=lambda event: event.effective_paid_at)


def dedupe(events: Iterable[PaymentEvent]) -> List[PaymentEvent]:
    """
    Collapse retried/replayed webhook deliveries into one event per txid.

    The first occurrence in input order wins, so callers sort first when
    they want the earliest delivery kept.

    Raises:
        ValidationError: an event carries no transaction id
    """
    seen = set()
    unique = []
    for event in events:
        if not event.transaction_id:
            raise ValidationError(
                "Payment event without transaction id",
                details={"charge_id": event.charge_id, "tenant_id": event.tenant_id},
            )
        if event.transaction_id in seen:
            continue
        seen.add(event.transaction_id)
        unique.append(event)
    return unique


def accumulate(
    events: List[PaymentEvent],
    now: Optional[datetime] = None,
    guard_rail_days: int = DEFAULT_GUARD_RAIL_DAYS,
) -> AccumulationResult:
    """
    Replay deduplicated, sorted payments to find when access lapses.

    A payment made before the running end date stacks on top of it; a
    payment made after the lapse restarts from its own paid time. The
    final date is clamped to `now + guard_rail_days`.

    Args:
        events: Non-empty, deduplicated, sorted ascending by effective paid time
        now: Reference time for the guard-rail (defaults to current UTC time)
        guard_rail_days: Maximum distance of the result from `now`

    Returns:
        AccumulationResult with the computed dates and per-payment details

    Raises:
        ValidationError: events is empty
    """
    if not events:
        raise ValidationError("Cannot accumulate billing periods without payments")

    now = ensure_utc(now) or datetime.now(timezone.utc)

    cursor: Optional[datetime] = None
    total_months = 0
    details = []

    for event in events:
        months = event.period_months
        paid_at = event.effective_paid_at
        total_months += months
        details.append(
            PaymentDetail(
                transaction_id=event.transaction_id,
                paid_at=paid_at,
                months=months,
                amount=event.amount,
            )
        )

        if cursor is not None and paid_at < cursor:
            cursor = add_months(cursor, months)
        else:
            cursor = add_months(paid_at, months)

    ceiling = now + timedelta(days=guard_rail_days)
    clamped = cursor > ceiling
    if clamped:
        cursor = ceiling

    return AccumulationResult(
        next_billing_date=cursor,
        total_months=total_months,
        start_date=events[0].effective_paid_at,
        last_billing_date=events[-1].effective_paid_at,
        clamped=clamped,
        payment_details=details,
    )


def days_remaining(next_billing_date: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days until next_billing_date, rounded up; None when unknown."""
    if next_billing_date is None:
        return None
    delta = ensure_utc(next_billing_date) - ensure_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)
