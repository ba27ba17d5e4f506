"""
Payment Domain Models

Validated view of a payment charge at the ingestion boundary.
Gateway metadata is loosely typed; everything downstream of PaymentEvent
can rely on a non-empty transaction id, an aware timestamp and a canonical
period length.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


CANONICAL_PERIODS = (1, 6, 12)


class PaymentScope(str, Enum):
    """Who the payment is for."""
    PLATFORM = "platform"  # tenant paying for its own access
    CUSTOMER = "customer"  # tenant's customer paying the tenant


def normalize_period_months(months: float) -> int:
    """
    Map any period length onto one of the canonical plan lengths.

    1, 6 and 12 pass through. Anything else is bucketed:
    <= 3 -> 1, <= 9 -> 6, otherwise 12.
    """
    if months in CANONICAL_PERIODS:
        return int(months)
    if months <= 3:
        return 1
    if months <= 9:
        return 6
    return 12


def coerce_period_months(raw: Any) -> int:
    """Turn whatever the gateway stored under metadata.months into a period."""
    if raw is None or raw == "" or raw is False:
        return 1
    try:
        months = float(raw)
    except (TypeError, ValueError):
        return 1
    if months == 0:
        return 1
    return normalize_period_months(months)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PaymentEvent(BaseModel):
    """A single confirmed payment as seen by the reconciler."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str = Field(..., min_length=1, description="Gateway txid (dedup key)")
    tenant_id: str
    amount: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    created_at: datetime
    period_months: int = 1
    scope: PaymentScope = PaymentScope.PLATFORM
    charge_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    processed_for: Optional[str] = None

    @field_validator("period_months", mode="before")
    @classmethod
    def _normalize_period(cls, value: Any) -> int:
        return coerce_period_months(value)

    @field_validator("paid_at", "created_at", "processed_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @property
    def effective_paid_at(self) -> datetime:
        """paid_at, falling back to created_at for charges confirmed without one."""
        return self.paid_at or self.created_at


class PaymentDetail(BaseModel):
    """Per-payment line in a reconciliation report."""
    transaction_id: str
    paid_at: datetime
    months: int
    amount: Decimal
