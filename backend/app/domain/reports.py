"""
Job Report DTOs

Request bodies and JSON reports for reconciliation and the scheduled sweeps.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.payments import PaymentDetail
from app.domain.subscription import SubscriptionScope, SubscriptionStatus


PLATFORM_RECALC_TAG = "platform_recalc"


class ReconciliationOutcome(str, Enum):
    """Per-tenant reconciliation outcome."""
    UPDATED = "updated"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"
    ERROR = "error"


# =============================================================================
# Requests
# =============================================================================

class ReconcileRequest(BaseModel):
    """Body of the reconcile job; both fields optional."""
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    dry_run: bool = Field(default=False, alias="dryRun")


# =============================================================================
# Reconciliation
# =============================================================================

class TenantReconciliation(BaseModel):
    """What reconciliation found (and did) for one tenant."""
    tenant_id: str
    subscription_id: Optional[str] = None
    status: ReconciliationOutcome
    reason: Optional[str] = None
    changed: bool = False
    old_next_billing_date: Optional[datetime] = None
    old_days: Optional[int] = None
    new_next_billing_date: Optional[datetime] = None
    new_days: Optional[int] = None
    previous_status: Optional[SubscriptionStatus] = None
    new_status: Optional[SubscriptionStatus] = None
    start_date: Optional[datetime] = None
    last_billing_date: Optional[datetime] = None
    total_payments: int = 0
    total_months: int = 0
    clamped: bool = False
    payment_details: List[PaymentDetail] = Field(default_factory=list)
    error: Optional[str] = None


class ReconciliationSummary(BaseModel):
    total_checked: int
    total_processed: int
    updated: int
    errors: int
    skipped: int
    dry_run: bool


class ReconciliationReport(BaseModel):
    """Aggregate report returned by the reconcile job."""
    success: bool = True
    summary: ReconciliationSummary
    results: List[TenantReconciliation]

    @classmethod
    def build(
        cls,
        results: List[TenantReconciliation],
        total_checked: int,
        dry_run: bool,
    ) -> "ReconciliationReport":
        def count(outcome: ReconciliationOutcome) -> int:
            return sum(1 for r in results if r.status == outcome)

        summary = ReconciliationSummary(
            total_checked=total_checked,
            total_processed=len(results),
            updated=count(ReconciliationOutcome.UPDATED),
            errors=count(ReconciliationOutcome.ERROR),
            skipped=count(ReconciliationOutcome.SKIPPED),
            dry_run=dry_run,
        )
        return cls(summary=summary, results=results)


# =============================================================================
# Expiry sweep
# =============================================================================

class ExpiredResult(BaseModel):
    subscription_id: Optional[str]
    tenant_id: str
    scope: Optional[SubscriptionScope] = None
    success: bool
    previous_status: Optional[SubscriptionStatus] = None
    new_status: Optional[SubscriptionStatus] = None
    error: Optional[str] = None


class ExpirySweepReport(BaseModel):
    success: bool = True
    message: str
    results: List[ExpiredResult]


# =============================================================================
# Reminder sweep
# =============================================================================

class ReminderResult(BaseModel):
    subscription_id: str
    tenant_id: str
    email: Optional[str] = None
    success: bool
    email_id: Optional[str] = None
    error: Optional[str] = None


class ReminderSweepReport(BaseModel):
    success: bool = True
    message: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[ReminderResult] = Field(default_factory=list)
