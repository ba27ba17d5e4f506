"""
Reconciliation Service

Recomputes platform billing state from the raw payment history.

Per tenant, strictly in order:
    ledger -> sort -> dedupe -> accumulate -> compare -> write + mark

Tenants are independent and run concurrently (bounded). A failure in one
tenant is reported inline and never stops the others. Each tenant's
subscription write and idempotency marker share one transaction.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from app.domain.billing import (
    accumulate,
    days_remaining,
    dedupe,
    sort_by_effective_paid_at,
)
from app.domain.lifecycle import (
    BillingPolicy,
    has_new_payment,
    resolve_reconciled_status,
)
from app.domain.reports import (
    PLATFORM_RECALC_TAG,
    ReconciliationOutcome,
    ReconciliationReport,
    TenantReconciliation,
)
from app.domain.subscription import (
    Subscription,
    SubscriptionFilter,
    SubscriptionScope,
    SubscriptionStatus,
)
from app.infrastructure.db.database import SessionFactory, get_session_context
from app.infrastructure.db.repositories.payment_ledger_repository import (
    PaymentLedgerRepository,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService:
    """
    Orchestrates dedupe -> accumulate -> state write for one or many tenants.

    Args:
        policy: Billing rules (guard-rail, thresholds, reactivation policy)
        session_factory: Opens one transaction per unit of work
        ledger_factory: Builds a payment ledger repository from a session
        subscription_factory: Builds a subscription repository from a session
        clock: Source of `now`
    """

    def __init__(
        self,
        policy: BillingPolicy,
        session_factory: SessionFactory = get_session_context,
        ledger_factory: Callable = PaymentLedgerRepository,
        subscription_factory: Callable = SubscriptionRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._policy = policy
        self._session_factory = session_factory
        self._ledger_factory = ledger_factory
        self._subscription_factory = subscription_factory
        self._clock = clock

    async def reconcile(
        self,
        tenant_id: Optional[str] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> ReconciliationReport:
        """
        Reconcile one tenant, or scan for subscriptions that look corrupted.

        Args:
            tenant_id: Always reconcile this tenant (explicit repair path)
            dry_run: Compute and report without writing anything
            now: Reference time (defaults to the clock)

        Returns:
            ReconciliationReport with per-tenant results and a summary

        Raises:
            Exception: only when the initial selection query fails
        """
        now = now or self._clock()
        mode = " (DRY RUN)" if dry_run else ""
        target_label = f"tenant {tenant_id}" if tenant_id else "suspicious subscriptions"
        logger.info(f"Reconciling {target_label}{mode}")

        targets, total_checked = await self._select_targets(tenant_id, now)
        logger.info(f"Selected {len(targets)} of {total_checked} platform subscriptions")

        semaphore = asyncio.Semaphore(self._policy.concurrency)

        async def run(target: Tuple[str, Optional[Subscription]]) -> TenantReconciliation:
            async with semaphore:
                return await self._reconcile_tenant(target[0], target[1], dry_run, now)

        results = list(await asyncio.gather(*(run(t) for t in targets)))
        report = ReconciliationReport.build(results, total_checked, dry_run)

        logger.info(f"Reconciliation summary: {report.summary.model_dump()}")
        return report

    async def _select_targets(
        self,
        tenant_id: Optional[str],
        now: datetime,
    ) -> Tuple[List[Tuple[str, Optional[Subscription]]], int]:
        async with self._session_factory() as session:
            subscriptions = self._subscription_factory(session)

            if tenant_id:
                existing = await subscriptions.get_platform_subscription(tenant_id)
                return [(tenant_id, existing)], 1

            candidates = await subscriptions.list_subscriptions(
                SubscriptionFilter(scope=SubscriptionScope.PLATFORM)
            )

        targets = [
            (subscription.tenant_id, subscription)
            for subscription in candidates
            if self._needs_repair(subscription, now)
        ]
        return targets, len(candidates)

    def _needs_repair(self, subscription: Subscription, now: datetime) -> bool:
        """Threshold heuristic for the opportunistic scan."""
        if self._policy.full_resync:
            return True
        days = days_remaining(subscription.next_billing_date, now)
        return days is not None and days > self._policy.corruption_threshold_days

    async def _reconcile_tenant(
        self,
        tenant_id: str,
        subscription: Optional[Subscription],
        dry_run: bool,
        now: datetime,
    ) -> TenantReconciliation:
        old_next = subscription.next_billing_date if subscription else None
        old_days = days_remaining(old_next, now)
        previous_status = subscription.status if subscription else None
        subscription_id = subscription.id if subscription else None

        logger.info(f"Processing tenant {tenant_id} (current days: {old_days})")

        try:
            async with self._session_factory() as session:
                ledger = self._ledger_factory(session)
                subscriptions = self._subscription_factory(session)

                events = await ledger.list_paid_platform_events(tenant_id)
                unique = dedupe(sort_by_effective_paid_at(events))
                logger.info(
                    f"Tenant {tenant_id}: {len(events)} payments, {len(unique)} unique"
                )

                if not unique:
                    logger.info(f"No payments found for tenant {tenant_id}, skipping")
                    return TenantReconciliation(
                        tenant_id=tenant_id,
                        subscription_id=subscription_id,
                        status=ReconciliationOutcome.SKIPPED,
                        reason="no_payments",
                        old_next_billing_date=old_next,
                        old_days=old_days,
                        previous_status=previous_status,
                    )

                result = accumulate(unique, now=now, guard_rail_days=self._policy.guard_rail_days)
                if result.clamped:
                    logger.warning(
                        f"Tenant {tenant_id}: next billing date clamped to "
                        f"{self._policy.guard_rail_days} days"
                    )

                new_days = days_remaining(result.next_billing_date, now)
                new_status = resolve_reconciled_status(
                    previous_status,
                    new_days,
                    self._policy,
                    has_new_payment=has_new_payment(unique, subscription),
                )

                logger.info(
                    f"Tenant {tenant_id}: {old_days} -> {new_days} days, "
                    f"{result.total_months} months paid"
                )

                report = TenantReconciliation(
                    tenant_id=tenant_id,
                    subscription_id=subscription_id,
                    status=ReconciliationOutcome.DRY_RUN,
                    changed=(old_next != result.next_billing_date or previous_status != new_status),
                    old_next_billing_date=old_next,
                    old_days=old_days,
                    new_next_billing_date=result.next_billing_date,
                    new_days=new_days,
                    previous_status=previous_status,
                    new_status=new_status,
                    start_date=result.start_date,
                    last_billing_date=result.last_billing_date,
                    total_payments=len(unique),
                    total_months=result.total_months,
                    clamped=result.clamped,
                    payment_details=result.payment_details,
                )

                if dry_run:
                    return report

                fields = {
                    "start_date": result.start_date,
                    "last_billing_date": result.last_billing_date,
                    "next_billing_date": result.next_billing_date,
                    "status": new_status,
                    "updated_at": now,
                }
                if new_status == SubscriptionStatus.ACTIVE:
                    fields["failed_payments_count"] = 0

                await subscriptions.upsert_platform_subscription(tenant_id, fields)
                await ledger.mark_events_processed(
                    [event.transaction_id for event in unique],
                    PLATFORM_RECALC_TAG,
                    now,
                )

            logger.info(f"Tenant {tenant_id}: subscription updated")
            return report.model_copy(update={"status": ReconciliationOutcome.UPDATED})

        except Exception as e:
            logger.error(f"Error reconciling tenant {tenant_id}: {e}")
            return TenantReconciliation(
                tenant_id=tenant_id,
                subscription_id=subscription_id,
                status=ReconciliationOutcome.ERROR,
                old_next_billing_date=old_next,
                old_days=old_days,
                previous_status=previous_status,
                error=str(e),
            )
