"""
Expiry Sweep Service

Moves every subscription whose paid window has closed to `expired`.
Covers platform and customer subscriptions alike.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.domain.lifecycle import transition_fields
from app.domain.reports import ExpiredResult, ExpirySweepReport
from app.domain.subscription import (
    EXPIRABLE_STATUSES,
    Subscription,
    SubscriptionFilter,
    SubscriptionStatus,
    validate_subscription_integrity,
)
from app.infrastructure.db.database import SessionFactory, get_session_context
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)


logger = logging.getLogger(__name__)


class ExpirySweepService:
    """
    Scheduled job: expire lapsed subscriptions.

    Each row is updated in its own transaction and only if its status has
    not changed since it was selected, so re-running is a no-op.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session_context,
        subscription_factory: Callable = SubscriptionRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self._subscription_factory = subscription_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[ExpiredResult]:
        """
        Expire every active/trial/cancelled subscription with next_billing_date < now.

        Raises:
            Exception: only when the selection query fails
        """
        now = now or self._clock()

        async with self._session_factory() as session:
            candidates = await self._subscription_factory(session).list_subscriptions(
                SubscriptionFilter(statuses=EXPIRABLE_STATUSES, next_billing_before=now)
            )

        logger.info(f"Found {len(candidates)} lapsed subscriptions")

        results = []
        for subscription in candidates:
            result = await self._expire_one(subscription, now)
            if result is not None:
                results.append(result)

        failed = sum(1 for r in results if not r.success)
        logger.info(f"Expired {len(results) - failed} subscriptions, {failed} failed")
        return results

    async def run(self, now: Optional[datetime] = None) -> ExpirySweepReport:
        """Sweep and wrap the results in the job report."""
        results = await self.sweep_expired(now)
        return ExpirySweepReport(
            message=f"Processed {len(results)} subscriptions",
            results=results,
        )

    async def _expire_one(
        self,
        subscription: Subscription,
        now: datetime,
    ) -> Optional[ExpiredResult]:
        previous_status = subscription.status

        try:
            scope = validate_subscription_integrity(subscription)
            fields = transition_fields(subscription, SubscriptionStatus.EXPIRED, now)

            async with self._session_factory() as session:
                updated = await self._subscription_factory(session).update_fields(
                    subscription.id,
                    fields,
                    expected_status=previous_status,
                )

            if not updated:
                logger.info(
                    f"Subscription {subscription.id} changed status since selection, leaving it"
                )
                return None

            logger.info(
                f"Subscription {subscription.id} ({scope.value}) "
                f"{previous_status.value} -> expired"
            )
            return ExpiredResult(
                subscription_id=subscription.id,
                tenant_id=subscription.tenant_id,
                scope=scope,
                success=True,
                previous_status=previous_status,
                new_status=SubscriptionStatus.EXPIRED,
            )

        except Exception as e:
            logger.error(f"Failed to expire subscription {subscription.id}: {e}")
            return ExpiredResult(
                subscription_id=subscription.id,
                tenant_id=subscription.tenant_id,
                scope=subscription.scope,
                success=False,
                previous_status=previous_status,
                error=str(e),
            )
