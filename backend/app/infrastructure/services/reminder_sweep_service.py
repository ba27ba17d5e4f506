"""
Reminder Sweep Service

Emails tenants whose platform subscription lapses in `window_days` days.

The window is the whole UTC day `now + window_days`, so a daily run
covers every subscription exactly once. Reminders already sent for the
same subscription and window within the dedup period are not repeated.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from app.domain.lifecycle import BillingPolicy
from app.domain.reports import ReminderResult, ReminderSweepReport
from app.domain.subscription import (
    ReminderRecord,
    Subscription,
    SubscriptionFilter,
    SubscriptionScope,
    SubscriptionStatus,
)
from app.infrastructure.db.database import SessionFactory, get_session_context
from app.infrastructure.db.repositories.reminder_repository import ReminderRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)


logger = logging.getLogger(__name__)


def day_start(moment: datetime) -> datetime:
    """Midnight UTC of the day containing `moment`."""
    moment = moment.astimezone(timezone.utc)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def reminder_window(now: datetime, window_days: int) -> Tuple[datetime, datetime]:
    """[start, end) of the UTC day `window_days` days after `now`."""
    start = day_start(now + timedelta(days=window_days))
    return start, start + timedelta(days=1)


def fallback_name(email: str) -> str:
    return email.split("@", 1)[0]


class ReminderSweepService:
    """
    Scheduled job: send expiration reminders.

    Args:
        policy: Window and dedup settings
        directory: Resolves tenant email and display name
        notifier: Sends the email; returns {"id": ...}
        session_factory: Opens one transaction per unit of work
        subscription_factory: Builds a subscription repository from a session
        reminder_factory: Builds a reminder repository from a session
    """

    def __init__(
        self,
        policy: BillingPolicy,
        directory,
        notifier,
        session_factory: SessionFactory = get_session_context,
        subscription_factory: Callable = SubscriptionRepository,
        reminder_factory: Callable = ReminderRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._policy = policy
        self._directory = directory
        self._notifier = notifier
        self._session_factory = session_factory
        self._subscription_factory = subscription_factory
        self._reminder_factory = reminder_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def sweep_reminders(
        self,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> ReminderSweepReport:
        """
        Find subscriptions lapsing in `window_days` days and email their owners.

        Raises:
            Exception: only when the selection query fails
        """
        now = now or self._clock()
        if window_days is None:
            window_days = self._policy.reminder_days_before
        window_start, window_end = reminder_window(now, window_days)

        logger.info(
            f"Checking reminders for subscriptions lapsing between "
            f"{window_start.isoformat()} and {window_end.isoformat()}"
        )

        async with self._session_factory() as session:
            candidates = await self._subscription_factory(session).list_subscriptions(
                SubscriptionFilter(
                    statuses=frozenset({SubscriptionStatus.ACTIVE}),
                    scope=SubscriptionScope.PLATFORM,
                    next_billing_from=window_start,
                    next_billing_until=window_end,
                )
            )

        if not candidates:
            logger.info("No subscriptions need reminders")
            return ReminderSweepReport(message="No subscriptions need reminders")

        targets = []
        skipped = 0
        for subscription in candidates:
            target = await self._resolve_target(subscription, window_days, now)
            if target is None:
                skipped += 1
            else:
                targets.append(target)

        outcomes = await asyncio.gather(
            *(self._dispatch(sub, email, name, window_days) for sub, email, name in targets),
            return_exceptions=True,
        )

        results: List[ReminderResult] = []
        for (subscription, email, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Reminder for subscription {subscription.id} failed: {outcome}")
                results.append(
                    ReminderResult(
                        subscription_id=subscription.id,
                        tenant_id=subscription.tenant_id,
                        email=email,
                        success=False,
                        error=str(outcome),
                    )
                )
                continue

            await self._record(subscription, window_days, now)
            results.append(
                ReminderResult(
                    subscription_id=subscription.id,
                    tenant_id=subscription.tenant_id,
                    email=email,
                    success=True,
                    email_id=outcome.get("id"),
                )
            )

        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        logger.info(
            f"Reminders: {successful} sent, {failed} failed, {skipped} skipped"
        )

        return ReminderSweepReport(
            message=f"Processed {len(candidates)} subscriptions",
            total=len(targets),
            successful=successful,
            failed=failed,
            skipped=skipped,
            results=results,
        )

    async def _resolve_target(
        self,
        subscription: Subscription,
        window_days: int,
        now: datetime,
    ) -> Optional[Tuple[Subscription, str, str]]:
        """(subscription, email, name) or None when it should not be emailed."""
        try:
            async with self._session_factory() as session:
                already_sent = await self._reminder_factory(session).has_recent_reminder(
                    subscription.id,
                    window_days,
                    since=now - timedelta(days=self._policy.reminder_dedup_days),
                )
            if already_sent:
                logger.info(f"Reminder already sent for subscription {subscription.id}")
                return None

            email = await self._directory.get_user_email(subscription.tenant_id)
            if not email:
                logger.warning(f"No email found for tenant {subscription.tenant_id}")
                return None

            name = await self._directory.get_display_name(subscription.tenant_id)
            return subscription, email, name or fallback_name(email)

        except Exception as e:
            logger.error(f"Could not prepare reminder for subscription {subscription.id}: {e}")
            return None

    async def _dispatch(
        self,
        subscription: Subscription,
        email: str,
        name: str,
        window_days: int,
    ) -> dict:
        return await self._notifier.send_reminder_email(
            tenant_id=subscription.tenant_id,
            email=email,
            name=name,
            days_remaining=window_days,
            next_billing_date=subscription.next_billing_date,
        )

    async def _record(self, subscription: Subscription, window_days: int, now: datetime) -> None:
        try:
            async with self._session_factory() as session:
                await self._reminder_factory(session).record_reminder(
                    ReminderRecord(
                        subscription_id=subscription.id,
                        tenant_id=subscription.tenant_id,
                        days_before_expiration=window_days,
                        sent_at=now,
                    )
                )
        except Exception as e:
            logger.error(f"Reminder sent but not recorded for subscription {subscription.id}: {e}")
