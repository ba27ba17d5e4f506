"""
Subscription Lifecycle Service

Self-service operations on a tenant's own platform subscription:
status, cancel, reactivate.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from app.domain.billing import days_remaining
from app.domain.lifecycle import cancellation_fields, has_access, reactivation_fields
from app.domain.subscription import (
    Subscription,
    SubscriptionScope,
    SubscriptionStatusResponse,
    validate_subscription_integrity,
)
from app.infrastructure.db.database import SessionFactory, get_session_context
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)


logger = logging.getLogger(__name__)


class SubscriptionLifecycleService:
    """Tenant-facing subscription operations."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session_context,
        subscription_factory: Callable = SubscriptionRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self._subscription_factory = subscription_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_status(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> SubscriptionStatusResponse:
        """
        Current platform subscription of the tenant.

        Raises:
            NotFoundError: tenant has no platform subscription
        """
        now = now or self._clock()

        async with self._session_factory() as session:
            subscription = await self._subscription_factory(session).get_platform_subscription(
                tenant_id
            )

        if subscription is None:
            raise NotFoundError(
                f"No platform subscription for tenant {tenant_id}",
                operation="get_status",
                table="subscriptions",
            )

        return SubscriptionStatusResponse(
            subscription_id=subscription.id,
            status=subscription.status,
            has_access=has_access(subscription, now),
            days_remaining=days_remaining(subscription.next_billing_date, now),
            start_date=subscription.start_date,
            last_billing_date=subscription.last_billing_date,
            next_billing_date=subscription.next_billing_date,
        )

    async def cancel(
        self,
        tenant_id: str,
        subscription_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Cancel the tenant's subscription. Access continues until next_billing_date.

        Raises:
            NotFoundError: not found or not owned by the tenant
            IntegrityViolationError: customer_id/plan_id disagree
            InvalidTransitionError: not active or trial
        """
        now = now or self._clock()
        return await self._apply(tenant_id, subscription_id, now, cancellation_fields, "cancelled")

    async def reactivate(
        self,
        tenant_id: str,
        subscription_id: str,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        Undo a cancellation while the paid window is still open.

        Raises:
            NotFoundError: not found or not owned by the tenant
            InvalidTransitionError: not cancelled, or access already lapsed
        """
        now = now or self._clock()
        return await self._apply(tenant_id, subscription_id, now, reactivation_fields, "reactivated")

    async def _apply(
        self,
        tenant_id: str,
        subscription_id: str,
        now: datetime,
        compute_fields: Callable[[Subscription, datetime], dict],
        action: str,
    ) -> Subscription:
        async with self._session_factory() as session:
            repo = self._subscription_factory(session)

            subscription = await repo.get_subscription(subscription_id)
            if subscription is None or subscription.tenant_id != str(tenant_id):
                raise NotFoundError(
                    f"Subscription {subscription_id} not found",
                    operation=action,
                    table="subscriptions",
                )

            scope = validate_subscription_integrity(subscription)
            if scope != SubscriptionScope.PLATFORM:
                raise ValidationError(
                    "Only platform subscriptions can be managed here",
                    details={"subscription_id": subscription_id, "scope": scope.value},
                )

            fields = compute_fields(subscription, now)
            updated = await repo.update_fields(
                subscription_id,
                fields,
                expected_status=subscription.status,
            )
            if not updated:
                raise InvalidTransitionError(
                    subscription.status.value,
                    fields["status"].value,
                    reason="subscription changed concurrently, retry",
                )

        logger.info(f"Subscription {subscription_id} {action} by tenant {tenant_id}")
        return subscription.model_copy(update=fields)
