"""
Subscription Repository

Data access layer for subscription persistence.
Every write is one statement so a tenant's billing tuple lands atomically.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import (
    Subscription,
    SubscriptionFilter,
    SubscriptionScope,
    SubscriptionStatus,
)
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.subscription import (
    PLATFORM_ROW_PREDICATE,
    SubscriptionModel,
)
from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_uuid,
    to_column_values,
)


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """Repository for platform and customer subscriptions."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """Get subscription by its ID."""
        model = await self.get_by_id(subscription_id)
        return self._to_domain(model) if model else None

    async def get_platform_subscription(self, tenant_id: str) -> Optional[Subscription]:
        """
        Get the tenant's own platform subscription.

        Args:
            tenant_id: Owning account (auth user) ID

        Returns:
            Subscription domain model or None
        """
        models = await self.list_where(
            SubscriptionModel.user_id == as_uuid(tenant_id),
            SubscriptionModel.customer_id.is_(None),
            SubscriptionModel.plan_id.is_(None),
            order_by=SubscriptionModel.created_at.desc(),
        )
        return self._to_domain(models[0]) if models else None

    async def list_subscriptions(self, filter: SubscriptionFilter) -> List[Subscription]:
        """
        List subscriptions matching a filter.

        Rows whose customer_id/plan_id disagree are only returned when no
        scope is requested, so integrity checks can report them.
        """
        criteria = []

        if filter.statuses:
            criteria.append(
                SubscriptionModel.status.in_([s.value for s in filter.statuses])
            )
        if filter.scope == SubscriptionScope.PLATFORM:
            criteria.append(SubscriptionModel.customer_id.is_(None))
            criteria.append(SubscriptionModel.plan_id.is_(None))
        elif filter.scope == SubscriptionScope.CUSTOMER:
            criteria.append(SubscriptionModel.customer_id.is_not(None))
            criteria.append(SubscriptionModel.plan_id.is_not(None))
        if filter.tenant_id:
            criteria.append(SubscriptionModel.user_id == as_uuid(filter.tenant_id))
        if filter.next_billing_before:
            criteria.append(SubscriptionModel.next_billing_date < filter.next_billing_before)
        if filter.next_billing_from:
            criteria.append(SubscriptionModel.next_billing_date >= filter.next_billing_from)
        if filter.next_billing_until:
            criteria.append(SubscriptionModel.next_billing_date < filter.next_billing_until)

        models = await self.list_where(*criteria, order_by=SubscriptionModel.created_at)
        return [self._to_domain(model) for model in models]

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert_platform_subscription(
        self,
        tenant_id: str,
        fields: Dict[str, Any],
    ) -> None:
        """
        Write the tenant's platform row in one statement, creating it if absent.

        Conflicts resolve on the partial unique index over platform rows,
        so repeated calls with the same fields are idempotent.
        """
        now = utcnow()
        values = to_column_values(fields)
        values.setdefault("updated_at", now)

        row = {
            "id": uuid4(),
            "user_id": as_uuid(tenant_id),
            "customer_id": None,
            "plan_id": None,
            "type": "platform",
            "created_at": now,
            **values,
        }

        stmt = pg_insert(SubscriptionModel).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            index_where=text(PLATFORM_ROW_PREDICATE),
            set_={key: stmt.excluded[key] for key in values},
        )
        await self._session.execute(stmt)
        logger.info(f"Upserted platform subscription for tenant {tenant_id}")

    async def update_fields(
        self,
        subscription_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[SubscriptionStatus] = None,
    ) -> bool:
        """
        Update one subscription, optionally only if it still has `expected_status`.

        Returns:
            True if the row was updated
        """
        conditions = {}
        if expected_status is not None:
            conditions["status"] = expected_status
        updated = await self.update_by_id(subscription_id, fields, **conditions)
        return updated > 0

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            tenant_id=str(model.user_id),
            customer_id=str(model.customer_id) if model.customer_id else None,
            plan_id=str(model.plan_id) if model.plan_id else None,
            status=SubscriptionStatus(model.status),
            start_date=model.start_date,
            last_billing_date=model.last_billing_date,
            next_billing_date=model.next_billing_date,
            failed_payments_count=model.failed_payments_count or 0,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
