"""
Reminder Repository

History of expiration reminders, used as the duplicate-send guard.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import ReminderRecord
from app.infrastructure.db.models.subscription_reminder import SubscriptionReminderModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


class ReminderRepository(BaseRepository[SubscriptionReminderModel]):
    """Repository for sent subscription reminders."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionReminderModel, session)

    async def has_recent_reminder(
        self,
        subscription_id: str,
        days_before_expiration: int,
        since: datetime,
    ) -> bool:
        """Whether a reminder for this window was sent at or after `since`."""
        stmt = (
            select(SubscriptionReminderModel.id)
            .where(
                SubscriptionReminderModel.subscription_id == as_uuid(subscription_id),
                SubscriptionReminderModel.days_before_expiration == days_before_expiration,
                SubscriptionReminderModel.sent_at >= since,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record_reminder(self, record: ReminderRecord) -> ReminderRecord:
        """Persist a sent reminder."""
        model = await self.add(
            SubscriptionReminderModel(
                subscription_id=as_uuid(record.subscription_id),
                user_id=as_uuid(record.tenant_id),
                days_before_expiration=record.days_before_expiration,
                sent_at=record.sent_at,
            )
        )
        return record.model_copy(update={"id": str(model.id)})
