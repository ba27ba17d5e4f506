"""
Subscription Reminder Database Model
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import utcnow


class SubscriptionReminderModel(SQLModel, table=True):
    """One row per expiration reminder sent."""

    __tablename__ = "subscription_reminders"
    __table_args__ = (
        Index(
            "ix_subscription_reminders_lookup",
            "subscription_id",
            "days_before_expiration",
            "sent_at",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    subscription_id: UUID = Field(nullable=False)
    user_id: UUID = Field(nullable=False)
    days_before_expiration: int = Field(default=3)
    sent_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
