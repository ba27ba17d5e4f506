"""
Subscription Database Model

SQLModel table for platform and customer subscriptions.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field

from app.infrastructure.db.models.base import BaseModel


PLATFORM_ROW_PREDICATE = "customer_id IS NULL AND plan_id IS NULL"


class SubscriptionModel(BaseModel, table=True):
    """
    Maps to the 'subscriptions' table.

    A tenant has at most one platform row (customer_id and plan_id null),
    enforced by a partial unique index.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_platform_user",
            "user_id",
            unique=True,
            postgresql_where=text(PLATFORM_ROW_PREDICATE),
        ),
        Index("ix_subscriptions_status_next_billing", "status", "next_billing_date"),
    )

    user_id: UUID = Field(index=True, nullable=False)

    # Customer-scope rows only
    customer_id: Optional[UUID] = Field(default=None, index=True)
    plan_id: Optional[UUID] = Field(default=None)

    type: str = Field(default="platform", max_length=20)
    status: str = Field(default="trial", max_length=20)

    # Billing dates
    start_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    last_billing_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    next_billing_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    failed_payments_count: int = Field(default=0)
