"""
SQLModel ORM Models for the Platform Billing Service

Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.pix_charge import PixChargeModel
from app.infrastructure.db.models.subscription_reminder import SubscriptionReminderModel


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "utcnow",
    # Billing
    "SubscriptionModel",
    "PixChargeModel",
    "SubscriptionReminderModel",
]
