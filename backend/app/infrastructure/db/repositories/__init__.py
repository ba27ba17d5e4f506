"""
Repository Layer for the Platform Billing Service

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.payment_ledger_repository import (
    PaymentLedgerRepository,
)
from app.infrastructure.db.repositories.reminder_repository import (
    ReminderRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "SubscriptionRepository",
    "PaymentLedgerRepository",
    "ReminderRepository",
]
