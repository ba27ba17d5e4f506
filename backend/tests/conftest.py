"""
Test configuration and fixtures for the Platform Billing Service.

Provides shared fixtures for unit and integration tests, including
in-memory repositories that honor the same method contracts as the
SQLModel repositories.
"""

import os

# Required settings must exist before app.config.settings is imported
os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-hs256-signing-0123456789")
os.environ.pop("CRON_SECRET", None)

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.domain.lifecycle import BillingPolicy
from app.domain.payments import PaymentEvent
from app.domain.subscription import (
    ReminderRecord,
    Subscription,
    SubscriptionFilter,
    SubscriptionScope,
    SubscriptionStatus,
)


TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_event(
    transaction_id: str,
    paid_at: Optional[datetime],
    months=1,
    tenant_id: str = TENANT_A,
    created_at: Optional[datetime] = None,
) -> PaymentEvent:
    return PaymentEvent(
        transaction_id=transaction_id,
        tenant_id=tenant_id,
        amount=Decimal("49.90"),
        paid_at=paid_at,
        created_at=created_at or paid_at,
        period_months=months,
    )


def make_subscription(
    tenant_id: str = TENANT_A,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    next_billing_date: Optional[datetime] = None,
    customer_id: Optional[str] = None,
    plan_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Subscription:
    return Subscription(
        id=str(uuid4()),
        tenant_id=tenant_id,
        customer_id=customer_id,
        plan_id=plan_id,
        status=status,
        next_billing_date=next_billing_date,
        created_at=created_at or utc(2024, 1, 1),
    )


# =============================================================================
# In-memory repositories
# =============================================================================

class FakeSubscriptionRepository:
    """Dict-backed stand-in for SubscriptionRepository."""

    def __init__(self):
        self.rows: Dict[str, Subscription] = {}
        self.upserts: List[tuple] = []
        self.updates: List[tuple] = []

    def add(self, subscription: Subscription) -> Subscription:
        self.rows[subscription.id] = subscription
        return subscription

    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self.rows.get(subscription_id)

    async def get_platform_subscription(self, tenant_id: str) -> Optional[Subscription]:
        rows = [
            s for s in self.rows.values()
            if s.tenant_id == tenant_id and s.scope == SubscriptionScope.PLATFORM
        ]
        rows.sort(key=lambda s: s.created_at, reverse=True)
        return rows[0] if rows else None

    async def list_subscriptions(self, filter: SubscriptionFilter) -> List[Subscription]:
        def matches(s: Subscription) -> bool:
            if filter.statuses and s.status not in filter.statuses:
                return False
            if filter.scope and s.scope != filter.scope:
                return False
            if filter.tenant_id and s.tenant_id != filter.tenant_id:
                return False
            date_bounds = (
                filter.next_billing_before,
                filter.next_billing_from,
                filter.next_billing_until,
            )
            if any(date_bounds) and s.next_billing_date is None:
                return False
            if filter.next_billing_before and not s.next_billing_date < filter.next_billing_before:
                return False
            if filter.next_billing_from and not s.next_billing_date >= filter.next_billing_from:
                return False
            if filter.next_billing_until and not s.next_billing_date < filter.next_billing_until:
                return False
            return True

        return sorted(
            (s for s in self.rows.values() if matches(s)),
            key=lambda s: s.created_at,
        )

    async def upsert_platform_subscription(self, tenant_id: str, fields: dict) -> None:
        self.upserts.append((tenant_id, dict(fields)))
        existing = await self.get_platform_subscription(tenant_id)
        if existing is None:
            existing = Subscription(id=str(uuid4()), tenant_id=tenant_id, created_at=fields.get("updated_at"))
        self.rows[existing.id] = existing.model_copy(update=fields)

    async def update_fields(self, subscription_id: str, fields: dict, expected_status=None) -> bool:
        current = self.rows.get(subscription_id)
        if current is None:
            return False
        if expected_status is not None and current.status != expected_status:
            return False
        self.updates.append((subscription_id, dict(fields)))
        self.rows[subscription_id] = current.model_copy(update=fields)
        return True


class FakePaymentLedger:
    """List-backed stand-in for PaymentLedgerRepository."""

    def __init__(self):
        self.events: List[PaymentEvent] = []
        self.processed: Dict[str, tuple] = {}
        self.fail_for: set = set()

    async def list_paid_platform_events(self, tenant_id: Optional[str] = None) -> List[PaymentEvent]:
        if tenant_id in self.fail_for:
            raise RuntimeError(f"ledger unavailable for {tenant_id}")
        return [
            self._with_marker(e)
            for e in self.events
            if tenant_id is None or e.tenant_id == tenant_id
        ]

    def _with_marker(self, event: PaymentEvent) -> PaymentEvent:
        if event.transaction_id not in self.processed:
            return event
        tag, processed_at = self.processed[event.transaction_id]
        return event.model_copy(update={"processed_for": tag, "processed_at": processed_at})

    async def mark_events_processed(self, transaction_ids, tag: str, now=None) -> int:
        marked = 0
        for txid in transaction_ids:
            if txid not in self.processed:
                self.processed[txid] = (tag, now)
                marked += 1
        return marked


class FakeReminderRepository:
    """List-backed stand-in for ReminderRepository."""

    def __init__(self):
        self.records: List[ReminderRecord] = []

    async def has_recent_reminder(self, subscription_id: str, days_before_expiration: int, since: datetime) -> bool:
        return any(
            r.subscription_id == subscription_id
            and r.days_before_expiration == days_before_expiration
            and r.sent_at >= since
            for r in self.records
        )

    async def record_reminder(self, record: ReminderRecord) -> ReminderRecord:
        stored = record.model_copy(update={"id": str(uuid4())})
        self.records.append(stored)
        return stored


class FakeUserDirectory:
    """Tenant -> email/name lookup."""

    def __init__(self):
        self.emails: Dict[str, str] = {}
        self.names: Dict[str, str] = {}

    async def get_user_email(self, tenant_id: str) -> Optional[str]:
        return self.emails.get(tenant_id)

    async def get_display_name(self, tenant_id: str) -> Optional[str]:
        return self.names.get(tenant_id)


@asynccontextmanager
async def fake_session_context():
    """Session factory that yields a throwaway session object."""
    yield MagicMock()


# =============================================================================
# Repository / collaborator fixtures
# =============================================================================

@pytest.fixture
def subscription_repo():
    return FakeSubscriptionRepository()


@pytest.fixture
def ledger():
    return FakePaymentLedger()


@pytest.fixture
def reminder_repo():
    return FakeReminderRepository()


@pytest.fixture
def directory():
    return FakeUserDirectory()


@pytest.fixture
def notifier():
    """Mock for ReminderEmailService."""
    mock = MagicMock()
    mock.send_reminder_email = AsyncMock(return_value={"id": "email-123"})
    return mock


@pytest.fixture
def policy():
    return BillingPolicy()


# =============================================================================
# Service fixtures
# =============================================================================

@pytest.fixture
def reconciliation_service(policy, ledger, subscription_repo):
    from app.infrastructure.services.reconciliation_service import ReconciliationService

    return ReconciliationService(
        policy=policy,
        session_factory=fake_session_context,
        ledger_factory=lambda session: ledger,
        subscription_factory=lambda session: subscription_repo,
    )


@pytest.fixture
def expiry_service(subscription_repo):
    from app.infrastructure.services.expiry_sweep_service import ExpirySweepService

    return ExpirySweepService(
        session_factory=fake_session_context,
        subscription_factory=lambda session: subscription_repo,
    )


@pytest.fixture
def reminder_service(policy, directory, notifier, subscription_repo, reminder_repo):
    from app.infrastructure.services.reminder_sweep_service import ReminderSweepService

    return ReminderSweepService(
        policy=policy,
        directory=directory,
        notifier=notifier,
        session_factory=fake_session_context,
        subscription_factory=lambda session: subscription_repo,
        reminder_factory=lambda session: reminder_repo,
    )


@pytest.fixture
def lifecycle_service(subscription_repo):
    from app.infrastructure.services.subscription_lifecycle_service import (
        SubscriptionLifecycleService,
    )

    return SubscriptionLifecycleService(
        session_factory=fake_session_context,
        subscription_factory=lambda session: subscription_repo,
    )


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application with dependency overrides cleared afterwards."""
    from app.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)
