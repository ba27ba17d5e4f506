"""
Unit tests for ExpirySweepService.
"""

from app.domain.subscription import SubscriptionScope, SubscriptionStatus

from conftest import TENANT_A, TENANT_B, make_subscription, utc


NOW = utc(2024, 3, 10)


class TestSweepExpired:
    """Lapsed subscriptions move to expired."""

    async def test_expires_lapsed_active_subscription(self, expiry_service, subscription_repo):
        sub = subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=utc(2024, 3, 1))
        )

        results = await expiry_service.sweep_expired(NOW)

        assert len(results) == 1
        assert results[0].success is True
        assert results[0].previous_status == SubscriptionStatus.ACTIVE
        assert results[0].new_status == SubscriptionStatus.EXPIRED
        assert results[0].scope == SubscriptionScope.PLATFORM
        stored = subscription_repo.rows[sub.id]
        assert stored.status == SubscriptionStatus.EXPIRED
        assert stored.next_billing_date == utc(2024, 3, 1)

    async def test_covers_trial_cancelled_and_customer_rows(self, expiry_service, subscription_repo):
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.TRIAL, next_billing_date=utc(2024, 3, 1))
        )
        subscription_repo.add(
            make_subscription(
                tenant_id=TENANT_B,
                status=SubscriptionStatus.CANCELLED,
                next_billing_date=utc(2024, 3, 9),
            )
        )
        subscription_repo.add(
            make_subscription(
                status=SubscriptionStatus.ACTIVE,
                customer_id="c-1",
                plan_id="p-1",
                next_billing_date=utc(2024, 2, 1),
            )
        )

        results = await expiry_service.sweep_expired(NOW)

        assert len(results) == 3
        assert all(r.success for r in results)
        assert {r.scope for r in results} == {SubscriptionScope.PLATFORM, SubscriptionScope.CUSTOMER}

    async def test_leaves_current_subscriptions_alone(self, expiry_service, subscription_repo):
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=utc(2024, 4, 1))
        )
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=None)
        )

        results = await expiry_service.sweep_expired(NOW)

        assert results == []
        assert subscription_repo.updates == []

    async def test_is_idempotent(self, expiry_service, subscription_repo):
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=utc(2024, 3, 1))
        )

        first = await expiry_service.sweep_expired(NOW)
        second = await expiry_service.sweep_expired(NOW)

        assert len(first) == 1
        assert second == []
        assert len(subscription_repo.updates) == 1

    async def test_corrupt_row_is_reported_and_sweep_continues(self, expiry_service, subscription_repo):
        corrupt = subscription_repo.add(
            make_subscription(
                tenant_id=TENANT_A,
                customer_id="c-1",
                next_billing_date=utc(2024, 3, 1),
            )
        )
        healthy = subscription_repo.add(
            make_subscription(tenant_id=TENANT_B, next_billing_date=utc(2024, 3, 1))
        )

        results = await expiry_service.sweep_expired(NOW)

        by_id = {r.subscription_id: r for r in results}
        assert by_id[corrupt.id].success is False
        assert "DATA CORRUPTION" in by_id[corrupt.id].error
        assert by_id[healthy.id].success is True
        assert subscription_repo.rows[corrupt.id].status == SubscriptionStatus.ACTIVE

    async def test_row_changed_since_selection_is_skipped(self, expiry_service, subscription_repo):
        sub = subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=utc(2024, 3, 1))
        )
        original_list = subscription_repo.list_subscriptions

        async def list_then_reactivate(filter):
            rows = await original_list(filter)
            subscription_repo.rows[sub.id] = sub.model_copy(
                update={"status": SubscriptionStatus.CANCELLED}
            )
            return rows

        subscription_repo.list_subscriptions = list_then_reactivate

        results = await expiry_service.sweep_expired(NOW)

        assert results == []
        assert subscription_repo.rows[sub.id].status == SubscriptionStatus.CANCELLED

    async def test_report_message(self, expiry_service, subscription_repo):
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.ACTIVE, next_billing_date=utc(2024, 3, 1))
        )

        report = await expiry_service.run(NOW)

        assert report.success is True
        assert report.message == "Processed 1 subscriptions"
        assert len(report.results) == 1
