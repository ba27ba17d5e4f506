"""
Unit tests for ReminderSweepService.
"""

from datetime import timedelta

from app.domain.subscription import ReminderRecord, SubscriptionStatus
from app.infrastructure.exceptions import NotificationError
from app.infrastructure.services.reminder_sweep_service import (
    day_start,
    fallback_name,
    reminder_window,
)

from conftest import TENANT_A, TENANT_B, make_subscription, utc


NOW = utc(2024, 3, 10, 14, 30)
IN_WINDOW = utc(2024, 3, 13, 9)


class TestWindow:
    """Midnight-aligned reminder window."""

    def test_day_start(self):
        assert day_start(NOW) == utc(2024, 3, 10)

    def test_window_covers_whole_target_day(self):
        assert reminder_window(NOW, 3) == (utc(2024, 3, 13), utc(2024, 3, 14))

    def test_fallback_name_is_email_local_part(self):
        assert fallback_name("maria.silva@example.com") == "maria.silva"


class TestSweepReminders:
    """Selection, dedup and dispatch."""

    async def test_sends_reminder(self, reminder_service, subscription_repo, directory, notifier, reminder_repo):
        sub = subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"
        directory.names[TENANT_A] = "Ana"

        report = await reminder_service.sweep_reminders(NOW)

        assert report.total == 1
        assert report.successful == 1
        assert report.failed == 0
        assert report.results[0].email_id == "email-123"
        notifier.send_reminder_email.assert_awaited_once_with(
            tenant_id=TENANT_A,
            email="ana@example.com",
            name="Ana",
            days_remaining=3,
            next_billing_date=IN_WINDOW,
        )
        assert len(reminder_repo.records) == 1
        assert reminder_repo.records[0].subscription_id == sub.id
        assert reminder_repo.records[0].days_before_expiration == 3

    async def test_outside_window_is_ignored(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=utc(2024, 3, 14)))
        subscription_repo.add(make_subscription(tenant_id=TENANT_B, next_billing_date=utc(2024, 3, 12, 23)))
        directory.emails[TENANT_A] = "ana@example.com"
        directory.emails[TENANT_B] = "bia@example.com"

        report = await reminder_service.sweep_reminders(NOW)

        assert report.total == 0
        assert report.message == "No subscriptions need reminders"
        notifier.send_reminder_email.assert_not_awaited()

    async def test_only_active_platform_subscriptions(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(
            make_subscription(status=SubscriptionStatus.CANCELLED, next_billing_date=IN_WINDOW)
        )
        subscription_repo.add(
            make_subscription(customer_id="c-1", plan_id="p-1", next_billing_date=IN_WINDOW)
        )
        directory.emails[TENANT_A] = "ana@example.com"

        report = await reminder_service.sweep_reminders(NOW)

        assert report.total == 0
        notifier.send_reminder_email.assert_not_awaited()

    async def test_recent_reminder_is_not_repeated(
        self, reminder_service, subscription_repo, directory, notifier, reminder_repo
    ):
        sub = subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"
        reminder_repo.records.append(
            ReminderRecord(
                subscription_id=sub.id,
                tenant_id=TENANT_A,
                days_before_expiration=3,
                sent_at=NOW - timedelta(days=1),
            )
        )

        report = await reminder_service.sweep_reminders(NOW)

        assert report.skipped == 1
        assert report.successful == 0
        notifier.send_reminder_email.assert_not_awaited()

    async def test_second_run_same_day_sends_nothing(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"

        await reminder_service.sweep_reminders(NOW)
        second = await reminder_service.sweep_reminders(NOW + timedelta(hours=2))

        assert second.skipped == 1
        assert notifier.send_reminder_email.await_count == 1

    async def test_missing_email_is_skipped(self, reminder_service, subscription_repo, notifier):
        subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))

        report = await reminder_service.sweep_reminders(NOW)

        assert report.total == 0
        assert report.skipped == 1
        assert report.message == "Processed 1 subscriptions"
        notifier.send_reminder_email.assert_not_awaited()

    async def test_name_falls_back_to_email(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana.souza@example.com"

        await reminder_service.sweep_reminders(NOW)

        assert notifier.send_reminder_email.await_args.kwargs["name"] == "ana.souza"

    async def test_one_failure_does_not_stop_others(
        self, reminder_service, subscription_repo, directory, notifier, reminder_repo
    ):
        subscription_repo.add(make_subscription(tenant_id=TENANT_A, next_billing_date=IN_WINDOW))
        subscription_repo.add(make_subscription(tenant_id=TENANT_B, next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"
        directory.emails[TENANT_B] = "bia@example.com"

        async def send(**kwargs):
            if kwargs["tenant_id"] == TENANT_A:
                raise NotificationError("provider down", provider="resend")
            return {"id": "email-b"}

        notifier.send_reminder_email.side_effect = send

        report = await reminder_service.sweep_reminders(NOW)

        assert report.successful == 1
        assert report.failed == 1
        by_tenant = {r.tenant_id: r for r in report.results}
        assert by_tenant[TENANT_A].error == "provider down"
        assert by_tenant[TENANT_B].email_id == "email-b"
        assert [r.tenant_id for r in reminder_repo.records] == [TENANT_B]

    async def test_record_failure_still_counts_as_sent(
        self, reminder_service, subscription_repo, directory, reminder_repo
    ):
        subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"

        async def broken_record(record):
            raise RuntimeError("insert failed")

        reminder_repo.record_reminder = broken_record

        report = await reminder_service.sweep_reminders(NOW)

        assert report.successful == 1

    async def test_custom_window(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=utc(2024, 3, 17, 8)))
        directory.emails[TENANT_A] = "ana@example.com"

        report = await reminder_service.sweep_reminders(NOW, window_days=7)

        assert report.successful == 1
        assert notifier.send_reminder_email.await_args.kwargs["days_remaining"] == 7


class TestSweepOptions:

    async def test_zero_day_window_targets_today(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=NOW + timedelta(hours=5)))
        directory.emails[TENANT_A] = "ana@example.com"

        report = await reminder_service.sweep_reminders(NOW, window_days=0)

        assert report.total == 1
        assert report.successful == 1
        assert notifier.send_reminder_email.await_args.kwargs["days_remaining"] == 0

    async def test_total_counts_attempted_reminders(self, reminder_service, subscription_repo, directory, notifier):
        subscription_repo.add(make_subscription(next_billing_date=IN_WINDOW))
        subscription_repo.add(make_subscription(tenant_id=TENANT_B, next_billing_date=IN_WINDOW))
        directory.emails[TENANT_A] = "ana@example.com"
        notifier.send_reminder_email.side_effect = NotificationError("bounced")

        report = await reminder_service.sweep_reminders(NOW)

        assert report.skipped == 1
        assert report.total == 1
        assert report.successful + report.failed == report.total
