"""End-to-end tests for AlertsService over an in-memory store."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from cpa_alerts.errors import InvariantViolation, NotFoundError
from cpa_alerts.generators import STATUS_NOTES
from cpa_alerts.models import (
    AlertStatus,
    AlertType,
    ClientStatus,
    DraftedMessage,
    ReminderStatus,
    ReminderTier,
)
from cpa_alerts.service import AlertsService
from cpa_alerts.store import JsonFileStore, MemoryStore, StoreKey


def reminder_of(alert, reminder_id):
    return next(r for r in alert.scheduled_reminders if r.id == reminder_id)


class FixedDrafter:
    """Drafter returning a canned message."""

    def __init__(self):
        self.calls = []

    async def draft(self, alert, reminder):
        self.calls.append(reminder.id)
        return DraftedMessage(subject=f"Re: {alert.client_name}", body="Canned", source="fixed")


class TestAlertQueries:
    """Tests for alert reads."""

    @pytest.mark.asyncio
    async def test_initial_alert_sets(self, service):
        assert len(await service.get_ar_alerts()) == 16
        assert len(await service.get_expense_alerts()) == 3

    @pytest.mark.asyncio
    async def test_detail_lookup(self, service):
        alert = await service.get_ar_alert("ar-7")

        assert alert.client_name == "Pinnacle Real Estate Group"
        assert alert.partner_name == "Lisa Martinez"

    @pytest.mark.asyncio
    async def test_unknown_ids_raise(self, service):
        with pytest.raises(NotFoundError):
            await service.get_ar_alert("ar-404")
        with pytest.raises(NotFoundError):
            await service.get_expense_alert("exp-404")


class TestAlertActions:
    """Tests for handle, snooze and dismiss."""

    @pytest.mark.asyncio
    async def test_handled_alert_disappears_but_stays_fetchable(self, service):
        await service.mark_handled(AlertType.AR, "ar-3", note="Paid by wire")

        assert "ar-3" not in [a.id for a in await service.get_ar_alerts()]
        detail = await service.get_ar_alert("ar-3")
        assert detail.status == AlertStatus.HANDLED

    @pytest.mark.asyncio
    async def test_snooze_expires(self, service, now):
        await service.snooze("expense", "exp-2", 3, now=now - timedelta(days=5))

        alert = await service.get_expense_alert("exp-2")
        assert alert.status == AlertStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_snoozed_alert_stays_visible(self, service, now):
        await service.snooze(AlertType.EXPENSE, "exp-2", 7)

        alerts = {a.id: a for a in await service.get_expense_alerts()}
        assert alerts["exp-2"].status == AlertStatus.SNOOZED
        assert alerts["exp-2"].snoozed_until == now + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_dismiss_records_reason(self, service):
        await service.dismiss(AlertType.EXPENSE, "exp-1", "Budget adjustment approved")

        assert len(await service.get_expense_alerts()) == 2
        alert = await service.get_expense_alert("exp-1")
        assert alert.dismiss_reason == "Budget adjustment approved"

    @pytest.mark.asyncio
    async def test_invalid_actions(self, service):
        with pytest.raises(InvariantViolation):
            await service.snooze(AlertType.AR, "ar-1", 0)
        with pytest.raises(InvariantViolation):
            await service.dismiss(AlertType.AR, "ar-1", "  ")
        with pytest.raises(InvariantViolation):
            await service.mark_handled("invoice", "ar-1")

    @pytest.mark.asyncio
    async def test_latest_action_wins(self, service, now):
        await service.mark_handled(AlertType.AR, "ar-1", now=now - timedelta(hours=2))
        await service.snooze(AlertType.AR, "ar-1", 1, now=now - timedelta(hours=1))

        alert = await service.get_ar_alert("ar-1")
        assert alert.status == AlertStatus.SNOOZED


class TestReminderWorkflow:
    """Tests for approving, cancelling and sending reminders."""

    @pytest.mark.asyncio
    async def test_pending_approvals(self, service):
        pending = await service.get_pending_approvals()

        assert len(pending) == 8
        assert all(p.reminder.status == ReminderStatus.AWAITING_APPROVAL for p in pending)

    @pytest.mark.asyncio
    async def test_hidden_alerts_leave_the_queue(self, service):
        await service.mark_handled(AlertType.AR, "ar-1")

        ids = [p.reminder.id for p in await service.get_pending_approvals()]
        assert "reminder-ar-1-120" not in ids
        assert len(ids) == 7

    @pytest.mark.asyncio
    async def test_approve_then_send(self, service, now):
        approved = await service.approve_reminder("reminder-ar-7-90", "Lisa Martinez")

        assert approved.status == ReminderStatus.APPROVED
        assert approved.approved_by == "Lisa Martinez"
        assert "reminder-ar-7-90" not in [p.reminder.id for p in await service.get_pending_approvals()]

        sent = await service.mark_reminder_sent("reminder-ar-7-90")

        assert sent.status == ReminderStatus.SENT
        assert sent.sent_at == now
        assert sent.subject == "Second Notice: Outstanding Balance - Pinnacle Real Estate Group"
        alert = await service.get_ar_alert("ar-7")
        stored = reminder_of(alert, "reminder-ar-7-90")
        assert stored.status == ReminderStatus.SENT
        assert "Michael Torres" in stored.body

    @pytest.mark.asyncio
    async def test_send_without_approval_rejected(self, service):
        with pytest.raises(InvariantViolation):
            await service.mark_reminder_sent("reminder-ar-7-90")

    @pytest.mark.asyncio
    async def test_double_approval_rejected(self, service):
        await service.approve_reminder("reminder-ar-1-120", "Robert Johnson")

        with pytest.raises(InvariantViolation):
            await service.approve_reminder("reminder-ar-1-120", "Robert Johnson")

    @pytest.mark.asyncio
    async def test_auto_reminder_can_be_sent_directly(self, service):
        sent = await service.mark_reminder_sent("reminder-ar-11-60")

        assert sent.subject == (
            "Friendly Reminder: Invoices INV-2026-0900, INV-2026-0901... - Thompson Legal Partners"
        )

    @pytest.mark.asyncio
    async def test_cancelled_reminder_cannot_be_sent(self, service):
        cancelled = await service.cancel_reminder("reminder-ar-11-60")

        assert cancelled.status == ReminderStatus.CANCELLED
        with pytest.raises(InvariantViolation):
            await service.mark_reminder_sent("reminder-ar-11-60")

    @pytest.mark.asyncio
    async def test_unknown_reminder(self, service):
        with pytest.raises(NotFoundError):
            await service.approve_reminder("reminder-ar-99-60", "Robert Johnson")

    @pytest.mark.asyncio
    async def test_preview_uses_drafter(self, store, reference, now):
        drafter = FixedDrafter()
        service = AlertsService(store, reference=reference, drafter=drafter, clock=lambda: now)

        drafted = await service.preview_reminder("reminder-ar-10-60")

        assert drafted.subject == "Re: Chen Family Dental Practice"
        assert drafter.calls == ["reminder-ar-10-60"]


class TestConcurrentReminderTransitions:
    """Tests for reminder transitions racing over a store with latency."""

    @staticmethod
    def slow_service(store, reference, now):
        return AlertsService(store, reference=reference, clock=lambda: now)

    @pytest.fixture
    def slow_store(self):
        return MemoryStore(latency=(0.001, 0.003), timeout=5.0)

    @pytest.mark.asyncio
    async def test_only_one_concurrent_approval_wins(self, slow_store, reference, now):
        service = self.slow_service(slow_store, reference, now)
        rid = "reminder-ar-1-120"

        results = await asyncio.gather(
            service.approve_reminder(rid, "Partner A"),
            service.approve_reminder(rid, "Partner B"),
            return_exceptions=True,
        )

        approved = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InvariantViolation)]
        assert len(approved) == 1
        assert len(rejected) == 1
        stored = await slow_store.get(StoreKey.REMINDER_APPROVALS)
        assert stored[rid]["approvedBy"] == approved[0].approved_by

    @pytest.mark.asyncio
    async def test_approvals_from_separate_services_do_not_overwrite(
        self, slow_store, reference, now
    ):
        first = self.slow_service(slow_store, reference, now)
        second = self.slow_service(slow_store, reference, now)
        rid = "reminder-ar-2-120"

        results = await asyncio.gather(
            first.approve_reminder(rid, "Partner A"),
            second.approve_reminder(rid, "Partner B"),
            return_exceptions=True,
        )

        approved = [r for r in results if not isinstance(r, Exception)]
        assert len(approved) == 1
        assert sum(isinstance(r, InvariantViolation) for r in results) == 1
        stored = await slow_store.get(StoreKey.REMINDER_APPROVALS)
        assert stored[rid]["approvedBy"] == approved[0].approved_by

    @pytest.mark.asyncio
    async def test_concurrent_cancel_recorded_once(self, slow_store, reference, now):
        service = self.slow_service(slow_store, reference, now)
        rid = "reminder-ar-11-60"

        results = await asyncio.gather(
            service.cancel_reminder(rid), service.cancel_reminder(rid), return_exceptions=True
        )

        assert sum(isinstance(r, InvariantViolation) for r in results) == 1
        assert await slow_store.get(StoreKey.REMINDER_CANCELLATIONS) == [rid]

    @pytest.mark.asyncio
    async def test_send_races_cancel(self, slow_store, reference, now):
        service = self.slow_service(slow_store, reference, now)
        rid = "reminder-ar-11-60"

        results = await asyncio.gather(
            service.mark_reminder_sent(rid), service.cancel_reminder(rid), return_exceptions=True
        )

        assert sum(isinstance(r, InvariantViolation) for r in results) == 1
        sent = await slow_store.get(StoreKey.SENT_REMINDERS, {})
        cancelled = await slow_store.get(StoreKey.REMINDER_CANCELLATIONS, [])
        assert (rid in sent) != (rid in cancelled)


class TestClientStatuses:
    """Tests for automation status overrides."""

    @pytest.mark.asyncio
    async def test_disputed_client_loses_reminders(self, service):
        await service.set_client_status("client-003", "disputed")

        alert = await service.get_ar_alert("ar-7")
        assert alert.client_status == ClientStatus.DISPUTED
        assert alert.scheduled_reminders == ()
        assert alert.notes == STATUS_NOTES[ClientStatus.DISPUTED]
        assert await service.get_client_statuses() == {"client-003": ClientStatus.DISPUTED}

    @pytest.mark.asyncio
    async def test_slow_payer_override_moves_tier(self, service):
        await service.set_client_status("client-011", ClientStatus.SLOW_PAYER)

        alert = await service.get_ar_alert("ar-8")
        [reminder] = alert.scheduled_reminders
        assert reminder.tier == ReminderTier.INITIAL
        assert reminder.trigger_days == 90
        assert reminder.requires_approval is False

    @pytest.mark.asyncio
    async def test_invalid_status_updates(self, service):
        with pytest.raises(NotFoundError):
            await service.set_client_status("client-404", "normal")
        with pytest.raises(InvariantViolation):
            await service.set_client_status("client-001", "vip")


class TestRulesAndAging:
    """Tests for rule and aging passthroughs."""

    @pytest.mark.asyncio
    async def test_rule_lifecycle(self, service):
        rule = await service.create_rule(
            {
                "name": "Big receivable",
                "alertType": "ar",
                "severity": "warning",
                "condition": {"field": "amount", "operator": "greaterThan", "value": 500000},
            }
        )
        await service.toggle_rule(rule.id, False)
        await service.update_rule(rule.id, {"name": "Very big receivable"})

        listed = {r.id: r for r in await service.list_rules()}
        assert listed[rule.id].name == "Very big receivable"
        assert listed[rule.id].enabled is False

        await service.delete_rule(rule.id)
        assert len(await service.list_rules()) == 6

    @pytest.mark.asyncio
    async def test_create_rule_requires_fields(self, service):
        with pytest.raises(InvariantViolation):
            await service.create_rule({"name": "Incomplete"})

    @pytest.mark.asyncio
    async def test_aging_excludes_handled(self, service):
        await service.mark_handled(AlertType.AR, "ar-2")

        summary = await service.get_ar_aging_summary()
        assert summary.total.count == 15
        assert summary.total.amount == Decimal("6089250")


class TestReset:
    """Tests for reset_all_data."""

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, service):
        await service.mark_handled(AlertType.AR, "ar-1")
        await service.set_client_status("client-001", "disputed")
        await service.toggle_rule("rule-6", True)

        await service.reset_all_data()

        assert len(await service.get_ar_alerts()) == 16
        assert await service.get_client_statuses() == {}
        assert {r.id: r for r in await service.list_rules()}["rule-6"].enabled is False

    @pytest.mark.asyncio
    async def test_actions_persist_across_instances(self, tmp_path, reference, now):
        first = AlertsService(
            JsonFileStore(tmp_path, latency=(0.0, 0.0)), reference=reference, clock=lambda: now
        )
        await first.mark_handled(AlertType.EXPENSE, "exp-3")

        second = AlertsService(
            JsonFileStore(tmp_path, latency=(0.0, 0.0)), reference=reference, clock=lambda: now
        )
        assert [a.id for a in await second.get_expense_alerts()] == ["exp-1", "exp-2"]
