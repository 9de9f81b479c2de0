"""Query and command surface for the alerts dashboard.

Every read regenerates alert facts for ``now`` and reconciles them with the
persisted logs; every write goes to the store as a single atomic update.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from cpa_alerts.action_log import ActionLog
from cpa_alerts.aging import summarize_aging
from cpa_alerts.config import ReferenceData, Settings, get_settings, load_reference_data
from cpa_alerts.drafting import ReminderDrafter, TemplateDrafter
from cpa_alerts.errors import InvariantViolation, NotFoundError
from cpa_alerts.generators import generate_ar_alerts, generate_expense_alerts
from cpa_alerts.models import (
    ActionLogEntry,
    AgingSummary,
    AlertAction,
    AlertRule,
    AlertType,
    ARAlert,
    ClientStatus,
    DraftedMessage,
    ExpenseAlert,
    PendingApproval,
    Reminder,
)
from cpa_alerts.projector import project_alerts, visible
from cpa_alerts.reminders import (
    ReminderLog,
    ensure_can_approve,
    ensure_can_cancel,
    ensure_can_send,
    pending_approvals,
)
from cpa_alerts.rules import RuleStore
from cpa_alerts.store import BaseStore, StoreKey

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def _alert_type(value: AlertType | str) -> AlertType:
    try:
        return AlertType(value)
    except ValueError as exc:
        raise InvariantViolation(f"Unknown alert type: {value!r}") from exc


class AlertsService:
    """Single entry point used by the CLI and any dashboard front end."""

    def __init__(
        self,
        store: BaseStore,
        reference: ReferenceData | None = None,
        drafter: ReminderDrafter | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._store = store
        self._reference = reference or load_reference_data()
        self._drafter = drafter or TemplateDrafter(firm_name=self._settings.firm_name)
        self._clock = clock or utc_now
        self._actions = ActionLog(store)
        self._rules = RuleStore(store)
        self._reminder_lock = asyncio.Lock()
        self._logger = logger.bind(component="alerts_service")

    def _now(self, now: datetime | None) -> datetime:
        return now or self._clock()

    # === Reconciliation ===

    async def _status_overrides(self) -> dict[str, ClientStatus]:
        raw: dict[str, str] = await self._store.get(StoreKey.CLIENT_STATUSES, {})
        overrides: dict[str, ClientStatus] = {}
        for client_id, status in raw.items():
            try:
                overrides[client_id] = ClientStatus(status)
            except ValueError:
                self._logger.warning("unknown_client_status", client_id=client_id, status=status)
        return overrides

    async def _reminder_log(self) -> ReminderLog:
        return ReminderLog(
            approvals=await self._store.get(StoreKey.REMINDER_APPROVALS, {}),
            cancellations=frozenset(await self._store.get(StoreKey.REMINDER_CANCELLATIONS, [])),
            sent=await self._store.get(StoreKey.SENT_REMINDERS, {}),
        )

    async def _ar_alerts(self, now: datetime) -> list[ARAlert]:
        """All AR alerts for ``now``, hidden ones included."""
        facts = generate_ar_alerts(
            now,
            self._reference,
            status_overrides=await self._status_overrides(),
            portal_base_url=self._settings.portal_base_url,
        )
        reminder_log = await self._reminder_log()
        facts = [reminder_log.apply_to_alert(alert) for alert in facts]
        return project_alerts(facts, await self._actions.entries(), AlertType.AR, now)

    async def _expense_alerts(self, now: datetime) -> list[ExpenseAlert]:
        facts = generate_expense_alerts(now, self._reference)
        return project_alerts(facts, await self._actions.entries(), AlertType.EXPENSE, now)

    async def _find_reminder(self, reminder_id: str, now: datetime) -> tuple[ARAlert, Reminder]:
        for alert in await self._ar_alerts(now):
            for reminder in alert.scheduled_reminders:
                if reminder.id == reminder_id:
                    return alert, reminder
        raise NotFoundError(f"Reminder {reminder_id} not found")

    # === Alerts ===

    async def get_ar_alerts(self, now: datetime | None = None) -> list[ARAlert]:
        """Visible AR alerts: active and snoozed."""
        return visible(await self._ar_alerts(self._now(now)))

    async def get_ar_alert(self, alert_id: str, now: datetime | None = None) -> ARAlert:
        for alert in await self._ar_alerts(self._now(now)):
            if alert.id == alert_id:
                return alert
        raise NotFoundError(f"AR alert {alert_id} not found")

    async def get_expense_alerts(self, now: datetime | None = None) -> list[ExpenseAlert]:
        return visible(await self._expense_alerts(self._now(now)))

    async def get_expense_alert(self, alert_id: str, now: datetime | None = None) -> ExpenseAlert:
        for alert in await self._expense_alerts(self._now(now)):
            if alert.id == alert_id:
                return alert
        raise NotFoundError(f"Expense alert {alert_id} not found")

    # === Alert actions ===

    async def mark_handled(
        self,
        alert_type: AlertType | str,
        alert_id: str,
        note: str | None = None,
        now: datetime | None = None,
    ) -> ActionLogEntry:
        return await self._actions.record(
            alert_id, _alert_type(alert_type), AlertAction.HANDLED, self._now(now), note=note
        )

    async def snooze(
        self,
        alert_type: AlertType | str,
        alert_id: str,
        days: int,
        now: datetime | None = None,
    ) -> ActionLogEntry:
        if days <= 0:
            raise InvariantViolation(f"Snooze length must be positive, got {days}")
        return await self._actions.record(
            alert_id, _alert_type(alert_type), AlertAction.SNOOZED, self._now(now), snooze_days=days
        )

    async def dismiss(
        self,
        alert_type: AlertType | str,
        alert_id: str,
        reason: str,
        now: datetime | None = None,
    ) -> ActionLogEntry:
        if not reason or not reason.strip():
            raise InvariantViolation("A dismiss reason is required")
        return await self._actions.record(
            alert_id,
            _alert_type(alert_type),
            AlertAction.DISMISSED,
            self._now(now),
            dismiss_reason=reason.strip(),
        )

    # === Rules ===

    async def list_rules(self, now: datetime | None = None) -> list[AlertRule]:
        return await self._rules.list(self._now(now))

    async def create_rule(
        self, rule_data: Mapping[str, Any], now: datetime | None = None
    ) -> AlertRule:
        """Create a custom rule from ``name``, ``alertType``, ``severity``,
        ``condition`` and optional ``description`` keys."""
        missing = [k for k in ("name", "alertType", "severity", "condition") if k not in rule_data]
        if missing:
            raise InvariantViolation(f"Rule is missing fields: {', '.join(missing)}")
        return await self._rules.create(
            name=rule_data["name"],
            alert_type=rule_data["alertType"],
            severity=rule_data["severity"],
            condition=rule_data["condition"],
            description=rule_data.get("description", ""),
            now=self._now(now),
        )

    async def toggle_rule(
        self, rule_id: str, enabled: bool, now: datetime | None = None
    ) -> AlertRule:
        return await self._rules.toggle(rule_id, enabled, self._now(now))

    async def update_rule(
        self, rule_id: str, changes: Mapping[str, Any], now: datetime | None = None
    ) -> AlertRule:
        return await self._rules.update(rule_id, changes, self._now(now))

    async def delete_rule(self, rule_id: str) -> None:
        await self._rules.delete(rule_id)

    # === Reminders ===

    async def get_pending_approvals(self, now: datetime | None = None) -> list[PendingApproval]:
        """Reminders of visible AR alerts still awaiting partner approval."""
        return pending_approvals(visible(await self._ar_alerts(self._now(now))))

    async def approve_reminder(
        self, reminder_id: str, partner_name: str, now: datetime | None = None
    ) -> Reminder:
        now = self._now(now)
        if not partner_name or not partner_name.strip():
            raise InvariantViolation("Approving partner name is required")
        approval = {"approvedBy": partner_name.strip(), "approvedAt": now.isoformat()}

        def record(approvals: dict[str, Any]) -> dict[str, Any]:
            if reminder_id in approvals:
                raise InvariantViolation(f"Reminder {reminder_id} was already approved")
            return {**approvals, reminder_id: approval}

        async with self._reminder_lock:
            _, reminder = await self._find_reminder(reminder_id, now)
            ensure_can_approve(reminder)
            await self._store.update(StoreKey.REMINDER_APPROVALS, record, default={})
        self._logger.info("reminder_approved", reminder_id=reminder_id, partner=partner_name)
        return ReminderLog(approvals={reminder_id: approval}).apply(reminder)

    async def cancel_reminder(self, reminder_id: str, now: datetime | None = None) -> Reminder:
        def record(cancellations: list[str]) -> list[str]:
            if reminder_id in cancellations:
                raise InvariantViolation(f"Reminder {reminder_id} is already cancelled")
            return [*cancellations, reminder_id]

        async with self._reminder_lock:
            _, reminder = await self._find_reminder(reminder_id, self._now(now))
            ensure_can_cancel(reminder)
            await self._store.update(StoreKey.REMINDER_CANCELLATIONS, record, default=[])
        self._logger.info("reminder_cancelled", reminder_id=reminder_id)
        return ReminderLog(cancellations={reminder_id}).apply(reminder)

    async def mark_reminder_sent(self, reminder_id: str, now: datetime | None = None) -> Reminder:
        """Record a reminder as sent, storing the drafted subject and body."""
        now = self._now(now)

        async with self._reminder_lock:
            alert, reminder = await self._find_reminder(reminder_id, now)
            ensure_can_send(reminder)
            drafted = await self._drafter.draft(alert, reminder)
            sent_record = {"sentAt": now.isoformat(), "subject": drafted.subject, "body": drafted.body}

            def record(sent: dict[str, Any]) -> dict[str, Any]:
                if reminder_id in sent:
                    raise InvariantViolation(f"Reminder {reminder_id} has already been sent")
                return {**sent, reminder_id: sent_record}

            await self._store.update(StoreKey.SENT_REMINDERS, record, default={})
        self._logger.info(
            "reminder_sent",
            reminder_id=reminder_id,
            amount=alert.overdue_amount,
            source=drafted.source,
        )
        return ReminderLog(sent={reminder_id: sent_record}).apply(reminder)

    async def preview_reminder(
        self, reminder_id: str, now: datetime | None = None
    ) -> DraftedMessage:
        alert, reminder = await self._find_reminder(reminder_id, self._now(now))
        return await self._drafter.draft(alert, reminder)

    # === Client statuses ===

    async def get_client_statuses(self) -> dict[str, ClientStatus]:
        """Status overrides set through :meth:`set_client_status`."""
        return await self._status_overrides()

    async def set_client_status(
        self, client_id: str, status: ClientStatus | str
    ) -> ClientStatus:
        if self._reference.client(client_id) is None:
            raise NotFoundError(f"Client {client_id} not found")
        try:
            status = ClientStatus(status)
        except ValueError as exc:
            raise InvariantViolation(f"Unknown client status: {status!r}") from exc

        await self._store.update(
            StoreKey.CLIENT_STATUSES,
            lambda statuses: {**statuses, client_id: status.value},
            default={},
        )
        self._logger.info("client_status_updated", client_id=client_id, status=status.value)
        return status

    # === Aging ===

    async def get_ar_aging_summary(self, now: datetime | None = None) -> AgingSummary:
        return summarize_aging(await self.get_ar_alerts(now))

    # === Reset ===

    async def reset_all_data(self) -> None:
        """Irreversibly clear every persisted log and override."""
        await self._store.clear()
        self._logger.warning("all_data_reset")
