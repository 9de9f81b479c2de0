"""Reminder scheduling for AR alerts.

Reminders are derived, never stored: each read re-runs the scheduler for the
alert's days overdue and client status, then overlays the persisted approval,
cancellation and sent logs. Tier windows are half-open ``[start, next_start)``
except the partner tier, which never closes.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, time, timedelta
from typing import Any

from cpa_alerts.errors import InvariantViolation
from cpa_alerts.models import (
    SUPPRESSED_STATUSES,
    ARAlert,
    Client,
    ClientStatus,
    PendingApproval,
    Reminder,
    ReminderStatus,
    ReminderTier,
    ReminderTone,
    parse_timestamp,
)

# Days overdue at which each tier starts
DEFAULT_TRIGGERS: dict[ReminderTier, int] = {
    ReminderTier.INITIAL: 60,
    ReminderTier.ESCALATION: 90,
    ReminderTier.PARTNER: 120,
}

# Slow payers get an extended timeline; escalation merges into the partner tier
SLOW_PAYER_TRIGGERS: dict[ReminderTier, int] = {
    ReminderTier.INITIAL: 90,
    ReminderTier.ESCALATION: 120,
    ReminderTier.PARTNER: 120,
}

TIER_TONES: dict[ReminderTier, ReminderTone] = {
    ReminderTier.INITIAL: ReminderTone.FRIENDLY,
    ReminderTier.ESCALATION: ReminderTone.PROFESSIONAL,
    ReminderTier.PARTNER: ReminderTone.FIRM,
}

# Reminder ids keep the nominal tier day so they stay stable across status changes
TIER_ID_SUFFIX: dict[ReminderTier, int] = {
    ReminderTier.INITIAL: 60,
    ReminderTier.ESCALATION: 90,
    ReminderTier.PARTNER: 120,
}

STATEMENT_TRIGGER_DAYS = 30


@dataclass(frozen=True)
class TierWindow:
    """Days-overdue range in which a tier's reminder exists."""

    tier: ReminderTier
    start: int
    end: int | None  # exclusive; None means open-ended

    def contains(self, days_overdue: int) -> bool:
        if days_overdue < self.start:
            return False
        return self.end is None or days_overdue < self.end


def tier_windows(status: ClientStatus) -> tuple[TierWindow, ...]:
    """Return the reminder windows for a client automation status."""
    if status in SUPPRESSED_STATUSES:
        return ()

    triggers = SLOW_PAYER_TRIGGERS if status == ClientStatus.SLOW_PAYER else DEFAULT_TRIGGERS
    initial = triggers[ReminderTier.INITIAL]
    escalation = triggers[ReminderTier.ESCALATION]
    partner = triggers[ReminderTier.PARTNER]
    return (
        TierWindow(ReminderTier.INITIAL, initial, escalation),
        TierWindow(ReminderTier.ESCALATION, escalation, partner),
        TierWindow(ReminderTier.PARTNER, partner, None),
    )


def reminder_id(alert_id: str, tier: ReminderTier) -> str:
    return f"reminder-{alert_id}-{TIER_ID_SUFFIX[tier]}"


def schedule_reminders(
    alert_id: str,
    client: Client,
    days_overdue: int,
    now: datetime,
    status: ClientStatus | None = None,
) -> list[Reminder]:
    """Derive the automated reminders that should exist for an AR alert.

    Args:
        alert_id: The AR alert the reminders belong to.
        client: Client whose contacts receive the reminders.
        days_overdue: Days past due of the receivable.
        now: Current time; scheduled dates are relative to its date.
        status: Automation status override. Defaults to the client's own.

    Returns:
        Zero or more reminders, one per tier whose window holds days_overdue.
    """
    status = status or client.automation_status
    today = now.date()
    primary = client.contacts.primary
    escalation_contact = client.contacts.escalation

    reminders: list[Reminder] = []
    for window in tier_windows(status):
        if not window.contains(days_overdue):
            continue

        tier = window.tier
        requires_approval = tier != ReminderTier.INITIAL or status == ClientStatus.SENSITIVE

        recipient = primary
        if tier == ReminderTier.PARTNER and escalation_contact is not None:
            recipient = escalation_contact

        reminders.append(
            Reminder(
                id=reminder_id(alert_id, tier),
                alert_id=alert_id,
                client_id=client.id,
                tier=tier,
                status=(
                    ReminderStatus.AWAITING_APPROVAL
                    if requires_approval
                    else ReminderStatus.PENDING
                ),
                scheduled_date=today + timedelta(days=1) if tier == ReminderTier.INITIAL else today,
                trigger_days=window.start,
                tone=TIER_TONES[tier],
                recipient_name=recipient.name,
                recipient_email=recipient.email,
                cc_escalation=tier != ReminderTier.INITIAL and escalation_contact is not None,
                requires_approval=requires_approval,
            )
        )

    return reminders


def generate_sent_reminders(
    alert_id: str, client: Client, days_overdue: int, now: datetime
) -> list[Reminder]:
    """History of automatic monthly statements already sent for an alert."""
    if days_overdue < 60:
        return []

    sent_on = now.date() - timedelta(days=days_overdue - STATEMENT_TRIGGER_DAYS)
    primary = client.contacts.primary
    return [
        Reminder(
            id=f"reminder-{alert_id}-{STATEMENT_TRIGGER_DAYS}-sent",
            alert_id=alert_id,
            client_id=client.id,
            tier=ReminderTier.INITIAL,
            status=ReminderStatus.SENT,
            scheduled_date=sent_on,
            trigger_days=STATEMENT_TRIGGER_DAYS,
            tone=ReminderTone.FRIENDLY,
            recipient_name=primary.name,
            recipient_email=primary.email,
            sent_at=datetime.combine(sent_on, time.min, tzinfo=UTC),
            subject="Friendly Reminder: Outstanding Invoice",
            body="Auto-sent via Aiwyn monthly statement.",
        )
    ]


@dataclass(frozen=True)
class ReminderLog:
    """Persisted reminder decisions keyed by reminder id."""

    approvals: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    cancellations: Collection[str] = frozenset()
    sent: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def apply(self, reminder: Reminder) -> Reminder:
        """Overlay recorded decisions; sent beats cancelled beats approved."""
        approval = self.approvals.get(reminder.id)
        if approval is not None:
            reminder = replace(
                reminder,
                status=ReminderStatus.APPROVED,
                approved_by=approval.get("approvedBy"),
                approved_at=_timestamp(approval.get("approvedAt")),
            )

        if reminder.id in self.cancellations:
            reminder = replace(reminder, status=ReminderStatus.CANCELLED)

        sent = self.sent.get(reminder.id)
        if sent is not None:
            reminder = replace(
                reminder,
                status=ReminderStatus.SENT,
                sent_at=_timestamp(sent.get("sentAt")),
                subject=sent.get("subject") or reminder.subject,
                body=sent.get("body") or reminder.body,
            )

        return reminder

    def apply_to_alert(self, alert: ARAlert) -> ARAlert:
        return replace(
            alert,
            scheduled_reminders=tuple(self.apply(r) for r in alert.scheduled_reminders),
        )


def _timestamp(value: str | None) -> datetime | None:
    return parse_timestamp(value) if value else None


def pending_approvals(alerts: Iterable[ARAlert]) -> list[PendingApproval]:
    """Collect reconciled reminders still waiting for a partner decision."""
    pending: list[PendingApproval] = []
    for alert in alerts:
        for reminder in alert.scheduled_reminders:
            if reminder.requires_approval and reminder.status == ReminderStatus.AWAITING_APPROVAL:
                pending.append(
                    PendingApproval(
                        reminder=reminder,
                        client_name=alert.client_name,
                        overdue_amount=alert.overdue_amount,
                        days_overdue=alert.days_overdue,
                        client_status=alert.client_status,
                        partner_name=alert.partner_name,
                    )
                )
    return pending


# === Transition guards ===


def ensure_can_approve(reminder: Reminder) -> None:
    if reminder.status == ReminderStatus.SENT:
        raise InvariantViolation(f"Reminder {reminder.id} has already been sent")
    if reminder.status == ReminderStatus.CANCELLED:
        raise InvariantViolation(f"Reminder {reminder.id} was cancelled")
    if reminder.status == ReminderStatus.APPROVED:
        raise InvariantViolation(
            f"Reminder {reminder.id} was already approved by {reminder.approved_by}"
        )


def ensure_can_cancel(reminder: Reminder) -> None:
    if reminder.status == ReminderStatus.SENT:
        raise InvariantViolation(f"Reminder {reminder.id} has already been sent")
    if reminder.status == ReminderStatus.CANCELLED:
        raise InvariantViolation(f"Reminder {reminder.id} is already cancelled")


def ensure_can_send(reminder: Reminder) -> None:
    if reminder.status == ReminderStatus.SENT:
        raise InvariantViolation(f"Reminder {reminder.id} has already been sent")
    if reminder.status == ReminderStatus.CANCELLED:
        raise InvariantViolation(f"Reminder {reminder.id} was cancelled")
    if reminder.requires_approval and reminder.status != ReminderStatus.APPROVED:
        raise InvariantViolation(f"Reminder {reminder.id} requires partner approval")
