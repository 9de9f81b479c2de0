"""Domain types for AR and expense alerts, reminders, rules and the action log.

Every serializable type provides ``to_dict()`` producing the camelCase JSON
shape consumed by the dashboard. Types that are persisted in the store also
provide ``from_dict()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Alert severity levels."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ClientStatus(str, Enum):
    """Per-client flag controlling reminder automation."""

    NORMAL = "normal"                            # Automation runs normally
    SLOW_PAYER = "slow_payer"                    # Extended timeline before escalation
    PAYMENT_ARRANGEMENT = "payment_arrangement"  # Manual handling, no automation
    SENSITIVE = "sensitive"                      # Partner approval for all comms
    DISPUTED = "disputed"                        # Hold all automation


class ReminderStatus(str, Enum):
    """Lifecycle states of a scheduled reminder."""

    PENDING = "pending"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    SENT = "sent"
    CANCELLED = "cancelled"


class ReminderTone(str, Enum):
    """Tone used when drafting a reminder email."""

    FRIENDLY = "friendly"
    PROFESSIONAL = "professional"
    FIRM = "firm"


class ReminderTier(str, Enum):
    """Reminder escalation stages."""

    INITIAL = "initial"
    ESCALATION = "escalation"
    PARTNER = "partner"


class AlertType(str, Enum):
    """Kinds of alerts tracked by the action log."""

    AR = "ar"
    EXPENSE = "expense"


class AlertAction(str, Enum):
    """User-initiated lifecycle transitions."""

    HANDLED = "handled"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"


class AlertStatus(str, Enum):
    """Effective state of an alert after projection."""

    ACTIVE = "active"
    HANDLED = "handled"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"


class RuleOperator(str, Enum):
    """Comparison operators supported by alert rules."""

    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


SUPPRESSED_STATUSES = frozenset(
    {ClientStatus.PAYMENT_ARRANGEMENT, ClientStatus.DISPUTED}
)

CLIENT_STATUS_LABELS: dict[ClientStatus, str] = {
    ClientStatus.NORMAL: "Normal",
    ClientStatus.SLOW_PAYER: "Slow Payer",
    ClientStatus.PAYMENT_ARRANGEMENT: "Payment Arrangement",
    ClientStatus.SENSITIVE: "Sensitive Relationship",
    ClientStatus.DISPUTED: "Disputed",
}

REMINDER_TONE_LABELS: dict[ReminderTone, str] = {
    ReminderTone.FRIENDLY: "Friendly Reminder",
    ReminderTone.PROFESSIONAL: "Professional Follow-up",
    ReminderTone.FIRM: "Firm but Polite",
}

AGING_BUCKET_LABELS: dict[int, str] = {
    0: "Current",
    30: "1-30 Days",
    60: "31-60 Days",
    90: "61-90 Days",
    120: "90+ Days",
}

DISMISS_REASONS = (
    "Payment received",
    "Payment plan established",
    "Dispute resolved",
    "Budget adjustment approved",
    "False positive",
    "Client relationship ended",
    "Other",
)

# (days, label)
SNOOZE_OPTIONS: tuple[tuple[int, str], ...] = (
    (1, "1 day"),
    (3, "3 days"),
    (7, "1 week"),
    (14, "2 weeks"),
    (30, "1 month"),
)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# === Reference data ===


@dataclass(frozen=True)
class Partner:
    """A firm partner responsible for a set of clients."""

    id: str
    name: str
    email: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class Contact:
    """A person at a client who can receive AR correspondence."""

    name: str
    email: str
    phone: str = ""
    role: str = ""
    is_primary: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "isPrimary": self.is_primary,
        }


@dataclass(frozen=True)
class ClientContacts:
    """Contact hierarchy: billing contact, escalation (CFO/Controller), owner."""

    primary: Contact
    escalation: Contact | None = None
    owner: Contact | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary.to_dict(),
            "escalation": self.escalation.to_dict() if self.escalation else None,
            "owner": self.owner.to_dict() if self.owner else None,
        }


@dataclass(frozen=True)
class Client:
    """A firm client with its automation status and contacts."""

    id: str
    name: str
    industry: str
    partner_id: str
    automation_status: ClientStatus
    contacts: ClientContacts


@dataclass(frozen=True)
class DriverTemplate:
    """A recurring vendor line that can explain a category's variance."""

    name: str
    vendor: str
    base_amount: Decimal


@dataclass(frozen=True)
class ExpenseCategory:
    """A budgeted expense category."""

    id: str
    name: str
    budget_amount: Decimal
    drivers: tuple[DriverTemplate, ...] = ()
    note: str = ""


# === Alerts ===


@dataclass(frozen=True)
class Invoice:
    """An outstanding invoice belonging to one AR alert."""

    id: str
    number: str
    issue_date: date
    due_date: date
    amount: Decimal
    description: str
    payment_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "date": self.issue_date.isoformat(),
            "dueDate": self.due_date.isoformat(),
            "amount": float(self.amount),
            "description": self.description,
            "aiywynPaymentUrl": self.payment_url,
        }


@dataclass(frozen=True)
class Reminder:
    """An automated follow-up reminder for one AR alert."""

    id: str
    alert_id: str
    client_id: str
    tier: ReminderTier
    status: ReminderStatus
    scheduled_date: date
    trigger_days: int
    tone: ReminderTone
    recipient_name: str
    recipient_email: str
    cc_escalation: bool = False
    requires_approval: bool = False
    approved_by: str | None = None
    approved_at: datetime | None = None
    sent_at: datetime | None = None
    subject: str = ""
    body: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alertId": self.alert_id,
            "clientId": self.client_id,
            "tier": self.tier.value,
            "status": self.status.value,
            "scheduledDate": self.scheduled_date.isoformat(),
            "triggerDays": self.trigger_days,
            "tone": self.tone.value,
            "recipientName": self.recipient_name,
            "recipientEmail": self.recipient_email,
            "ccEscalation": self.cc_escalation,
            "requiresApproval": self.requires_approval,
            "approvedBy": self.approved_by,
            "approvedAt": _iso(self.approved_at),
            "sentAt": _iso(self.sent_at),
            "subject": self.subject,
            "body": self.body,
        }


class AlertLifecycle:
    """Lifecycle helpers shared by AR and expense alerts."""

    handled_at: datetime | None
    snoozed_until: datetime | None
    dismissed_at: datetime | None

    @property
    def is_visible(self) -> bool:
        """Handled and dismissed alerts are hidden; snoozed ones stay visible."""
        return self.handled_at is None and self.dismissed_at is None

    @property
    def status(self) -> AlertStatus:
        if self.handled_at is not None:
            return AlertStatus.HANDLED
        if self.dismissed_at is not None:
            return AlertStatus.DISMISSED
        if self.snoozed_until is not None:
            return AlertStatus.SNOOZED
        return AlertStatus.ACTIVE

    def _lifecycle_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "handledAt": _iso(self.handled_at),
            "snoozedUntil": _iso(self.snoozed_until),
            "dismissedAt": _iso(self.dismissed_at),
            "dismissReason": getattr(self, "dismiss_reason", None),
        }


@dataclass(frozen=True)
class ARAlert(AlertLifecycle):
    """One client's outstanding-receivable situation."""

    id: str
    client_id: str
    client_name: str
    partner_name: str
    severity: Severity
    overdue_amount: Decimal
    days_overdue: int
    aging_bucket: int
    client_status: ClientStatus
    contacts: ClientContacts
    invoices: tuple[Invoice, ...]
    notes: str
    created_at: date
    scheduled_reminders: tuple[Reminder, ...] = ()
    sent_reminders: tuple[Reminder, ...] = ()
    client_url: str = ""
    handled_at: datetime | None = None
    snoozed_until: datetime | None = None
    dismissed_at: datetime | None = None
    dismiss_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        primary = self.contacts.primary
        return {
            "id": self.id,
            "clientId": self.client_id,
            "clientName": self.client_name,
            "partnerName": self.partner_name,
            "severity": self.severity.value,
            "overdueAmount": float(self.overdue_amount),
            "daysOverdue": self.days_overdue,
            "agingBucket": self.aging_bucket,
            "clientStatus": self.client_status.value,
            "contacts": self.contacts.to_dict(),
            "contact": {
                "name": primary.name,
                "email": primary.email,
                "phone": primary.phone,
            },
            "invoices": [invoice.to_dict() for invoice in self.invoices],
            "notes": self.notes,
            "createdAt": self.created_at.isoformat(),
            "scheduledReminders": [r.to_dict() for r in self.scheduled_reminders],
            "sentReminders": [r.to_dict() for r in self.sent_reminders],
            "aiywynClientUrl": self.client_url,
            **self._lifecycle_dict(),
        }


@dataclass(frozen=True)
class ExpenseDriver:
    """A vendor line contributing to a category's variance."""

    name: str
    vendor: str
    amount: Decimal
    note: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "vendor": self.vendor,
            "amount": float(self.amount),
            "note": self.note,
        }


@dataclass(frozen=True)
class ExpenseAlert(AlertLifecycle):
    """One category's budget-variance situation for the current period."""

    id: str
    category_id: str
    category: str
    severity: Severity
    budget_amount: Decimal
    actual_amount: Decimal
    variance_percent: int
    period: str
    drivers: tuple[ExpenseDriver, ...]
    notes: str
    created_at: date
    handled_at: datetime | None = None
    snoozed_until: datetime | None = None
    dismissed_at: datetime | None = None
    dismiss_reason: str | None = None

    @property
    def variance_amount(self) -> Decimal:
        return self.actual_amount - self.budget_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "categoryId": self.category_id,
            "category": self.category,
            "severity": self.severity.value,
            "budgetAmount": float(self.budget_amount),
            "actualAmount": float(self.actual_amount),
            "variancePercent": self.variance_percent,
            "period": self.period,
            "drivers": [driver.to_dict() for driver in self.drivers],
            "notes": self.notes,
            "createdAt": self.created_at.isoformat(),
            **self._lifecycle_dict(),
        }


Alert = ARAlert | ExpenseAlert


# === Persisted records ===


@dataclass(frozen=True)
class ActionLogEntry:
    """An append-only record of a user action on an alert."""

    alert_id: str
    alert_type: AlertType
    action: AlertAction
    timestamp: datetime
    note: str | None = None
    snooze_days: int | None = None
    dismiss_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alertId": self.alert_id,
            "alertType": self.alert_type.value,
            "action": self.action.value,
            "note": self.note,
            "snoozeDays": self.snooze_days,
            "dismissReason": self.dismiss_reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionLogEntry:
        return cls(
            alert_id=data["alertId"],
            alert_type=AlertType(data["alertType"]),
            action=AlertAction(data["action"]),
            timestamp=parse_timestamp(data["timestamp"]),
            note=data.get("note"),
            snooze_days=data.get("snoozeDays"),
            dismiss_reason=data.get("dismissReason"),
        )


@dataclass(frozen=True)
class RuleCondition:
    """Threshold condition of an alert rule."""

    field: str
    operator: RuleOperator
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleCondition:
        return cls(
            field=data["field"],
            operator=RuleOperator(data["operator"]),
            value=float(data["value"]),
        )


CUSTOM_RULE_PREFIX = "rule-custom-"


@dataclass(frozen=True)
class AlertRule:
    """A threshold-based alerting rule."""

    id: str
    name: str
    description: str
    alert_type: AlertType
    severity: Severity
    condition: RuleCondition
    enabled: bool
    created_at: datetime
    built_in: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "alertType": self.alert_type.value,
            "severity": self.severity.value,
            "condition": self.condition.to_dict(),
            "enabled": self.enabled,
            "builtIn": self.built_in,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertRule:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            alert_type=AlertType(data["alertType"]),
            severity=Severity(data["severity"]),
            condition=RuleCondition.from_dict(data["condition"]),
            enabled=bool(data.get("enabled", True)),
            created_at=parse_timestamp(data["createdAt"]),
        )


# === Derived views ===


@dataclass
class BucketTotal:
    """Count and amount of AR alerts in one aging bucket."""

    count: int = 0
    amount: Decimal = Decimal("0")

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.amount += amount

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "amount": float(self.amount)}


@dataclass
class AgingSummary:
    """AR totals bucketed by days overdue."""

    current: BucketTotal = field(default_factory=BucketTotal)
    thirty: BucketTotal = field(default_factory=BucketTotal)
    sixty: BucketTotal = field(default_factory=BucketTotal)
    ninety: BucketTotal = field(default_factory=BucketTotal)
    one_twenty_plus: BucketTotal = field(default_factory=BucketTotal)
    total: BucketTotal = field(default_factory=BucketTotal)
    ninety_plus: BucketTotal = field(default_factory=BucketTotal)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "thirty": self.thirty.to_dict(),
            "sixty": self.sixty.to_dict(),
            "ninety": self.ninety.to_dict(),
            "oneTwentyPlus": self.one_twenty_plus.to_dict(),
            "total": self.total.to_dict(),
            "ninetyPlus": self.ninety_plus.to_dict(),
        }


@dataclass(frozen=True)
class PendingApproval:
    """A reminder awaiting partner approval, with its alert context."""

    reminder: Reminder
    client_name: str
    overdue_amount: Decimal
    days_overdue: int
    client_status: ClientStatus
    partner_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.reminder.to_dict(),
            "clientName": self.client_name,
            "overdueAmount": float(self.overdue_amount),
            "daysOverdue": self.days_overdue,
            "clientStatus": self.client_status.value,
            "partnerName": self.partner_name,
        }


@dataclass(frozen=True)
class DraftedMessage:
    """Subject and body for a reminder email."""

    subject: str
    body: str
    source: str = "template"

    def to_dict(self) -> dict[str, Any]:
        return {"subject": self.subject, "body": self.body, "source": self.source}
