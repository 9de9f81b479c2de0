"""Alert fact generation for synthetic AR and expense data.

All dates are computed relative to an explicit ``now`` so the data never goes
stale, and every derivation is deterministic: two calls on the same calendar
day return equal alert sets. That is what lets the projector regenerate facts
on each read instead of storing alerts.
"""

from __future__ import annotations

import calendar
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from cpa_alerts.config.reference_loader import ReferenceData
from cpa_alerts.models import (
    ARAlert,
    ClientStatus,
    ExpenseAlert,
    ExpenseCategory,
    ExpenseDriver,
    Invoice,
    Severity,
)
from cpa_alerts.reminders import generate_sent_reminders, schedule_reminders

DEFAULT_PORTAL_URL = "https://pay.aiwyn.com/firm-demo"

INVOICE_SPLIT_THRESHOLD = Decimal("15000")
MAX_LINE_ITEMS = 3


@dataclass(frozen=True)
class ARAlertConfig:
    """One synthetic receivable: which client, how late, how much."""

    client_id: str
    days_overdue: int
    amount: Decimal


@dataclass(frozen=True)
class ExpenseAlertConfig:
    """One synthetic budget overrun."""

    category_id: str
    variance_percent: int
    created_days_ago: int = 0


# Distribution puts most of the ~$7M+ receivables in the 90+ day buckets
AR_ALERT_CONFIGS: tuple[ARAlertConfig, ...] = (
    # 120+ days
    ARAlertConfig("client-001", 145, Decimal("847250")),
    ARAlertConfig("client-007", 138, Decimal("1250000")),
    ARAlertConfig("client-009", 132, Decimal("680000")),
    ARAlertConfig("client-010", 128, Decimal("425000")),
    ARAlertConfig("client-012", 122, Decimal("312000")),
    # 90-120 days
    ARAlertConfig("client-002", 112, Decimal("1890000")),
    ARAlertConfig("client-003", 98, Decimal("567000")),
    ARAlertConfig("client-011", 94, Decimal("389000")),
    ARAlertConfig("client-008", 91, Decimal("156000")),
    # 60-90 days
    ARAlertConfig("client-004", 78, Decimal("124500")),
    ARAlertConfig("client-006", 72, Decimal("287000")),
    ARAlertConfig("client-005", 65, Decimal("98500")),
    # 30-60 days
    ARAlertConfig("client-001", 45, Decimal("78900")),
    ARAlertConfig("client-007", 38, Decimal("156000")),
    # under 30 days
    ARAlertConfig("client-003", 22, Decimal("45600")),
    ARAlertConfig("client-006", 14, Decimal("32500")),
)

EXPENSE_ALERT_CONFIGS: tuple[ExpenseAlertConfig, ...] = (
    ExpenseAlertConfig("exp-cat-001", 70, created_days_ago=1),
    ExpenseAlertConfig("exp-cat-002", 40, created_days_ago=3),
    ExpenseAlertConfig("exp-cat-003", 45, created_days_ago=5),
)

SERVICES = (
    "Tax Preparation Services",
    "Business Advisory Services",
    "Payroll Processing",
    "Annual Audit Services",
    "Financial Statement Preparation",
    "Bookkeeping & Tax Planning",
    "Monthly Accounting Services",
    "Year-End Tax Estimates",
    "Trust Accounting Services",
    "Quarterly Review Services",
    "Cash Flow Analysis",
    "Budget Preparation",
)

STATUS_NOTES: dict[ClientStatus, str] = {
    ClientStatus.PAYMENT_ARRANGEMENT: (
        "Payment arrangement in place. Manual follow-up per agreement terms."
    ),
    ClientStatus.DISPUTED: (
        "Invoice disputed by client. Automation on hold pending resolution."
    ),
    ClientStatus.SENSITIVE: (
        "Sensitive client relationship. All communications require partner approval."
    ),
}

SEVERITY_NOTES: dict[Severity, tuple[str, ...]] = {
    Severity.CRITICAL: (
        "Multiple statements sent via Aiwyn. No response. May be AP contact issue - "
        "consider reaching out to CFO.",
        "Long-standing client - unusual delay. Likely administrative issue "
        "(missed invoice, AP turnover).",
        "Extended overdue period. Partner intervention recommended.",
        "Significant aging. Check if client has cash flow issues or if invoice was lost.",
    ),
    Severity.WARNING: (
        "Approaching escalation threshold. Auto-reminder scheduled.",
        "First follow-up sent. Awaiting response.",
        "Payment typically comes end of quarter. Monitor.",
        "60-day reminder pending partner approval.",
    ),
    Severity.INFO: (
        "Within normal payment window. Aiwyn statement sent.",
        "Standard payment terms - 30 days. Auto-reminder will trigger at 60 days.",
        "Recently invoiced. No action needed yet.",
        "New engagement. First invoice in cycle.",
    ),
}

DRIVER_NOTES = (
    "Price increase from vendor",
    "Added new users/licenses",
    "Upgraded to premium tier",
    "Extended engagement",
    "Unplanned but necessary",
    "Annual renewal (front-loaded)",
)

DEFAULT_EXPENSE_NOTE = "Review spending and adjust budget if necessary."


def _round(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def severity_from_days(days_overdue: int) -> Severity:
    if days_overdue >= 60:
        return Severity.CRITICAL
    if days_overdue >= 30:
        return Severity.WARNING
    return Severity.INFO


def severity_from_variance(variance_percent: float) -> Severity:
    if variance_percent >= 50:
        return Severity.CRITICAL
    if variance_percent >= 25:
        return Severity.WARNING
    return Severity.INFO


def aging_bucket(days_overdue: int) -> int:
    """Map days overdue onto the 0/30/60/90/120 reporting buckets."""
    if days_overdue <= 0:
        return 0
    if days_overdue <= 30:
        return 30
    if days_overdue <= 60:
        return 60
    if days_overdue <= 90:
        return 90
    return 120


def generate_ar_notes(severity: Severity, days_overdue: int, status: ClientStatus) -> str:
    """Pick a note for an AR alert; non-normal statuses force a fixed note."""
    if status in STATUS_NOTES:
        return STATUS_NOTES[status]
    options = SEVERITY_NOTES[severity]
    return options[(days_overdue // 30) % len(options)]


def portal_url(base_url: str, client_id: str, invoice_id: str | None = None) -> str:
    return f"{base_url.rstrip('/')}/{client_id}/{invoice_id or 'dashboard'}"


def generate_invoices(
    alert_id: str,
    client_id: str,
    base_sequence: int,
    days_overdue: int,
    total_amount: Decimal,
    now: datetime,
    portal_base_url: str = DEFAULT_PORTAL_URL,
) -> tuple[Invoice, ...]:
    """Split an overdue amount into up to three invoices that sum exactly.

    The first invoice is the anchor: it fell due exactly ``days_overdue`` days
    before ``now``. Later invoices were issued earlier and fell due later.
    """
    today = now.date()
    count = min(MAX_LINE_ITEMS, max(1, math.ceil(total_amount / INVOICE_SPLIT_THRESHOLD)))
    remaining = total_amount
    invoices: list[Invoice] = []

    for i in range(count):
        is_last = i == count - 1
        amount = remaining if is_last else _round(remaining * Decimal("0.5"))
        remaining -= amount

        invoice_id = f"inv-{alert_id}-{i + 1}"
        invoices.append(
            Invoice(
                id=invoice_id,
                number=f"INV-{today.year}-{base_sequence + i:04d}",
                issue_date=today - timedelta(days=days_overdue + 30 + i * 15),
                due_date=today - timedelta(days=days_overdue - i * 5),
                amount=amount,
                description=SERVICES[i % len(SERVICES)],
                payment_url=portal_url(portal_base_url, client_id, invoice_id),
            )
        )

    return tuple(invoices)


def generate_ar_alerts(
    now: datetime,
    reference: ReferenceData,
    status_overrides: Mapping[str, ClientStatus] | None = None,
    portal_base_url: str = DEFAULT_PORTAL_URL,
    configs: tuple[ARAlertConfig, ...] = AR_ALERT_CONFIGS,
) -> list[ARAlert]:
    """Generate AR alerts for ``now``.

    Args:
        now: Current time. Only its calendar date affects the output.
        reference: Clients, partners and categories.
        status_overrides: Client id to automation status, replacing the
            reference status for notes and reminder scheduling.
        portal_base_url: Base URL for payment portal links.
        configs: Receivable table; rows for unknown clients are skipped.

    Returns:
        Alerts in table order with ids ``ar-<row number>``.
    """
    overrides = status_overrides or {}
    occurrences: dict[str, int] = {}
    alerts: list[ARAlert] = []

    for index, config in enumerate(configs):
        client = reference.client(config.client_id)
        if client is None:
            continue

        alert_id = f"ar-{index + 1}"
        status = overrides.get(client.id, client.automation_status)
        severity = severity_from_days(config.days_overdue)
        occurrence = occurrences.get(client.id, 0)
        occurrences[client.id] = occurrence + 1
        base_sequence = 800 + reference.client_index(client.id) * 20 + occurrence * 5

        alerts.append(
            ARAlert(
                id=alert_id,
                client_id=client.id,
                client_name=client.name,
                partner_name=reference.partner_for(client).name,
                severity=severity,
                overdue_amount=config.amount,
                days_overdue=config.days_overdue,
                aging_bucket=aging_bucket(config.days_overdue),
                client_status=status,
                contacts=client.contacts,
                invoices=generate_invoices(
                    alert_id,
                    client.id,
                    base_sequence,
                    config.days_overdue,
                    config.amount,
                    now,
                    portal_base_url,
                ),
                notes=generate_ar_notes(severity, config.days_overdue, status),
                created_at=now.date() - timedelta(days=config.days_overdue),
                scheduled_reminders=tuple(
                    schedule_reminders(alert_id, client, config.days_overdue, now, status=status)
                ),
                sent_reminders=tuple(
                    generate_sent_reminders(alert_id, client, config.days_overdue, now)
                ),
                client_url=portal_url(portal_base_url, client.id),
            )
        )

    return alerts


def generate_expense_drivers(
    category: ExpenseCategory, variance_amount: Decimal
) -> tuple[ExpenseDriver, ...]:
    """Attribute a variance to up to three of the category's vendor lines.

    Each driver but the last takes half of the remaining variance; the last
    takes the rest, so contributions sum to the variance exactly.
    """
    drivers: list[ExpenseDriver] = []
    remaining = variance_amount
    count = min(MAX_LINE_ITEMS, len(category.drivers))

    for i in range(count):
        if remaining <= 0:
            break
        template = category.drivers[i]
        is_last = i == count - 1
        contribution = remaining if is_last else _round(remaining * Decimal("0.5"))
        remaining -= contribution
        drivers.append(
            ExpenseDriver(
                name=template.name,
                vendor=template.vendor,
                amount=template.base_amount + contribution,
                note=DRIVER_NOTES[i % len(DRIVER_NOTES)],
            )
        )

    return tuple(drivers)


def generate_expense_notes(category: ExpenseCategory, variance_percent: int) -> str:
    note = category.note or DEFAULT_EXPENSE_NOTE
    if variance_percent >= 50:
        return f"{note} Requires immediate review."
    return note


def current_period(now: datetime) -> str:
    """Reporting period label, e.g. ``"January 2025"``."""
    return f"{calendar.month_name[now.month]} {now.year}"


def generate_expense_alerts(
    now: datetime,
    reference: ReferenceData,
    configs: tuple[ExpenseAlertConfig, ...] = EXPENSE_ALERT_CONFIGS,
) -> list[ExpenseAlert]:
    """Generate expense variance alerts for the period containing ``now``.

    Actual spend is built from the budget and the configured variance, never
    the other way round: ``actual = round(budget * (1 + variance / 100))``.
    """
    alerts: list[ExpenseAlert] = []

    for index, config in enumerate(configs):
        category = reference.category(config.category_id)
        if category is None:
            continue

        actual = _round(
            category.budget_amount * (1 + Decimal(config.variance_percent) / Decimal(100))
        )
        alerts.append(
            ExpenseAlert(
                id=f"exp-{index + 1}",
                category_id=category.id,
                category=category.name,
                severity=severity_from_variance(config.variance_percent),
                budget_amount=category.budget_amount,
                actual_amount=actual,
                variance_percent=config.variance_percent,
                period=current_period(now),
                drivers=generate_expense_drivers(category, actual - category.budget_amount),
                notes=generate_expense_notes(category, config.variance_percent),
                created_at=now.date() - timedelta(days=config.created_days_ago),
            )
        )

    return alerts
