"""Reconcile generated alert facts with the action log.

Projection is a pure function of ``(facts, log, now)``. For each alert only
the most recent log entry counts, whatever its action, and expired snoozes
revert to active without touching the log.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from cpa_alerts.models import ActionLogEntry, AlertAction, AlertType, ARAlert, ExpenseAlert

A = TypeVar("A", ARAlert, ExpenseAlert)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def latest_entry(entries: Iterable[ActionLogEntry]) -> ActionLogEntry | None:
    """Return the entry with the greatest timestamp; ties go to the later entry."""
    latest: ActionLogEntry | None = None
    for entry in entries:
        if latest is None or _aware(entry.timestamp) >= _aware(latest.timestamp):
            latest = entry
    return latest


def snooze_end(entry: ActionLogEntry) -> datetime:
    return _aware(entry.timestamp) + timedelta(days=entry.snooze_days or 0)


def apply_entry(alert: A, entry: ActionLogEntry, now: datetime) -> A:
    """Apply one log entry to a freshly generated alert."""
    if entry.action == AlertAction.HANDLED:
        return replace(alert, handled_at=entry.timestamp)

    if entry.action == AlertAction.DISMISSED:
        return replace(alert, dismissed_at=entry.timestamp, dismiss_reason=entry.dismiss_reason)

    if entry.action == AlertAction.SNOOZED:
        end = snooze_end(entry)
        if end <= _aware(now):
            return alert
        return replace(alert, snoozed_until=end)

    return alert


def project_alerts(
    facts: Iterable[A],
    log: Sequence[ActionLogEntry],
    alert_type: AlertType,
    now: datetime,
) -> list[A]:
    """Apply the latest log entry to each alert, keeping hidden alerts.

    Entries for other alert types or for ids absent from ``facts`` are
    ignored.
    """
    by_alert: dict[str, list[ActionLogEntry]] = defaultdict(list)
    for entry in log:
        if entry.alert_type == alert_type:
            by_alert[entry.alert_id].append(entry)

    projected: list[A] = []
    for alert in facts:
        entry = latest_entry(by_alert.get(alert.id, ()))
        projected.append(apply_entry(alert, entry, now) if entry else alert)
    return projected


def visible(alerts: Iterable[A]) -> list[A]:
    """Drop handled and dismissed alerts; snoozed alerts stay."""
    return [alert for alert in alerts if alert.is_visible]


def project_active_alerts(
    facts: Iterable[A],
    log: Sequence[ActionLogEntry],
    alert_type: AlertType,
    now: datetime,
) -> list[A]:
    return visible(project_alerts(facts, log, alert_type, now))
