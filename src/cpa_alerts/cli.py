"""Command-line interface for the alerts service.

Usage:
    # List visible AR and expense alerts
    cpa-alerts alerts

    # Persist actions in a directory instead of memory
    cpa-alerts --store ./data handle ar-3 --note "Paid by wire"

    # Work the reminder approval queue
    cpa-alerts approvals
    cpa-alerts approve reminder-ar-1-90 "Michael Johnson"
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

import structlog

from cpa_alerts.config import configure_logging, get_settings
from cpa_alerts.drafting import ClaudeDrafter, ReminderDrafter, TemplateDrafter
from cpa_alerts.errors import AlertsError
from cpa_alerts.models import (
    AGING_BUCKET_LABELS,
    CLIENT_STATUS_LABELS,
    AlertType,
    ClientStatus,
)
from cpa_alerts.service import AlertsService
from cpa_alerts.store import JsonFileStore, create_store
from cpa_alerts.templates import format_currency

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cpa-alerts",
        description="AR and expense alerts for a CPA firm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s alerts --type ar            # Visible AR alerts
  %(prog)s aging                       # AR aging buckets
  %(prog)s snooze exp-2 7              # Snooze an expense alert for a week
  %(prog)s preview reminder-ar-1-60    # Render a reminder email
        """,
    )
    parser.add_argument(
        "--store",
        type=str,
        default=None,
        help="Directory for the JSON store (default: CPA_ALERTS_STORE_PATH or memory)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument(
        "--ai",
        action="store_true",
        help="Draft reminders with Claude (requires ANTHROPIC_API_KEY)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    alerts = commands.add_parser("alerts", help="List visible alerts")
    alerts.add_argument("--type", choices=[t.value for t in AlertType], default=None)

    commands.add_parser("aging", help="Show the AR aging summary")
    commands.add_parser("approvals", help="List reminders awaiting partner approval")
    commands.add_parser("rules", help="List alert rules")
    commands.add_parser("statuses", help="List client status overrides")
    commands.add_parser("reset", help="Clear all persisted actions and overrides")

    handle = commands.add_parser("handle", help="Mark an alert handled")
    handle.add_argument("alert_id")
    handle.add_argument("--note", default=None)

    snooze = commands.add_parser("snooze", help="Snooze an alert for a number of days")
    snooze.add_argument("alert_id")
    snooze.add_argument("days", type=int)

    dismiss = commands.add_parser("dismiss", help="Dismiss an alert with a reason")
    dismiss.add_argument("alert_id")
    dismiss.add_argument("reason")

    approve = commands.add_parser("approve", help="Approve a reminder")
    approve.add_argument("reminder_id")
    approve.add_argument("partner")

    cancel = commands.add_parser("cancel", help="Cancel a reminder")
    cancel.add_argument("reminder_id")

    send = commands.add_parser("send", help="Mark a reminder as sent")
    send.add_argument("reminder_id")

    preview = commands.add_parser("preview", help="Preview a reminder email")
    preview.add_argument("reminder_id")

    status = commands.add_parser("status", help="Set a client's automation status")
    status.add_argument("client_id")
    status.add_argument("status", choices=[s.value for s in ClientStatus])

    for sub in (handle, snooze, dismiss):
        sub.add_argument(
            "--type",
            choices=[t.value for t in AlertType],
            default=None,
            help="Alert type (default: inferred from the id)",
        )

    return parser


def infer_alert_type(alert_id: str, explicit: str | None = None) -> AlertType:
    if explicit:
        return AlertType(explicit)
    return AlertType.EXPENSE if alert_id.startswith("exp-") else AlertType.AR


def build_service(args: argparse.Namespace) -> AlertsService:
    settings = get_settings()
    store = JsonFileStore(args.store) if args.store else create_store(settings)
    drafter: ReminderDrafter = TemplateDrafter(firm_name=settings.firm_name)
    if args.ai:
        drafter = ClaudeDrafter(fallback=drafter, firm_name=settings.firm_name)
    return AlertsService(store, drafter=drafter, settings=settings)


def _print(result: Any, as_json: bool, lines: Sequence[str]) -> None:
    if as_json:
        print(json.dumps(result, indent=2))
    else:
        print("\n".join(lines))


async def execute(args: argparse.Namespace, service: AlertsService) -> None:
    """Run one parsed command against the service and print the result."""
    command = args.command

    if command == "alerts":
        lines: list[str] = []
        payload: dict[str, Any] = {}
        if args.type in (None, AlertType.AR.value):
            ar_alerts = await service.get_ar_alerts()
            payload["ar"] = [a.to_dict() for a in ar_alerts]
            lines += [
                f"{a.id:<8} {a.severity.value:<9} {a.client_name:<32} "
                f"{format_currency(a.overdue_amount):>12} {a.days_overdue:>4}d  {a.status.value}"
                for a in ar_alerts
            ]
        if args.type in (None, AlertType.EXPENSE.value):
            expense_alerts = await service.get_expense_alerts()
            payload["expense"] = [a.to_dict() for a in expense_alerts]
            lines += [
                f"{a.id:<8} {a.severity.value:<9} {a.category:<32} "
                f"{format_currency(a.actual_amount):>12} +{a.variance_percent}%  {a.status.value}"
                for a in expense_alerts
            ]
        _print(payload, args.json, lines or ["No alerts."])

    elif command == "aging":
        summary = await service.get_ar_aging_summary()
        buckets = [
            (AGING_BUCKET_LABELS[0], summary.current),
            (AGING_BUCKET_LABELS[30], summary.thirty),
            (AGING_BUCKET_LABELS[60], summary.sixty),
            (AGING_BUCKET_LABELS[90], summary.ninety),
            (AGING_BUCKET_LABELS[120], summary.one_twenty_plus),
            ("Total", summary.total),
        ]
        _print(
            summary.to_dict(),
            args.json,
            [f"{label:<12} {b.count:>3}  {format_currency(b.amount):>14}" for label, b in buckets],
        )

    elif command == "approvals":
        pending = await service.get_pending_approvals()
        _print(
            [p.to_dict() for p in pending],
            args.json,
            [
                f"{p.reminder.id:<22} {p.client_name:<32} {p.reminder.tier.value:<10} "
                f"{format_currency(p.overdue_amount):>12}  {p.partner_name}"
                for p in pending
            ]
            or ["No reminders awaiting approval."],
        )

    elif command == "rules":
        rules = await service.list_rules()
        _print(
            [r.to_dict() for r in rules],
            args.json,
            [
                f"{r.id:<24} {'on ' if r.enabled else 'off'} {r.alert_type.value:<8} "
                f"{r.severity.value:<9} {r.name}"
                for r in rules
            ],
        )

    elif command == "statuses":
        statuses = await service.get_client_statuses()
        _print(
            {k: v.value for k, v in statuses.items()},
            args.json,
            [f"{k:<12} {CLIENT_STATUS_LABELS[v]}" for k, v in statuses.items()]
            or ["No status overrides."],
        )

    elif command == "handle":
        entry = await service.mark_handled(
            infer_alert_type(args.alert_id, args.type), args.alert_id, note=args.note
        )
        _print(entry.to_dict(), args.json, [f"Marked {args.alert_id} handled."])

    elif command == "snooze":
        entry = await service.snooze(
            infer_alert_type(args.alert_id, args.type), args.alert_id, args.days
        )
        _print(entry.to_dict(), args.json, [f"Snoozed {args.alert_id} for {args.days} days."])

    elif command == "dismiss":
        entry = await service.dismiss(
            infer_alert_type(args.alert_id, args.type), args.alert_id, args.reason
        )
        _print(entry.to_dict(), args.json, [f"Dismissed {args.alert_id}: {args.reason}"])

    elif command == "approve":
        reminder = await service.approve_reminder(args.reminder_id, args.partner)
        _print(reminder.to_dict(), args.json, [f"Approved {reminder.id} ({args.partner})."])

    elif command == "cancel":
        reminder = await service.cancel_reminder(args.reminder_id)
        _print(reminder.to_dict(), args.json, [f"Cancelled {reminder.id}."])

    elif command == "send":
        reminder = await service.mark_reminder_sent(args.reminder_id)
        _print(
            reminder.to_dict(),
            args.json,
            [f"Sent {reminder.id} to {reminder.recipient_email}.", "", reminder.subject],
        )

    elif command == "preview":
        drafted = await service.preview_reminder(args.reminder_id)
        _print(drafted.to_dict(), args.json, [f"Subject: {drafted.subject}", "", drafted.body])

    elif command == "status":
        status = await service.set_client_status(args.client_id, args.status)
        _print(
            {args.client_id: status.value},
            args.json,
            [f"{args.client_id} is now {CLIENT_STATUS_LABELS[status]}."],
        )

    elif command == "reset":
        await service.reset_all_data()
        _print({"reset": True}, args.json, ["All persisted data cleared."])


async def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command and return the exit code."""
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        service = build_service(args)
        await execute(args, service)
    except AlertsError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
