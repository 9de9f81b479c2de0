"""Reminder email templates.

Three tones, each with a first-notice and a 90+ day wording. Reminders can be
signed by the billing committee instead of the firm, and escalated notices
mention the copied escalation contact.
"""

from collections.abc import Sequence
from decimal import Decimal

from cpa_alerts.models import DraftedMessage, Invoice, ReminderTone

DEFAULT_FIRM_NAME = "Johnson & Associates CPA"

SUBJECTS: dict[ReminderTone, dict[int, str]] = {
    ReminderTone.FRIENDLY: {
        60: "Friendly Reminder: {invoice_ref} - {client_name}",
        90: "Following Up: Outstanding Balance - {client_name}",
        120: "Important: Account Status Review Needed - {client_name}",
    },
    ReminderTone.PROFESSIONAL: {
        60: "Payment Reminder: {invoice_ref} - {client_name}",
        90: "Second Notice: Outstanding Balance - {client_name}",
        120: "Urgent: Past Due Account Requires Attention - {client_name}",
    },
    ReminderTone.FIRM: {
        60: "Action Required: {invoice_ref} Past Due",
        90: "Immediate Attention Required: Outstanding Balance",
        120: "Final Notice: Account Seriously Past Due",
    },
}


def format_currency(amount: Decimal | float) -> str:
    return f"${Decimal(str(amount)):,.2f}"


def _invoice_ref(invoice_numbers: Sequence[str]) -> str:
    if len(invoice_numbers) > 1:
        suffix = "..." if len(invoice_numbers) > 2 else ""
        return f"Invoices {', '.join(invoice_numbers[:2])}{suffix}"
    return f"Invoice {invoice_numbers[0] if invoice_numbers else ''}"


def _subject_level(trigger_days: int) -> int:
    if trigger_days >= 120:
        return 120
    if trigger_days >= 90:
        return 90
    return 60


def generate_subject(
    tone: ReminderTone | str,
    trigger_days: int,
    client_name: str,
    invoice_numbers: Sequence[str] = (),
) -> str:
    """Subject line for a reminder; unknown tones use the professional wording."""
    try:
        subjects = SUBJECTS[ReminderTone(tone)]
    except ValueError:
        subjects = SUBJECTS[ReminderTone.PROFESSIONAL]
    return subjects[_subject_level(trigger_days)].format(
        invoice_ref=_invoice_ref(invoice_numbers), client_name=client_name
    )


def _invoice_list(invoices: Sequence[Invoice]) -> str:
    return "\n".join(
        f"  • {inv.number}: {format_currency(inv.amount)} (Due: {inv.due_date.isoformat()})"
        for inv in invoices
    )


def _paragraphs(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part)


def generate_body(
    *,
    tone: ReminderTone | str,
    trigger_days: int,
    client_name: str,
    contact_name: str,
    overdue_amount: Decimal,
    days_overdue: int,
    invoices: Sequence[Invoice] = (),
    payment_url: str = "",
    firm_name: str = DEFAULT_FIRM_NAME,
    from_billing_committee: bool = False,
    cc_escalation: bool = False,
    escalation_name: str | None = None,
) -> str:
    """Render the reminder email body."""
    greeting = f"Dear {contact_name},"
    invoice_list = _invoice_list(invoices)
    total = format_currency(overdue_amount)
    escalated = trigger_days >= 90
    copied = cc_escalation and escalation_name is not None
    department = f"{firm_name} Billing Department" if from_billing_committee else firm_name
    committee = f"{firm_name} Billing Committee" if from_billing_committee else firm_name

    try:
        tone = ReminderTone(tone)
    except ValueError:
        return _paragraphs(
            greeting,
            f"This is a reminder regarding your outstanding balance of {total}.",
            invoice_list,
            f"Please submit payment through our portal: {payment_url}",
            f"Thank you,\n{firm_name}",
        )

    if tone == ReminderTone.FRIENDLY and not escalated:
        return _paragraphs(
            greeting,
            "I hope this message finds you well. I wanted to reach out as a friendly "
            f"reminder regarding your account with {firm_name}.",
            "Our records show the following invoice(s) are currently outstanding:",
            invoice_list,
            f"Total Outstanding: {total}",
            "We understand that invoices can sometimes slip through the cracks, and we're "
            "here to help if you have any questions about these charges or need to discuss "
            "payment arrangements.",
            "For your convenience, you can view your invoices and make a payment through "
            f"our secure client portal:\n{payment_url}",
            "Please don't hesitate to reach out if there's anything we can assist with.",
            f"Warm regards,\n{department}",
        )

    if tone == ReminderTone.FRIENDLY:
        return _paragraphs(
            greeting,
            "I hope you're doing well. I'm following up on our previous correspondence "
            "regarding the outstanding balance on your account.",
            invoice_list,
            f"Total Outstanding: {total} ({days_overdue} days past due)",
            f"We value our relationship with {client_name} and want to ensure there are no "
            "issues preventing payment. If there's been an oversight, a question about the "
            "services, or if you'd like to discuss a payment arrangement, please let us know.",
            f"You can access your account and make a payment here:\n{payment_url}",
            "Thank you for your attention to this matter.",
            f"Best regards,\n{department}",
        )

    if tone == ReminderTone.PROFESSIONAL and not escalated:
        opening = (
            "Per our firm's accounts receivable policy, we are contacting you regarding an "
            "outstanding balance on your account."
            if from_billing_committee
            else "This is a reminder regarding the following outstanding invoice(s) on your "
            f"account with {firm_name}."
        )
        return _paragraphs(
            greeting,
            opening,
            invoice_list,
            f"Total Outstanding: {total}\nDays Past Due: {days_overdue}",
            "Please remit payment at your earliest convenience. You can view invoice details "
            "and submit payment through our secure client portal:",
            payment_url,
            "If payment has already been sent, please disregard this notice. Should you have "
            "any questions or wish to discuss payment terms, please contact our office.",
            f"Sincerely,\n{committee}",
        )

    if tone == ReminderTone.PROFESSIONAL:
        opening = (
            "Per firm policy, this is our second notice regarding a significantly past-due "
            "balance on your account."
            if from_billing_committee
            else "We are following up on our previous communication regarding the past-due "
            "balance on your account."
        )
        return _paragraphs(
            greeting,
            opening,
            invoice_list,
            f"Total Outstanding: {total}\nDays Past Due: {days_overdue}",
            "This balance is now significantly overdue. We kindly request that you arrange "
            "for payment or contact us immediately to discuss this matter.",
            f"Payment Portal: {payment_url}",
            f"We have also copied {escalation_name} on this correspondence for visibility."
            if copied
            else "",
            "If there are circumstances affecting your ability to pay, we are open to "
            "discussing alternative arrangements. However, prompt action is required.",
            f"Respectfully,\n{committee}",
        )

    if not escalated:
        return _paragraphs(
            greeting,
            "This notice is to inform you that your account has an outstanding balance "
            "that requires immediate attention.",
            invoice_list,
            f"Total Outstanding: {total}\nDays Past Due: {days_overdue}",
            "Payment is due immediately. Please submit payment through our secure portal:"
            f"\n{payment_url}",
            "If you have questions about these invoices or need to arrange a payment plan, "
            "contact our office right away.",
            department,
        )

    return _paragraphs(
        greeting,
        f"IMPORTANT: Your account with {firm_name} is now seriously past due and requires "
        "your immediate attention.",
        invoice_list,
        f"Total Outstanding: {total}\nDays Past Due: {days_overdue}",
        "Despite our previous notices, this balance remains unpaid. We must receive payment "
        "or hear from you within the next 10 business days regarding payment arrangements.",
        f"Payment Portal: {payment_url}",
        f"{escalation_name} has been copied on this notice." if copied else "",
        "Failure to respond may necessitate further action, which we would prefer to avoid. "
        "Please contact us immediately to resolve this matter.",
        committee,
    )


def template_preview(
    *,
    tone: ReminderTone | str,
    trigger_days: int,
    client_name: str,
    contact_name: str,
    overdue_amount: Decimal,
    days_overdue: int,
    invoices: Sequence[Invoice] = (),
    payment_url: str = "",
    firm_name: str = DEFAULT_FIRM_NAME,
    from_billing_committee: bool = False,
    cc_escalation: bool = False,
    escalation_name: str | None = None,
) -> DraftedMessage:
    """Subject and body together, as shown in the reminder preview."""
    return DraftedMessage(
        subject=generate_subject(
            tone, trigger_days, client_name, [inv.number for inv in invoices]
        ),
        body=generate_body(
            tone=tone,
            trigger_days=trigger_days,
            client_name=client_name,
            contact_name=contact_name,
            overdue_amount=overdue_amount,
            days_overdue=days_overdue,
            invoices=invoices,
            payment_url=payment_url,
            firm_name=firm_name,
            from_billing_committee=from_billing_committee,
            cc_escalation=cc_escalation,
            escalation_name=escalation_name,
        ),
    )
