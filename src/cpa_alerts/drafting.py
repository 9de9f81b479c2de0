"""Reminder drafting: deterministic templates with an optional Claude drafter."""

import json
from typing import Any, Protocol

import anthropic
import structlog

from cpa_alerts.clients.claude import ClaudeClient
from cpa_alerts.models import ARAlert, DraftedMessage, Reminder, ReminderTier
from cpa_alerts.reminders import TIER_ID_SUFFIX
from cpa_alerts.templates import DEFAULT_FIRM_NAME, format_currency, template_preview

logger = structlog.get_logger(__name__)

DRAFT_SYSTEM_PROMPT = """You are an assistant that drafts collection reminder emails for a CPA firm.

Your emails should be:
- Professional but warm
- Clear about the ask
- Specific about invoice numbers, amounts and due dates
- Appropriate to the client relationship and the requested tone
- Action-oriented, pointing the client to the payment portal

Always respond with valid JSON containing "subject" and "body"."""


class ReminderDrafter(Protocol):
    """Produces the subject and body for a scheduled reminder."""

    async def draft(self, alert: ARAlert, reminder: Reminder) -> DraftedMessage: ...


class TemplateDrafter:
    """Renders reminders from the built-in email templates."""

    def __init__(
        self, firm_name: str = DEFAULT_FIRM_NAME, from_billing_committee: bool = False
    ):
        self._firm_name = firm_name
        self._from_billing_committee = from_billing_committee

    async def draft(self, alert: ARAlert, reminder: Reminder) -> DraftedMessage:
        escalation = alert.contacts.escalation
        return template_preview(
            tone=reminder.tone,
            trigger_days=TIER_ID_SUFFIX[reminder.tier],
            client_name=alert.client_name,
            contact_name=reminder.recipient_name,
            overdue_amount=alert.overdue_amount,
            days_overdue=alert.days_overdue,
            invoices=alert.invoices,
            payment_url=alert.client_url,
            firm_name=self._firm_name,
            from_billing_committee=self._from_billing_committee,
            cc_escalation=reminder.cc_escalation,
            escalation_name=escalation.name if escalation else None,
        )


def build_draft_prompt(alert: ARAlert, reminder: Reminder, firm_name: str) -> str:
    """User message describing the reminder to draft."""
    invoices = "\n".join(
        f"- {inv.number}: {format_currency(inv.amount)} due {inv.due_date.isoformat()} "
        f"- {inv.description}"
        for inv in alert.invoices
    ) or "Invoice details not available"
    cc_line = ""
    if reminder.cc_escalation and alert.contacts.escalation is not None:
        cc_line = f"- CC: {alert.contacts.escalation.name} ({alert.contacts.escalation.email})\n"

    return f"""Draft a {reminder.tone.value} collection reminder for this overdue account.

## ALERT DETAILS
- Client: {alert.client_name}
- Contact: {reminder.recipient_name}
- Email: {reminder.recipient_email}
{cc_line}- Total Overdue: {format_currency(alert.overdue_amount)}
- Days Overdue: {alert.days_overdue}
- Reminder stage: {reminder.tier.value}{" (partner escalation)" if reminder.tier == ReminderTier.PARTNER else ""}

## INVOICES
{invoices}

## PAYMENT PORTAL
{alert.client_url}

## CONTEXT
{alert.notes or "No additional context"}

## SENDER
{firm_name}

## RESPOND WITH JSON
{{"subject": "Email subject line", "body": "Full email body"}}"""


def parse_draft_reply(content: str) -> DraftedMessage | None:
    """Extract subject and body from a model reply; None when unusable."""
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data: Any = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None

    if not isinstance(data, dict):
        return None
    subject, body = data.get("subject"), data.get("body")
    if not isinstance(subject, str) or not isinstance(body, str) or not subject or not body:
        return None
    return DraftedMessage(subject=subject, body=body, source="claude")


class ClaudeDrafter:
    """Drafts reminders with Claude, falling back to templates on any failure."""

    def __init__(
        self,
        client: ClaudeClient | None = None,
        fallback: ReminderDrafter | None = None,
        firm_name: str = DEFAULT_FIRM_NAME,
    ):
        self._client = client or ClaudeClient()
        self._fallback = fallback or TemplateDrafter(firm_name=firm_name)
        self._firm_name = firm_name
        self._logger = logger.bind(component="claude_drafter")

    async def draft(self, alert: ARAlert, reminder: Reminder) -> DraftedMessage:
        prompt = build_draft_prompt(alert, reminder, self._firm_name)
        try:
            response = await self._client.generate(
                DRAFT_SYSTEM_PROMPT, [{"role": "user", "content": prompt}]
            )
        except anthropic.APIError as e:
            self._logger.warning("draft_fallback", reminder_id=reminder.id, reason=str(e))
            return await self._fallback.draft(alert, reminder)

        drafted = parse_draft_reply(response.content)
        if drafted is None:
            self._logger.warning(
                "draft_fallback", reminder_id=reminder.id, reason="unparsable_reply"
            )
            return await self._fallback.draft(alert, reminder)

        self._logger.info("reminder_drafted", reminder_id=reminder.id)
        return drafted
