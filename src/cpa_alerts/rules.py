"""Built-in and custom alert rules with persisted enable/disable overrides."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import uuid4

import structlog

from cpa_alerts.errors import InvariantViolation, NotFoundError
from cpa_alerts.models import (
    CUSTOM_RULE_PREFIX,
    Alert,
    AlertRule,
    AlertType,
    ARAlert,
    RuleCondition,
    RuleOperator,
    Severity,
)
from cpa_alerts.store import BaseStore, StoreKey

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuiltInRule:
    """Immutable content of a built-in rule."""

    id: str
    name: str
    description: str
    alert_type: AlertType
    severity: Severity
    condition: RuleCondition
    enabled: bool
    created_days_ago: int

    def to_rule(self, now: datetime) -> AlertRule:
        return AlertRule(
            id=self.id,
            name=self.name,
            description=self.description,
            alert_type=self.alert_type,
            severity=self.severity,
            condition=self.condition,
            enabled=self.enabled,
            created_at=now - timedelta(days=self.created_days_ago),
            built_in=True,
        )


BUILT_IN_RULES: tuple[BuiltInRule, ...] = (
    BuiltInRule(
        id="rule-1",
        name="Critical AR Alert",
        description="Invoice overdue by more than 60 days",
        alert_type=AlertType.AR,
        severity=Severity.CRITICAL,
        condition=RuleCondition("daysOverdue", RuleOperator.GREATER_THAN, 60),
        enabled=True,
        created_days_ago=90,
    ),
    BuiltInRule(
        id="rule-2",
        name="Warning AR Alert",
        description="Invoice overdue by more than 30 days",
        alert_type=AlertType.AR,
        severity=Severity.WARNING,
        condition=RuleCondition("daysOverdue", RuleOperator.GREATER_THAN, 30),
        enabled=True,
        created_days_ago=90,
    ),
    BuiltInRule(
        id="rule-3",
        name="Info AR Alert",
        description="Invoice overdue by more than 14 days",
        alert_type=AlertType.AR,
        severity=Severity.INFO,
        condition=RuleCondition("daysOverdue", RuleOperator.GREATER_THAN, 14),
        enabled=True,
        created_days_ago=90,
    ),
    BuiltInRule(
        id="rule-4",
        name="Critical Expense Alert",
        description="Category budget exceeded by more than 50%",
        alert_type=AlertType.EXPENSE,
        severity=Severity.CRITICAL,
        condition=RuleCondition("variancePercent", RuleOperator.GREATER_THAN, 50),
        enabled=True,
        created_days_ago=90,
    ),
    BuiltInRule(
        id="rule-5",
        name="Warning Expense Alert",
        description="Category budget exceeded by more than 25%",
        alert_type=AlertType.EXPENSE,
        severity=Severity.WARNING,
        condition=RuleCondition("variancePercent", RuleOperator.GREATER_THAN, 25),
        enabled=True,
        created_days_ago=90,
    ),
    BuiltInRule(
        id="rule-6",
        name="Large Invoice Reminder",
        description="Invoices over $10,000 unpaid after 7 days",
        alert_type=AlertType.AR,
        severity=Severity.INFO,
        condition=RuleCondition("amount", RuleOperator.GREATER_THAN, 10000),
        enabled=False,
        created_days_ago=60,
    ),
)

BUILT_IN_IDS = frozenset(rule.id for rule in BUILT_IN_RULES)

# Rule condition field name -> alert attribute, per alert type
RULE_FIELDS: dict[AlertType, dict[str, str]] = {
    AlertType.AR: {
        "daysOverdue": "days_overdue",
        "amount": "overdue_amount",
        "overdueAmount": "overdue_amount",
        "agingBucket": "aging_bucket",
    },
    AlertType.EXPENSE: {
        "variancePercent": "variance_percent",
        "actualAmount": "actual_amount",
        "budgetAmount": "budget_amount",
    },
}

EDITABLE_FIELDS = frozenset(
    {"name", "description", "alertType", "severity", "condition", "enabled"}
)


def is_built_in(rule_id: str) -> bool:
    return rule_id in BUILT_IN_IDS


def _coerce(enum_type: Any, value: Any, label: str) -> Any:
    try:
        return enum_type(value)
    except ValueError as exc:
        raise InvariantViolation(f"Unsupported {label}: {value!r}") from exc


def parse_condition(condition: RuleCondition | Mapping[str, Any], alert_type: AlertType) -> RuleCondition:
    """Validate a rule condition against the fields known for its alert type."""
    if not isinstance(condition, RuleCondition):
        try:
            condition = RuleCondition(
                field=str(condition["field"]),
                operator=_coerce(RuleOperator, condition["operator"], "operator"),
                value=float(condition["value"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvariantViolation(f"Malformed rule condition: {condition!r}") from exc

    if condition.field not in RULE_FIELDS[alert_type]:
        raise InvariantViolation(
            f"Field {condition.field!r} is not available for {alert_type.value} rules"
        )
    return condition


def rule_matches(rule: AlertRule, alert: Alert) -> bool:
    """Return True if the alert satisfies the rule's threshold condition."""
    alert_type = AlertType.AR if isinstance(alert, ARAlert) else AlertType.EXPENSE
    if rule.alert_type != alert_type:
        return False
    attribute = RULE_FIELDS[alert_type].get(rule.condition.field)
    if attribute is None:
        return False

    actual = Decimal(str(getattr(alert, attribute)))
    threshold = Decimal(str(rule.condition.value))
    if rule.condition.operator == RuleOperator.GREATER_THAN:
        return actual > threshold
    return actual < threshold


def matching_rules(alert: Alert, rules: Iterable[AlertRule]) -> list[AlertRule]:
    """Enabled rules an alert satisfies. Display only; alerts are not filtered."""
    return [rule for rule in rules if rule.enabled and rule_matches(rule, alert)]


class RuleStore:
    """Lists, creates, toggles, edits and deletes alert rules.

    Built-in rule content is fixed in code. Custom rules live under
    ``custom_rules``; enabled overrides for every rule live under
    ``rule_toggles`` and are merged at read time.
    """

    def __init__(self, store: BaseStore):
        self._store = store
        self._logger = logger.bind(component="rule_store")

    async def _custom_rules(self) -> list[AlertRule]:
        raw = await self._store.get(StoreKey.CUSTOM_RULES, [])
        return [AlertRule.from_dict(item) for item in raw]

    async def list(self, now: datetime) -> list[AlertRule]:
        toggles: dict[str, bool] = await self._store.get(StoreKey.RULE_TOGGLES, {})
        rules = [rule.to_rule(now) for rule in BUILT_IN_RULES] + await self._custom_rules()
        return [replace(rule, enabled=toggles.get(rule.id, rule.enabled)) for rule in rules]

    async def get(self, rule_id: str, now: datetime) -> AlertRule:
        for rule in await self.list(now):
            if rule.id == rule_id:
                return rule
        raise NotFoundError(f"Alert rule {rule_id} not found")

    async def create(
        self,
        name: str,
        alert_type: AlertType | str,
        severity: Severity | str,
        condition: RuleCondition | Mapping[str, Any],
        now: datetime,
        description: str = "",
    ) -> AlertRule:
        """Create an enabled custom rule."""
        if not name or not name.strip():
            raise InvariantViolation("Alert rule name is required")
        kind = _coerce(AlertType, alert_type, "alert type")
        rule = AlertRule(
            id=f"{CUSTOM_RULE_PREFIX}{uuid4().hex[:12]}",
            name=name.strip(),
            description=description,
            alert_type=kind,
            severity=_coerce(Severity, severity, "severity"),
            condition=parse_condition(condition, kind),
            enabled=True,
            created_at=now,
        )
        await self._store.append(StoreKey.CUSTOM_RULES, rule.to_dict())
        self._logger.info("rule_created", rule_id=rule.id, alert_type=kind.value)
        return rule

    async def toggle(self, rule_id: str, enabled: bool, now: datetime) -> AlertRule:
        """Enable or disable any rule, built-in or custom."""
        rule = await self.get(rule_id, now)
        await self._store.update(
            StoreKey.RULE_TOGGLES,
            lambda toggles: {**toggles, rule_id: bool(enabled)},
            default={},
        )
        self._logger.info("rule_toggled", rule_id=rule_id, enabled=bool(enabled))
        return replace(rule, enabled=bool(enabled))

    async def update(
        self, rule_id: str, changes: Mapping[str, Any], now: datetime
    ) -> AlertRule:
        """Apply changes to a rule; built-ins only accept ``enabled``."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvariantViolation(f"Cannot edit rule fields: {', '.join(sorted(unknown))}")

        content = {k: v for k, v in changes.items() if k != "enabled"}
        if content and is_built_in(rule_id):
            raise InvariantViolation(f"Built-in rule {rule_id} cannot be edited")

        rule = await self.get(rule_id, now)
        if content:
            kind = _coerce(AlertType, content.get("alertType", rule.alert_type), "alert type")
            rule = replace(
                rule,
                name=str(content.get("name", rule.name)),
                description=str(content.get("description", rule.description)),
                alert_type=kind,
                severity=_coerce(Severity, content.get("severity", rule.severity), "severity"),
                condition=parse_condition(content.get("condition", rule.condition), kind),
            )
            updated = rule.to_dict()
            await self._store.update(
                StoreKey.CUSTOM_RULES,
                lambda items: [updated if item["id"] == rule_id else item for item in items],
                default=[],
            )
            self._logger.info("rule_updated", rule_id=rule_id, fields=sorted(content))

        if "enabled" in changes:
            rule = await self.toggle(rule_id, bool(changes["enabled"]), now)
        return rule

    async def delete(self, rule_id: str) -> None:
        """Delete a custom rule.

        Raises:
            InvariantViolation: If the rule is built in.
            NotFoundError: If no custom rule has this id.
        """
        if is_built_in(rule_id):
            raise InvariantViolation(f"Built-in rule {rule_id} cannot be deleted")

        existing = await self._store.get(StoreKey.CUSTOM_RULES, [])
        if not any(item["id"] == rule_id for item in existing):
            raise NotFoundError(f"Custom rule {rule_id} not found")

        await self._store.update(
            StoreKey.CUSTOM_RULES,
            lambda items: [item for item in items if item["id"] != rule_id],
            default=[],
        )
        await self._store.update(
            StoreKey.RULE_TOGGLES,
            lambda toggles: {k: v for k, v in toggles.items() if k != rule_id},
            default={},
        )
        self._logger.info("rule_deleted", rule_id=rule_id)
