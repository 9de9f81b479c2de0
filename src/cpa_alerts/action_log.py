"""Append-only log of user actions on alerts."""

from datetime import datetime

import structlog

from cpa_alerts.models import ActionLogEntry, AlertAction, AlertType
from cpa_alerts.store import BaseStore, StoreKey

logger = structlog.get_logger(__name__)


class ActionLog:
    """Persisted list of handled/snoozed/dismissed entries.

    Entries are only ever appended; list position is the insertion order used
    to break timestamp ties. The whole log is cleared only by a store reset.
    """

    def __init__(self, store: BaseStore):
        self._store = store
        self._logger = logger.bind(component="action_log")

    async def append(self, entry: ActionLogEntry) -> None:
        await self._store.append(StoreKey.ALERT_ACTIONS, entry.to_dict())
        self._logger.info(
            "alert_action_recorded",
            alert_id=entry.alert_id,
            alert_type=entry.alert_type.value,
            action=entry.action.value,
        )

    async def entries(self) -> list[ActionLogEntry]:
        raw = await self._store.get(StoreKey.ALERT_ACTIONS, [])
        return [ActionLogEntry.from_dict(item) for item in raw]

    async def all_entries_for(self, alert_id: str, alert_type: AlertType) -> list[ActionLogEntry]:
        return [
            entry
            for entry in await self.entries()
            if entry.alert_id == alert_id and entry.alert_type == alert_type
        ]

    async def record(
        self,
        alert_id: str,
        alert_type: AlertType,
        action: AlertAction,
        timestamp: datetime,
        note: str | None = None,
        snooze_days: int | None = None,
        dismiss_reason: str | None = None,
    ) -> ActionLogEntry:
        """Build and append an entry in one step."""
        entry = ActionLogEntry(
            alert_id=alert_id,
            alert_type=alert_type,
            action=action,
            timestamp=timestamp,
            note=note,
            snooze_days=snooze_days,
            dismiss_reason=dismiss_reason,
        )
        await self.append(entry)
        return entry
